"""Create billing tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17

Customers with their running balance, the cylinder catalog, deliveries with
their items, and append-only payments keyed by provider_reference.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261017_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DELIVERY_STATUSES = ("pending", "en_route", "delivered")
PAYMENT_METHODS = ("cash", "mobile-money", "bank", "card", "credit-application")
PAYMENT_STATUSES = ("pending", "completed")


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("shop_name", sa.String(200), nullable=False),
        sa.Column("in_charge_name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("price_per_kg", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customers_user_id", "customers", ["user_id"], unique=True)

    op.create_table(
        "cylinder_capacities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("capacity_kg", sa.Numeric(8, 2), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "deliveries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("logged_by_user_id", sa.String(64), nullable=True),
        sa.Column("total_kg", sa.Numeric(12, 2), nullable=False),
        sa.Column("price_per_kg_at_time", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("manual_adjustment", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column(
            "status",
            sa.Enum(*DELIVERY_STATUSES, name="delivery_status", create_constraint=True),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("delivery_date", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customers.id"],
            name="fk_deliveries_customer_id",
            ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_deliveries_customer_id", "deliveries", ["customer_id"])
    op.create_index("ix_deliveries_status", "deliveries", ["status"])

    op.create_table(
        "delivery_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("delivery_id", sa.Integer(), nullable=False),
        sa.Column("cylinder_capacity_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("kg_contribution", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["delivery_id"],
            ["deliveries.id"],
            name="fk_delivery_items_delivery_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["cylinder_capacity_id"],
            ["cylinder_capacities.id"],
            name="fk_delivery_items_cylinder_capacity_id",
        ),
    )
    op.create_index("ix_delivery_items_delivery_id", "delivery_items", ["delivery_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("delivery_id", sa.Integer(), nullable=True),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "method",
            sa.Enum(*PAYMENT_METHODS, name="payment_method", create_constraint=True),
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            sa.Enum(*PAYMENT_STATUSES, name="payment_status", create_constraint=True),
            nullable=False,
        ),
        sa.Column("payment_provider", sa.String(50), nullable=False),
        sa.Column("provider_reference", sa.String(255), nullable=False),
        sa.Column("handled_by", sa.String(64), nullable=True),
        sa.Column("payer_account", sa.String(100), nullable=True),
        sa.Column("paid_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customers.id"],
            name="fk_payments_customer_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["delivery_id"],
            ["deliveries.id"],
            name="fk_payments_delivery_id",
            ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"])
    op.create_index("ix_payments_delivery_id", "payments", ["delivery_id"])
    # Idempotency key for webhooks, cash forms and credit applications
    op.create_index("ix_payments_provider_reference", "payments", ["provider_reference"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_payments_provider_reference", table_name="payments")
    op.drop_index("ix_payments_delivery_id", table_name="payments")
    op.drop_index("ix_payments_customer_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_delivery_items_delivery_id", table_name="delivery_items")
    op.drop_table("delivery_items")
    op.drop_index("ix_deliveries_status", table_name="deliveries")
    op.drop_index("ix_deliveries_customer_id", table_name="deliveries")
    op.drop_table("deliveries")
    op.drop_table("cylinder_capacities")
    op.drop_index("ix_customers_user_id", table_name="customers")
    op.drop_table("customers")
