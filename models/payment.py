# models/payment.py
"""
Payment model - money received from (or credit applied for) a customer.

Rows are append-only and immutable once completed. ``provider_reference``
carries a unique index: it is the idempotency key that stops a redelivered
webhook or a double-submitted cash form from being booked twice.
"""
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, and_, event, func, inspect
from sqlalchemy.orm import relationship
from .base import Base


class PaymentMethod(str, enum.Enum):
     CASH = "cash"
     MOBILE_MONEY = "mobile-money"
     BANK = "bank"
     CARD = "card"
     CREDIT_APPLICATION = "credit-application"


class PaymentStatus(str, enum.Enum):
     PENDING = "pending"
     COMPLETED = "completed"


# Credit application moves money the ledger already holds as credit onto a
# delivery, so it never changes the balance.
NON_LEDGER_METHODS = (PaymentMethod.CREDIT_APPLICATION,)


class Payment(Base):
     __tablename__ = "payments"

     id = Column(Integer, primary_key=True, autoincrement=True)
     customer_id = Column(
          Integer,
          ForeignKey("customers.id", ondelete="RESTRICT"),
          nullable=False,
          index=True
     )
     delivery_id = Column(
          Integer,
          ForeignKey("deliveries.id", ondelete="RESTRICT"),  # Prevent delete once paid against
          nullable=True,
          index=True
     )

     amount_paid = Column(Numeric(12, 2), nullable=False)
     method = Column(
          Enum(
               PaymentMethod,
               name="payment_method",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          nullable=False
     )
     payment_status = Column(
          Enum(
               PaymentStatus,
               name="payment_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=PaymentStatus.COMPLETED,
          nullable=False
     )
     payment_provider = Column(String(50), nullable=False, default="manual")
     payer_account = Column(String(100), nullable=True)  # phone or account the processor charged
     provider_reference = Column(String(255), nullable=False, unique=True, index=True)
     handled_by = Column(String(64), nullable=True)
     paid_at = Column(DateTime, server_default=func.now(), nullable=False)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     customer = relationship("Customer", back_populates="payments")
     delivery = relationship("Delivery", back_populates="payments")

     def __repr__(self):
          return f"<Payment(id={self.id}, ref='{self.provider_reference}', amount={self.amount_paid}, status='{self.payment_status.value}')>"

     @property
     def affects_ledger(self) -> bool:
          return (
               self.payment_status == PaymentStatus.COMPLETED
               and self.method not in NON_LEDGER_METHODS
          )

     @classmethod
     def ledger_effective(cls):
          """SQL form of affects_ledger, for sums over many rows."""
          return and_(
               cls.payment_status == PaymentStatus.COMPLETED,
               cls.method.notin_(NON_LEDGER_METHODS),
          )


@event.listens_for(Payment, "before_update")
def _forbid_completed_payment_update(mapper, connection, target):
     history = inspect(target).attrs.payment_status.history
     original = history.deleted[0] if history.deleted else target.payment_status
     if original == PaymentStatus.COMPLETED:
          raise ValueError(f"Payment {target.provider_reference} is completed and cannot be modified")


@event.listens_for(Payment, "before_delete")
def _forbid_payment_delete(mapper, connection, target):
     raise ValueError(f"Payment {target.provider_reference} cannot be deleted")
