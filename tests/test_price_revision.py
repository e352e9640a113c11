from decimal import Decimal

import pytest

from models import DeliveryStatus, PaymentMethod, PaymentStatus
from services import billing, ledger_service
from services.delivery_service import ItemRequest
from services.errors import ConflictError, ValidationError
from services.price_service import LockKind


@pytest.fixture
def pending_delivery(db, customer, capacities, staff_ctx):
    return billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[10], 1)]).delivery


def test_price_increase_moves_delta_to_balance(db, customer, pending_delivery, staff_ctx):
    assert pending_delivery.total_charge == Decimal("1500.00")
    assert not billing.check_lock(db, pending_delivery.id).locked

    revision = billing.update_price(db, staff_ctx, pending_delivery.id, 200)

    assert revision.previous_total_charge == Decimal("1500.00")
    assert revision.new_total_charge == Decimal("2000.00")
    assert revision.delta == Decimal("500.00")
    assert revision.new_balance == Decimal("2000.00")
    assert revision.delivery.price_per_kg_at_time == Decimal("200.00")
    assert ledger_service.verify_customer_balance(db, customer.id)[0]


def test_price_decrease_lowers_balance(db, customer, pending_delivery, staff_ctx):
    revision = billing.update_price(db, staff_ctx, pending_delivery.id, "120.50")

    assert revision.delta == Decimal("-295.00")
    assert ledger_service.get_balance(db, customer.id) == Decimal("1205.00")


def test_unchanged_price_leaves_balance(db, customer, pending_delivery, staff_ctx):
    revision = billing.update_price(db, staff_ctx, pending_delivery.id, 150)

    assert revision.delta == Decimal("0.00")
    assert revision.new_balance == Decimal("1500.00")


@pytest.mark.parametrize("price", [0, -10, "abc"])
def test_invalid_price_rejected(db, customer, pending_delivery, staff_ctx, price):
    with pytest.raises(ValidationError):
        billing.update_price(db, staff_ctx, pending_delivery.id, price)

    assert ledger_service.get_balance(db, customer.id) == Decimal("1500.00")


def test_delivered_delivery_is_locked(db, customer, pending_delivery, staff_ctx):
    billing.update_status(db, staff_ctx, pending_delivery.id, DeliveryStatus.EN_ROUTE)
    billing.update_status(db, staff_ctx, pending_delivery.id, DeliveryStatus.DELIVERED)

    lock = billing.check_lock(db, pending_delivery.id)
    assert lock.kind == LockKind.DELIVERED

    with pytest.raises(ConflictError) as exc:
        billing.update_price(db, staff_ctx, pending_delivery.id, 200)

    assert exc.value.reason == "This order has been delivered and cannot be modified."
    assert ledger_service.get_balance(db, customer.id) == Decimal("1500.00")


def test_en_route_delivery_is_locked(db, pending_delivery, staff_ctx):
    billing.update_status(db, staff_ctx, pending_delivery.id, DeliveryStatus.EN_ROUTE)

    lock = billing.check_lock(db, pending_delivery.id)

    assert lock.locked
    assert lock.kind == LockKind.EN_ROUTE
    assert lock.reason == "This order is en route and cannot be modified."


def test_any_payment_locks_price_for_good(db, customer, pending_delivery, staff_ctx):
    billing.record_payment(
        db,
        staff_ctx,
        customer_id=customer.id,
        delivery_id=pending_delivery.id,
        amount=500,
        method=PaymentMethod.MOBILE_MONEY,
        provider_reference="CHK-1",
        status=PaymentStatus.PENDING,
    )
    assert ledger_service.get_balance(db, customer.id) == Decimal("1500.00")

    lock = billing.check_lock(db, pending_delivery.id)
    assert lock.kind == LockKind.PAYMENT_RECEIVED

    with pytest.raises(ConflictError) as exc:
        billing.update_price(db, staff_ctx, pending_delivery.id, 180)
    assert exc.value.reason == "This order has received payment(s) and the price cannot be changed."

    billing.update_status(db, staff_ctx, pending_delivery.id, DeliveryStatus.EN_ROUTE)
    billing.update_status(db, staff_ctx, pending_delivery.id, DeliveryStatus.DELIVERED)
    assert billing.check_lock(db, pending_delivery.id).locked


def test_stale_version_is_rejected(db, customer, pending_delivery, staff_ctx):
    read_version = pending_delivery.version
    billing.update_price(db, staff_ctx, pending_delivery.id, 160, expected_version=read_version)

    with pytest.raises(ConflictError) as exc:
        billing.update_price(db, staff_ctx, pending_delivery.id, 170, expected_version=read_version)

    assert "modified by someone else" in exc.value.reason
    assert ledger_service.get_balance(db, customer.id) == Decimal("1600.00")
