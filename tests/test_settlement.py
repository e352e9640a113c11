from decimal import Decimal
from unittest.mock import patch

from models import Payment, PaymentMethod, PaymentStatus
from services import billing, ledger_service
from services.delivery_service import ItemRequest
from services.price_service import LockKind


def _put_in_credit(db, ctx, customer, amount):
    billing.record_cash_payment(db, ctx, customer.id, amount)
    assert ledger_service.get_balance(db, customer.id) == -Decimal(amount)


def test_credit_is_applied_to_new_delivery(db, make_customer, capacities, staff_ctx, outbound):
    customer = make_customer(price_per_kg="100")
    _put_in_credit(db, staff_ctx, customer, 300)
    outbound.receipt.reset_mock()

    placement = billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[10], 1)])

    assert placement.delivery.total_charge == Decimal("1000.00")
    assert placement.balance == Decimal("700.00")
    settlement = placement.settlement
    assert settlement.method == PaymentMethod.CREDIT_APPLICATION
    assert settlement.payment_status == PaymentStatus.COMPLETED
    assert not settlement.affects_ledger
    assert settlement.amount_paid == Decimal("300.00")
    assert settlement.delivery_id == placement.delivery.id
    assert settlement.provider_reference == f"CREDIT-{placement.delivery.id}"
    assert ledger_service.get_balance(db, customer.id) == Decimal("700.00")
    assert ledger_service.verify_customer_balance(db, customer.id)[0]
    outbound.receipt.assert_not_called()


def test_settlement_capped_at_new_charge(db, make_customer, capacities, staff_ctx):
    customer = make_customer(price_per_kg="100")
    _put_in_credit(db, staff_ctx, customer, 2500)

    placement = billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[10], 1)])

    assert placement.settlement.amount_paid == Decimal("1000.00")
    assert placement.balance == Decimal("-1500.00")


def test_no_settlement_without_credit(db, customer, capacities, staff_ctx):
    placement = billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[6], 1)])

    assert placement.settlement is None
    assert db.query(Payment).count() == 0


def test_settlement_locks_the_delivery_price(db, make_customer, capacities, staff_ctx):
    customer = make_customer(price_per_kg="100")
    _put_in_credit(db, staff_ctx, customer, 300)

    placement = billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[10], 1)])

    assert billing.check_lock(db, placement.delivery.id).kind == LockKind.PAYMENT_RECEIVED


def test_failed_settlement_keeps_delivery(db, make_customer, capacities, staff_ctx):
    customer = make_customer(price_per_kg="100")
    _put_in_credit(db, staff_ctx, customer, 300)

    with patch("services.billing.apply_credit_to_delivery", side_effect=RuntimeError("db hiccup")):
        placement = billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[10], 1)])

    assert placement.settlement is None
    assert placement.warnings == ["Overpayment auto-settlement failed: db hiccup"]
    assert placement.delivery.id is not None
    assert ledger_service.get_balance(db, customer.id) == Decimal("700.00")
    assert db.query(Payment).filter(Payment.method == PaymentMethod.CREDIT_APPLICATION).count() == 0
