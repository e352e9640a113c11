from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from models import Payment, PaymentMethod, PaymentStatus
from services import billing, ledger_service, payment_service
from services.delivery_service import ItemRequest
from services.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError


@pytest.fixture
def delivery(db, customer, capacities, staff_ctx):
    return billing.create_delivery(db, staff_ctx, customer.id, [ItemRequest(capacities[6], 2)]).delivery


def webhook(invoice_id="INV-100", api_ref=None, amount=500, state="COMPLETE", **extra):
    payload = {"invoice_id": invoice_id, "state": state, "amount": amount, "api_ref": api_ref}
    payload.update(extra)
    return payload


def test_cash_payment_clears_balance(db, customer, delivery, staff_ctx, outbound):
    outcome = billing.record_cash_payment(db, staff_ctx, customer.id, 1800, delivery_id=delivery.id)

    assert outcome.created
    assert outcome.new_balance == Decimal("0.00")
    payment = outcome.payment
    assert payment.method == PaymentMethod.CASH
    assert payment.payment_status == PaymentStatus.COMPLETED
    assert payment.payment_provider == "manual"
    assert payment.handled_by == "staff-1"
    assert payment.provider_reference.startswith("CASH-")
    outbound.receipt.assert_called_once()


def test_cash_overpayment_becomes_credit(db, customer, delivery, staff_ctx):
    outcome = billing.record_cash_payment(db, staff_ctx, customer.id, 2000)

    assert outcome.payment.delivery_id is None
    assert outcome.new_balance == Decimal("-200.00")


def test_cash_form_resubmission_is_recorded_once(db, customer, delivery, staff_ctx, outbound):
    first = billing.record_cash_payment(db, staff_ctx, customer.id, 800, client_reference="form-7")
    second = billing.record_cash_payment(db, staff_ctx, customer.id, 800, client_reference="form-7")

    assert first.created and second.duplicate
    assert second.payment.id == first.payment.id
    assert second.new_balance == Decimal("1000.00")
    assert db.query(Payment).count() == 1
    outbound.receipt.assert_called_once()


def test_same_form_token_for_two_customers(db, customer, delivery, make_customer, capacities, staff_ctx):
    other = make_customer(phone="+254700000099")
    billing.create_delivery(db, staff_ctx, other.id, [ItemRequest(capacities[6], 2)])

    first = billing.record_cash_payment(db, staff_ctx, customer.id, 500, client_reference="7")
    second = billing.record_cash_payment(db, staff_ctx, other.id, 800, client_reference="7")

    assert first.created and second.created
    assert first.payment.provider_reference != second.payment.provider_reference
    assert ledger_service.get_balance(db, customer.id) == Decimal("1300.00")
    assert ledger_service.get_balance(db, other.id) == Decimal("1000.00")
    assert db.query(Payment).count() == 2


@pytest.mark.parametrize("change", ["amount", "customer", "delivery"])
def test_reused_reference_for_different_payment_is_rejected(db, customer, delivery, make_customer, staff_ctx, outbound, change):
    other = make_customer(phone="+254700000098")
    billing.record_payment(
        db, staff_ctx, customer_id=customer.id, delivery_id=delivery.id, amount=500,
        method=PaymentMethod.BANK, provider_reference="BANK-1",
    )
    request = {"customer_id": customer.id, "delivery_id": delivery.id, "amount": 500}
    if change == "amount":
        request["amount"] = 800
    elif change == "customer":
        request.update(customer_id=other.id, delivery_id=None)
    else:
        request["delivery_id"] = None

    with pytest.raises(ConflictError) as exc:
        billing.record_payment(
            db, staff_ctx, method=PaymentMethod.BANK, provider_reference="BANK-1", **request
        )

    assert "different payment" in exc.value.reason
    assert db.query(Payment).count() == 1
    assert ledger_service.get_balance(db, customer.id) == Decimal("1300.00")
    assert ledger_service.get_balance(db, other.id) == Decimal("0.00")


    assert db.query(Payment).count() == 1
    outbound.receipt.assert_called_once()


@pytest.mark.parametrize("amount", [0, -5, "x"])
def test_invalid_amount_rejected(db, customer, delivery, staff_ctx, amount):
    with pytest.raises(ValidationError):
        billing.record_cash_payment(db, staff_ctx, customer.id, amount)

    assert db.query(Payment).count() == 0


def test_payment_against_other_customers_delivery(db, make_customer, delivery, staff_ctx):
    stranger = make_customer()

    with pytest.raises(ValidationError):
        billing.record_cash_payment(db, staff_ctx, stranger.id, 100, delivery_id=delivery.id)


def test_payment_for_unknown_customer(db, staff_ctx):
    with pytest.raises(NotFoundError):
        billing.record_cash_payment(db, staff_ctx, 4242, 100)


def test_retired_customer_still_pays(db, customer, delivery, staff_ctx):
    customer.deleted_at = datetime(2026, 1, 1)
    db.commit()

    outcome = billing.record_cash_payment(db, staff_ctx, customer.id, 1800)

    assert outcome.new_balance == Decimal("0.00")


def test_pending_payment_has_no_ledger_effect(db, customer, delivery, staff_ctx, outbound):
    outcome = billing.record_payment(
        db,
        staff_ctx,
        customer_id=customer.id,
        delivery_id=delivery.id,
        amount=900,
        method=PaymentMethod.BANK,
        provider_reference="BANK-1",
        status=PaymentStatus.PENDING,
    )

    assert outcome.created
    assert not outcome.payment.affects_ledger
    assert outcome.new_balance == Decimal("1800.00")
    assert ledger_service.verify_customer_balance(db, customer.id)[0]
    outbound.receipt.assert_not_called()


def test_completed_payment_is_immutable(db, customer, delivery, staff_ctx):
    payment = billing.record_cash_payment(db, staff_ctx, customer.id, 100).payment

    payment.amount_paid = Decimal("1")
    with pytest.raises(ValueError):
        db.flush()
    db.rollback()

    db.delete(payment)
    with pytest.raises(ValueError):
        db.flush()


def test_webhook_replay_records_once(db, customer, delivery, outbound):
    payload = webhook(api_ref=str(delivery.id))

    first = billing.handle_webhook(db, payload)
    second = billing.handle_webhook(db, payload)

    assert first.outcome.status == "recorded"
    assert second.outcome.status == "duplicate"
    payments = db.query(Payment).filter(Payment.provider_reference == "INV-100").all()
    assert len(payments) == 1
    assert payments[0].payment_provider == "intasend"
    assert payments[0].method == PaymentMethod.MOBILE_MONEY
    assert ledger_service.get_balance(db, customer.id) == Decimal("1300.00")
    outbound.receipt.assert_called_once()


def test_webhook_maps_card_provider(db, delivery):
    result = billing.handle_webhook(db, webhook(api_ref=str(delivery.id), provider="CARD-PAYMENT"))

    assert result.outcome.payment.method == PaymentMethod.CARD


def test_webhook_stores_payer_account(db, delivery):
    result = billing.handle_webhook(db, webhook(api_ref=str(delivery.id), account="254700000000"))

    assert result.outcome.payment.payer_account == "254700000000"
    assert result.outcome.payment.method == PaymentMethod.MOBILE_MONEY


@pytest.mark.parametrize("state", ["PENDING", "FAILED", None])
def test_webhook_ignores_incomplete_states(db, customer, delivery, state):
    result = billing.handle_webhook(db, webhook(api_ref=str(delivery.id), state=state))

    assert result.outcome.status == "ignored"
    assert db.query(Payment).count() == 0
    assert ledger_service.get_balance(db, customer.id) == Decimal("1800.00")


@pytest.mark.parametrize("api_ref", ["9999", "payment-1760000000000", None])
def test_webhook_unknown_reference_is_acknowledged(db, api_ref):
    result = billing.handle_webhook(db, webhook(api_ref=api_ref))

    assert result.outcome.status == "unknown_reference"
    assert db.query(Payment).count() == 0


def test_webhook_without_invoice_id(db, delivery):
    with pytest.raises(ValidationError):
        billing.handle_webhook(db, webhook(invoice_id=None, api_ref=str(delivery.id)))


def test_receipt_failure_keeps_payment(db, customer, delivery, staff_ctx, outbound):
    outbound.receipt.side_effect = ExternalServiceError("Brevo error: quota")

    outcome = billing.record_cash_payment(db, staff_ctx, customer.id, 1800)

    assert outcome.warnings == ["Receipt e-mail failed: Brevo error: quota"]
    assert db.query(Payment).count() == 1
    assert ledger_service.get_balance(db, customer.id) == Decimal("0.00")


def test_racing_duplicate_resolves_to_existing_row(db, customer, delivery, staff_ctx):
    first = billing.record_cash_payment(db, staff_ctx, customer.id, 300, client_reference="race")
    real_lookup = payment_service.find_by_reference
    calls = []

    def lookup_misses_once(session, reference):
        # The other request has not committed yet when this one looks
        calls.append(reference)
        if len(calls) == 1:
            return None
        return real_lookup(session, reference)

    with patch("services.payment_service.find_by_reference", side_effect=lookup_misses_once):
        second = billing.record_cash_payment(db, staff_ctx, customer.id, 300, client_reference="race")

    assert second.duplicate
    assert second.payment.id == first.payment.id
    assert len(calls) == 2
    assert db.query(Payment).count() == 1
    assert ledger_service.get_balance(db, customer.id) == Decimal("1500.00")


def test_payment_history_newest_first(db, customer, delivery, staff_ctx):
    for n in range(3):
        billing.record_cash_payment(db, staff_ctx, customer.id, 100 + n)

    rows, total = payment_service.list_payments(db, customer.id, page=1, page_size=2)

    assert total == 3
    assert [p.amount_paid for p in rows] == [Decimal("102.00"), Decimal("101.00")]
