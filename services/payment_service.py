# services/payment_service.py
"""
Payment Intake - the single "record payment" contract behind the cash
desk, the processor webhook and credit auto-settlement.

Idempotency: provider_reference is unique in the database. A reference that
already exists returns the stored row untouched and moves no money, as long
as the request matches it; a reference reused for another customer, amount
or delivery is a ConflictError. Two requests racing with the same reference
both pass the lookup; the loser hits the unique index, and its
IntegrityError is turned into a ConcurrencyError so
database.run_in_transaction rolls back and replays it, at which point the
lookup finds the winner's row.
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Payment, PaymentMethod, PaymentStatus
from services.context import RequestContext
from services.delivery_service import DeliveryService
from services.errors import ConcurrencyError, ConflictError, NotFoundError, ValidationError
from services.ledger_service import adjust_balance, get_balance, get_customer, to_money

logger = logging.getLogger(__name__)

WEBHOOK_PROVIDER = "intasend"

# Processor "provider" values that are not mobile money
_PROVIDER_METHODS = {
     "CARD-PAYMENT": PaymentMethod.CARD,
     "BANK-PAYMENT": PaymentMethod.BANK,
     "BANK-ACH": PaymentMethod.BANK,
}


@dataclass
class PaymentOutcome:
     payment: Payment
     created: bool
     new_balance: Decimal
     warnings: List[str] = field(default_factory=list)

     @property
     def duplicate(self) -> bool:
          return not self.created


@dataclass
class WebhookOutcome:
     status: str  # recorded | duplicate | ignored | unknown_reference
     payment: Optional[Payment] = None

     @property
     def recorded(self) -> bool:
          return self.status == "recorded"


def find_by_reference(db: Session, provider_reference: str) -> Optional[Payment]:
     return db.query(Payment).filter(Payment.provider_reference == provider_reference).first()


def _parse_amount(amount) -> Decimal:
     try:
          value = to_money(amount)
     except (InvalidOperation, ValueError, TypeError):
          raise ValidationError(f"Invalid payment amount: {amount!r}")
     if value <= 0:
          raise ValidationError("Payment amount must be greater than zero")
     return value


def record_payment(
     db: Session,
     ctx: RequestContext,
     customer_id: int,
     delivery_id: Optional[int],
     amount,
     method: PaymentMethod,
     provider_reference: str,
     status: PaymentStatus = PaymentStatus.COMPLETED,
     payment_provider: str = "manual",
     handled_by: Optional[str] = None,
     payer_account: Optional[str] = None,
) -> PaymentOutcome:
     """
     Insert a payment and, when it is completed, subtract it from the
     customer's balance in the same transaction.

     Pending payments are stored with no ledger effect. Credit applications
     are stored completed with no ledger effect either: the credit they use
     is already part of the balance.

     Returns:
          PaymentOutcome; ``created`` is False when the same payment was seen before

     Raises:
          ValidationError: Non-positive amount, missing reference, or a
               delivery that belongs to another customer
          NotFoundError: Unknown customer or delivery
          ConflictError: The reference is already stored for a different
               customer, amount or delivery
     """
     if not provider_reference:
          raise ValidationError("A provider reference is required")
     amount = _parse_amount(amount)
     method = PaymentMethod(method)
     status = PaymentStatus(status)

     existing = find_by_reference(db, provider_reference)
     if existing is not None:
          if (
               existing.customer_id != customer_id
               or to_money(existing.amount_paid) != amount
               or existing.delivery_id != delivery_id
          ):
               logger.warning("Payment reference %s reused for a different payment", provider_reference)
               raise ConflictError(
                    f"Payment reference {provider_reference} is already recorded",
                    reason="This payment reference was already used for a different payment.",
               )
          logger.info("Payment %s already recorded, ignoring replay", provider_reference)
          return PaymentOutcome(
               payment=existing,
               created=False,
               new_balance=get_balance(db, existing.customer_id),
          )

     # Money already moved, so retired customers still accept payments
     customer = get_customer(db, customer_id, include_retired=True)
     if delivery_id is not None:
          # Serializes with price edits on the same delivery
          delivery = DeliveryService.get_delivery(db, delivery_id, for_update=True)
          if delivery.customer_id != customer.id:
               raise ValidationError(f"Delivery {delivery_id} does not belong to customer {customer.id}")

     payment = Payment(
          customer_id=customer.id,
          delivery_id=delivery_id,
          amount_paid=amount,
          method=method,
          payment_status=status,
          payment_provider=payment_provider,
          provider_reference=provider_reference,
          handled_by=handled_by,
          payer_account=payer_account,
     )
     db.add(payment)
     try:
          db.flush()
     except IntegrityError as e:
          raise ConcurrencyError(f"Payment reference {provider_reference} recorded concurrently") from e

     if payment.affects_ledger:
          new_balance = adjust_balance(db, customer.id, -amount)
     else:
          new_balance = get_balance(db, customer.id)

     logger.info(
          "Payment %s recorded for customer %s: %s via %s (%s) by %s",
          provider_reference, customer.id, amount, method.value, status.value, ctx.principal_id,
     )
     return PaymentOutcome(payment=payment, created=True, new_balance=new_balance)


def record_cash_payment(
     db: Session,
     ctx: RequestContext,
     customer_id: int,
     amount,
     delivery_id: Optional[int] = None,
     client_reference: Optional[str] = None,
) -> PaymentOutcome:
     """
     Cash handed to a staff member. Always completed; the staff principal
     from the context is stored as handled_by. A form that supplies its own
     ``client_reference`` can be resubmitted safely.
     """
     if not ctx.principal_id:
          raise ValidationError("Cash payments need an authenticated staff member")
     # Form tokens are only unique per customer
     if client_reference:
          reference = f"CASH-{customer_id}-{client_reference}"
     else:
          reference = f"CASH-{uuid.uuid4().hex}"
     return record_payment(
          db,
          ctx,
          customer_id=customer_id,
          delivery_id=delivery_id,
          amount=amount,
          method=PaymentMethod.CASH,
          provider_reference=reference,
          status=PaymentStatus.COMPLETED,
          payment_provider="manual",
          handled_by=ctx.principal_id,
     )


def process_webhook(db: Session, ctx: RequestContext, payload: dict) -> WebhookOutcome:
     """
     Apply a payment processor callback.

     Only ``state == "COMPLETE"`` moves money. ``invoice_id`` is the
     idempotency key and ``api_ref`` the delivery id. A reference to a
     delivery we do not know is logged and acknowledged without effect,
     since the processor would otherwise redeliver it forever.

     Raises:
          ValidationError: Missing invoice_id or unusable amount
     """
     state = str(payload.get("state") or "").upper()
     invoice_id = payload.get("invoice_id")
     api_ref = payload.get("api_ref")

     if state != "COMPLETE":
          logger.info("Webhook for invoice %s in state %s ignored", invoice_id, state or "<none>")
          return WebhookOutcome(status="ignored")

     if not invoice_id:
          raise ValidationError("Webhook payload has no invoice_id")
     invoice_id = str(invoice_id)

     existing = find_by_reference(db, invoice_id)
     if existing is not None:
          logger.info("Webhook for invoice %s already processed", invoice_id)
          return WebhookOutcome(status="duplicate", payment=existing)

     try:
          delivery = DeliveryService.get_delivery(db, int(api_ref))
     except (TypeError, ValueError, NotFoundError):
          logger.warning("Webhook for invoice %s references unknown delivery %r", invoice_id, api_ref)
          return WebhookOutcome(status="unknown_reference")

     method = _PROVIDER_METHODS.get(str(payload.get("provider") or "").upper(), PaymentMethod.MOBILE_MONEY)
     outcome = record_payment(
          db,
          ctx,
          customer_id=delivery.customer_id,
          delivery_id=delivery.id,
          amount=payload.get("amount"),
          method=method,
          provider_reference=invoice_id,
          status=PaymentStatus.COMPLETED,
          payment_provider=WEBHOOK_PROVIDER,
          payer_account=str(payload["account"]) if payload.get("account") else None,
     )
     return WebhookOutcome(
          status="recorded" if outcome.created else "duplicate",
          payment=outcome.payment,
     )


def list_payments(db: Session, customer_id: int, page: int = 1, page_size: int = 50) -> Tuple[List[Payment], int]:
     """A customer's payments, newest first. Returns (page of rows, total count)."""
     get_customer(db, customer_id, include_retired=True)
     query = db.query(Payment).filter(Payment.customer_id == customer_id)
     total = query.count()
     rows = (
          query.order_by(Payment.paid_at.desc(), Payment.id.desc())
          .offset((page - 1) * page_size)
          .limit(page_size)
          .all()
     )
     return rows, total
