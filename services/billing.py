# services/billing.py
"""
Entry points of the billing core, as used by the routers and admin scripts.

Each function owns one transaction (database.run_in_transaction, retried on
collisions) and runs its side effects only after that transaction has
committed, each behind services.side_effects.run_best_effort. A failed
e-mail, SMS or auto-settlement comes back as a warning and never undoes
the delivery or payment that was already saved.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from database import run_in_transaction
from models import Delivery, DeliveryStatus, Payment, PaymentMethod, PaymentStatus
from services import ledger_service, payment_service, price_service
from services.context import RequestContext
from services.delivery_service import DeliveryService, ItemRequest
from services.notifications import notify_status_change, send_payment_receipt
from services.settlement_service import apply_credit_to_delivery
from services.side_effects import run_best_effort

logger = logging.getLogger(__name__)

WEBHOOK_PRINCIPAL = "intasend-webhook"


@dataclass
class DeliveryPlacement:
     delivery: Delivery
     balance: Decimal
     settlement: Optional[Payment] = None
     warnings: List[str] = field(default_factory=list)


@dataclass
class StatusChange:
     delivery: Delivery
     changed: bool
     warnings: List[str] = field(default_factory=list)


@dataclass
class WebhookResult:
     outcome: payment_service.WebhookOutcome
     warnings: List[str] = field(default_factory=list)


def _send_receipt(db: Session, payment: Payment, warnings: List[str]) -> None:
     if payment.method == PaymentMethod.CREDIT_APPLICATION:
          return
     if payment.payment_status != PaymentStatus.COMPLETED:
          return
     customer = ledger_service.get_customer(db, payment.customer_id, include_retired=True)
     run_best_effort("Receipt e-mail", send_payment_receipt, customer, payment, warnings=warnings)


def create_delivery(
     db: Session,
     ctx: RequestContext,
     customer_id: int,
     items: Sequence[ItemRequest],
     manual_adjustment=0,
     notes: Optional[str] = None,
) -> DeliveryPlacement:
     outcome = run_in_transaction(
          db, DeliveryService.create_delivery, ctx, customer_id, items, manual_adjustment, notes
     )
     placement = DeliveryPlacement(delivery=outcome.delivery, balance=outcome.new_balance)

     if outcome.prior_balance < 0:
          settled = run_best_effort(
               "Overpayment auto-settlement",
               run_in_transaction,
               db,
               apply_credit_to_delivery,
               ctx,
               outcome.delivery.id,
               outcome.prior_balance,
               warnings=placement.warnings,
          )
          if settled is not None:
               placement.settlement = settled.payment
          elif placement.warnings:
               logger.error(
                    "Delivery %s needs manual credit reconciliation (prior balance %s)",
                    outcome.delivery.id, outcome.prior_balance,
               )
     return placement


def update_status(db: Session, ctx: RequestContext, delivery_id: int, new_status: DeliveryStatus) -> StatusChange:
     changed = run_in_transaction(db, DeliveryService.update_status, ctx, delivery_id, new_status)
     delivery = DeliveryService.get_delivery(db, delivery_id)
     result = StatusChange(delivery=delivery, changed=changed)

     if changed and delivery.status in (DeliveryStatus.EN_ROUTE, DeliveryStatus.DELIVERED):
          customer = ledger_service.get_customer(db, delivery.customer_id, include_retired=True)
          run_best_effort("Status notification", notify_status_change, customer, delivery, warnings=result.warnings)
     return result


def delete_delivery(db: Session, ctx: RequestContext, delivery_id: int) -> Decimal:
     return run_in_transaction(db, DeliveryService.delete_delivery, ctx, delivery_id)


def check_lock(db: Session, delivery_id: int) -> price_service.LockStatus:
     return price_service.check_lock(db, delivery_id)


def update_price(
     db: Session,
     ctx: RequestContext,
     delivery_id: int,
     new_price_per_kg,
     expected_version: Optional[int] = None,
) -> price_service.PriceRevision:
     return run_in_transaction(
          db, price_service.update_price, ctx, delivery_id, new_price_per_kg, expected_version
     )


def record_payment(db: Session, ctx: RequestContext, **kwargs) -> payment_service.PaymentOutcome:
     """Generic intake; see payment_service.record_payment for the arguments."""
     outcome = run_in_transaction(db, payment_service.record_payment, ctx, **kwargs)
     if outcome.created:
          _send_receipt(db, outcome.payment, outcome.warnings)
     return outcome


def record_cash_payment(
     db: Session,
     ctx: RequestContext,
     customer_id: int,
     amount,
     delivery_id: Optional[int] = None,
     client_reference: Optional[str] = None,
) -> payment_service.PaymentOutcome:
     outcome = run_in_transaction(
          db,
          payment_service.record_cash_payment,
          ctx,
          customer_id,
          amount,
          delivery_id=delivery_id,
          client_reference=client_reference,
     )
     if outcome.created:
          _send_receipt(db, outcome.payment, outcome.warnings)
     return outcome


def handle_webhook(db: Session, payload: dict) -> WebhookResult:
     ctx = RequestContext.system(WEBHOOK_PRINCIPAL)
     outcome = run_in_transaction(db, payment_service.process_webhook, ctx, payload)
     result = WebhookResult(outcome=outcome)
     if outcome.recorded:
          _send_receipt(db, outcome.payment, result.warnings)
     return result


def get_balance(db: Session, customer_id: int) -> Decimal:
     ledger_service.get_customer(db, customer_id, include_retired=True)
     return ledger_service.get_balance(db, customer_id)
