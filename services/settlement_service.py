# services/settlement_service.py
"""
Overpayment auto-settlement.

When a delivery is billed to a customer who was holding credit, the credit
is applied to the new delivery as a "credit-application" payment. The
balance itself is already right (the charge was simply added to a negative
number), so the payment only documents which delivery the credit paid for.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from models import PaymentMethod, PaymentStatus
from services.context import RequestContext
from services.delivery_service import DeliveryService
from services.ledger_service import to_money
from services.payment_service import PaymentOutcome, record_payment

logger = logging.getLogger(__name__)


def settlement_reference(delivery_id: int) -> str:
     """One credit application per delivery, whatever the number of retries."""
     return f"CREDIT-{delivery_id}"


def apply_credit_to_delivery(
     db: Session,
     ctx: RequestContext,
     delivery_id: int,
     prior_balance: Decimal,
) -> Optional[PaymentOutcome]:
     """
     Offset ``min(|prior credit|, new charge)`` against the delivery.

     Returns None when there was no credit or nothing to offset.
     """
     prior_balance = to_money(prior_balance)
     if prior_balance >= 0:
          return None

     delivery = DeliveryService.get_delivery(db, delivery_id)
     charge = to_money(delivery.billed_amount)
     if charge <= 0:
          return None

     settlement = min(-prior_balance, charge)
     outcome = record_payment(
          db,
          ctx,
          customer_id=delivery.customer_id,
          delivery_id=delivery.id,
          amount=settlement,
          method=PaymentMethod.CREDIT_APPLICATION,
          provider_reference=settlement_reference(delivery.id),
          status=PaymentStatus.COMPLETED,
          payment_provider="credit",
          handled_by=ctx.principal_id,
     )
     logger.info("Applied %s of credit to delivery %s", settlement, delivery.id)
     return outcome
