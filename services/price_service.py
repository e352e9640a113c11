# services/price_service.py
"""
Price Revision - retroactive price_per_kg edits on a delivery.

The lock status is always recomputed inside the writing transaction, with
the delivery row locked, so a payment that lands between a client's
advisory check and the write is still seen.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from models import Delivery, DeliveryStatus
from services.context import RequestContext
from services.delivery_service import DeliveryService, PAYMENT_LOCK_REASON, status_lock_reason
from services.errors import ConflictError, ValidationError
from services.ledger_service import adjust_balance, get_balance, to_money

logger = logging.getLogger(__name__)


class LockKind(str, enum.Enum):
     UNLOCKED = "unlocked"
     EN_ROUTE = "en_route"
     DELIVERED = "delivered"
     PAYMENT_RECEIVED = "payment_received"


@dataclass(frozen=True)
class LockStatus:
     kind: LockKind
     reason: str = ""

     @property
     def locked(self) -> bool:
          return self.kind != LockKind.UNLOCKED


UNLOCKED = LockStatus(LockKind.UNLOCKED)


@dataclass
class PriceRevision:
     delivery: Delivery
     previous_total_charge: Decimal
     new_total_charge: Decimal
     delta: Decimal
     new_balance: Decimal


def lock_status_for(db: Session, delivery: Delivery) -> LockStatus:
     if delivery.status == DeliveryStatus.EN_ROUTE:
          return LockStatus(LockKind.EN_ROUTE, status_lock_reason(delivery.status))
     if delivery.status == DeliveryStatus.DELIVERED:
          return LockStatus(LockKind.DELIVERED, status_lock_reason(delivery.status))
     if DeliveryService.has_payments(db, delivery.id):
          return LockStatus(LockKind.PAYMENT_RECEIVED, PAYMENT_LOCK_REASON)
     return UNLOCKED


def check_lock(db: Session, delivery_id: int) -> LockStatus:
     """
     Whether the delivery's price may still be edited. Advisory when read
     by a client; update_price repeats it under the row lock.
     """
     delivery = DeliveryService.get_delivery(db, delivery_id)
     return lock_status_for(db, delivery)


def update_price(
     db: Session,
     ctx: RequestContext,
     delivery_id: int,
     new_price_per_kg,
     expected_version: Optional[int] = None,
) -> PriceRevision:
     """
     Reprice a pending, unpaid delivery and move the difference onto the
     customer's balance in the same transaction.

     Raises:
          ValidationError: Non-positive price
          NotFoundError: Unknown delivery
          ConflictError: Delivery locked, or changed since ``expected_version``
     """
     try:
          price = to_money(new_price_per_kg)
     except (InvalidOperation, ValueError, TypeError):
          raise ValidationError("Price per kg must be a number")
     if price <= 0:
          raise ValidationError("Price per kg must be greater than zero")

     delivery = DeliveryService.get_delivery(db, delivery_id, for_update=True)

     if expected_version is not None and delivery.version != expected_version:
          raise ConflictError(
               f"Delivery {delivery_id} changed since it was read",
               reason="This order was modified by someone else. Reload and try again.",
          )

     lock = lock_status_for(db, delivery)
     if lock.locked:
          raise ConflictError(f"Delivery {delivery_id} price is locked", reason=lock.reason)

     previous_total = to_money(delivery.total_charge)
     new_total = to_money(price * Decimal(str(delivery.total_kg)))
     delta = new_total - previous_total

     delivery.price_per_kg_at_time = price
     delivery.total_charge = new_total
     db.flush()  # version check happens here

     if delta != 0:
          new_balance = adjust_balance(db, delivery.customer_id, delta)
     else:
          new_balance = get_balance(db, delivery.customer_id)

     logger.info(
          "Delivery %s repriced to %s/kg by %s: %s -> %s (delta %s)",
          delivery_id, price, ctx.principal_id, previous_total, new_total, delta,
     )
     return PriceRevision(
          delivery=delivery,
          previous_total_charge=previous_total,
          new_total_charge=new_total,
          delta=delta,
          new_balance=new_balance,
     )
