# services/delivery_service.py
"""
Delivery Service - delivery lifecycle and its effect on the ledger.

Every method here runs inside the caller's transaction and never commits;
services.billing owns the transaction boundary, so the delivery rows and
the balance adjustment are persisted together or not at all.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from models import CylinderCapacity, Delivery, DeliveryItem, DeliveryStatus, Payment
from services.context import RequestContext
from services.errors import ConflictError, NotFoundError, ValidationError
from services.ledger_service import adjust_balance, get_customer, to_money

logger = logging.getLogger(__name__)


@dataclass
class ItemRequest:
     cylinder_capacity_id: int
     quantity: int


@dataclass
class DeliveryOutcome:
     delivery: Delivery
     prior_balance: Decimal
     new_balance: Decimal


def status_lock_reason(status: DeliveryStatus) -> str:
     if status == DeliveryStatus.EN_ROUTE:
          return "This order is en route and cannot be modified."
     return "This order has been delivered and cannot be modified."


PAYMENT_LOCK_REASON = "This order has received payment(s) and the price cannot be changed."


class DeliveryService:
     """Service class for delivery creation, status moves and deletion."""

     @staticmethod
     def get_delivery(db: Session, delivery_id: int, for_update: bool = False) -> Delivery:
          """
          Load a delivery, optionally taking its row lock for the rest of
          the transaction.

          Raises:
               NotFoundError: If the delivery doesn't exist
          """
          query = db.query(Delivery).filter(Delivery.id == delivery_id)
          if for_update:
               query = query.with_for_update()
          delivery = query.first()
          if delivery is None:
               raise NotFoundError(f"Delivery with ID {delivery_id} not found")
          return delivery

     @staticmethod
     def has_payments(db: Session, delivery_id: int) -> bool:
          """True once any payment row, pending or completed, references the delivery."""
          return db.query(Payment.id).filter(Payment.delivery_id == delivery_id).first() is not None

     @staticmethod
     def create_delivery(
          db: Session,
          ctx: RequestContext,
          customer_id: int,
          items: Sequence[ItemRequest],
          manual_adjustment=0,
          notes: Optional[str] = None,
     ) -> DeliveryOutcome:
          """
          Persist a delivery with its items and bill it to the customer.

          total_kg is the sum of quantity * capacity over the items and
          total_charge is total_kg * the customer's current price_per_kg.
          The balance grows by total_charge + manual_adjustment.

          Args:
               db: SQLAlchemy database session
               ctx: Caller context (principal recorded as logged_by)
               customer_id: Customer being billed
               items: Cylinder lines, at least one, each with quantity > 0
               manual_adjustment: Flat signed add-on or discount
               notes: Free text for the drivers

          Returns:
               DeliveryOutcome with the balance before and after the charge

          Raises:
               ValidationError: Empty item list or non-positive quantity
               NotFoundError: Unknown customer or cylinder capacity
          """
          if not items:
               raise ValidationError("A delivery needs at least one cylinder")
          for item in items:
               if item.quantity is None or int(item.quantity) <= 0:
                    raise ValidationError("Cylinder quantity must be greater than zero")

          customer = get_customer(db, customer_id)

          capacity_ids = {item.cylinder_capacity_id for item in items}
          capacities = {
               cap.id: cap
               for cap in db.query(CylinderCapacity).filter(CylinderCapacity.id.in_(capacity_ids)).all()
          }
          missing = capacity_ids - capacities.keys()
          if missing:
               raise NotFoundError(f"Cylinder capacity not found: {sorted(missing)}")

          delivery_items: List[DeliveryItem] = []
          for item in items:
               kg = to_money(Decimal(int(item.quantity)) * Decimal(str(capacities[item.cylinder_capacity_id].capacity_kg)))
               delivery_items.append(DeliveryItem(
                    cylinder_capacity_id=item.cylinder_capacity_id,
                    quantity=int(item.quantity),
                    kg_contribution=kg,
               ))

          total_kg = sum((i.kg_contribution for i in delivery_items), Decimal("0"))
          price = to_money(customer.price_per_kg)
          total_charge = to_money(total_kg * price)
          adjustment = to_money(manual_adjustment or 0)

          delivery = Delivery(
               customer_id=customer.id,
               logged_by_user_id=ctx.principal_id,
               total_kg=total_kg,
               price_per_kg_at_time=price,
               total_charge=total_charge,
               manual_adjustment=adjustment,
               status=DeliveryStatus.PENDING,
               notes=notes,
               items=delivery_items,
          )
          db.add(delivery)
          db.flush()  # Flush to get the ID without committing

          delta = total_charge + adjustment
          new_balance = adjust_balance(db, customer.id, delta)

          logger.info(
               "Delivery %s created for customer %s: %s kg, charge %s, adjustment %s",
               delivery.id, customer.id, total_kg, total_charge, adjustment,
          )
          return DeliveryOutcome(
               delivery=delivery,
               prior_balance=new_balance - delta,
               new_balance=new_balance,
          )

     @staticmethod
     def update_status(
          db: Session,
          ctx: RequestContext,
          delivery_id: int,
          new_status: DeliveryStatus,
     ) -> bool:
          """
          Move a delivery forward: pending -> en_route -> delivered.

          Returns:
               True if the status changed, False for a same-state no-op

          Raises:
               ConflictError: Any backwards or skipping transition
          """
          delivery = DeliveryService.get_delivery(db, delivery_id, for_update=True)
          new_status = DeliveryStatus(new_status)

          if not delivery.can_transition_to(new_status):
               message = f"Cannot move delivery {delivery_id} from {delivery.status.value} to {new_status.value}"
               raise ConflictError(message, reason=message)

          if new_status == delivery.status:
               return False

          delivery.status = new_status
          db.flush()
          logger.info("Delivery %s moved to %s by %s", delivery_id, new_status.value, ctx.principal_id)
          return True

     @staticmethod
     def delete_delivery(db: Session, ctx: RequestContext, delivery_id: int) -> Decimal:
          """
          Delete a pending, unpaid delivery with its items and reverse
          everything it added to the balance (charge and manual adjustment).

          Returns:
               The customer's new balance

          Raises:
               ConflictError: Delivery is not pending or has payments
          """
          delivery = DeliveryService.get_delivery(db, delivery_id, for_update=True)
          if delivery.status != DeliveryStatus.PENDING:
               raise ConflictError(
                    f"Delivery {delivery_id} cannot be deleted",
                    reason=status_lock_reason(delivery.status),
               )
          if DeliveryService.has_payments(db, delivery_id):
               raise ConflictError(
                    f"Delivery {delivery_id} cannot be deleted",
                    reason=PAYMENT_LOCK_REASON,
               )

          customer_id = delivery.customer_id
          reversal = -delivery.billed_amount
          db.delete(delivery)
          db.flush()

          new_balance = adjust_balance(db, customer_id, reversal)
          logger.info("Delivery %s deleted by %s, balance adjusted by %s", delivery_id, ctx.principal_id, reversal)
          return new_balance
