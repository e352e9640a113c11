# routers/deliveries.py
"""
Delivery API routes.

Staff log deliveries for any customer; customers place orders for their own
shop. Status moves, deletion and price edits are staff-only. Billing errors
are not caught here: main.py maps them to HTTP statuses.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import ensure_customer_access, get_request_context, require_capability
from schemas.delivery import (
     DeliveryCreate,
     DeliveryCreateResponse,
     DeliveryDeleteResponse,
     DeliveryResponse,
     LockStatusResponse,
     PriceUpdate,
     PriceUpdateResponse,
     StatusUpdate,
     StatusUpdateResponse,
)
from schemas.payment import PaymentResponse
from services import billing
from services.context import Capability, RequestContext
from services.delivery_service import DeliveryService, ItemRequest

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


def _resolve_customer(ctx: RequestContext, body: DeliveryCreate) -> int:
     """Whose account a new delivery is billed to."""
     if ctx.can(Capability.MANAGE_DELIVERIES):
          if body.customer_id is None:
               raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="customer_id is required",
               )
          return body.customer_id

     if not ctx.can(Capability.PLACE_OWN_ORDERS):
          raise HTTPException(status_code=403, detail="You do not have permission to perform this action")
     if body.customer_id is not None and body.customer_id != ctx.customer_id:
          raise HTTPException(status_code=403, detail="Customers can only order for their own shop")
     if body.manual_adjustment:
          raise HTTPException(status_code=403, detail="Only staff can apply manual adjustments")
     return ctx.customer_id


@router.post(
     "",
     response_model=DeliveryCreateResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Log a delivery",
)
def create_delivery(
     body: DeliveryCreate,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(get_request_context),
):
     """
     Create a delivery and bill it to the customer.

     If the customer was holding credit, the credit is applied to the new
     delivery; a failure there comes back in ``warnings`` and the delivery
     is still saved.
     """
     customer_id = _resolve_customer(ctx, body)
     items = [ItemRequest(i.cylinder_capacity_id, i.quantity) for i in body.items]
     placement = billing.create_delivery(
          db,
          ctx,
          customer_id,
          items,
          manual_adjustment=body.manual_adjustment,
          notes=body.notes,
     )
     return DeliveryCreateResponse(
          delivery=DeliveryResponse.model_validate(placement.delivery),
          balance=placement.balance,
          settlement=PaymentResponse.model_validate(placement.settlement) if placement.settlement else None,
          warnings=placement.warnings,
     )


@router.get("/{delivery_id}", response_model=DeliveryResponse, summary="Get delivery by ID")
def get_delivery(
     delivery_id: int,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(get_request_context),
):
     delivery = DeliveryService.get_delivery(db, delivery_id)
     ensure_customer_access(ctx, delivery.customer_id)
     return DeliveryResponse.model_validate(delivery)


@router.patch("/{delivery_id}/status", response_model=StatusUpdateResponse, summary="Move delivery status forward")
def update_status(
     delivery_id: int,
     body: StatusUpdate,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.MANAGE_DELIVERIES)),
):
     change = billing.update_status(db, ctx, delivery_id, body.status)
     return StatusUpdateResponse(
          delivery=DeliveryResponse.model_validate(change.delivery),
          changed=change.changed,
          warnings=change.warnings,
     )


@router.delete("/{delivery_id}", response_model=DeliveryDeleteResponse, summary="Delete a pending delivery")
def delete_delivery(
     delivery_id: int,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.MANAGE_DELIVERIES)),
):
     balance = billing.delete_delivery(db, ctx, delivery_id)
     return DeliveryDeleteResponse(delivery_id=delivery_id, balance=balance)


@router.get("/{delivery_id}/lock", response_model=LockStatusResponse, summary="Can the price still change?")
def get_lock_status(
     delivery_id: int,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.EDIT_PRICES)),
):
     lock = billing.check_lock(db, delivery_id)
     return LockStatusResponse(
          delivery_id=delivery_id,
          locked=lock.locked,
          kind=lock.kind.value,
          reason=lock.reason,
     )


@router.patch("/{delivery_id}/price", response_model=PriceUpdateResponse, summary="Revise price per kg")
def update_price(
     delivery_id: int,
     body: PriceUpdate,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.EDIT_PRICES)),
):
     revision = billing.update_price(
          db,
          ctx,
          delivery_id,
          body.price_per_kg,
          expected_version=body.expected_version,
     )
     return PriceUpdateResponse(
          delivery=DeliveryResponse.model_validate(revision.delivery),
          previous_total_charge=revision.previous_total_charge,
          new_total_charge=revision.new_total_charge,
          delta=revision.delta,
          balance=revision.new_balance,
     )
