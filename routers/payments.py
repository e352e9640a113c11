# routers/payments.py
"""
Payment intake API.

POST /api/payments/cash: staff record cash handed over at the shop.
POST /api/payments/initiate: start a processor checkout, returns the redirect URL.
POST /api/payments/webhook: processor callback; the only path that records
     gateway payments. Answers 200 for anything it handled (including
     duplicates and unknown references) so the processor stops retrying,
     and non-2xx when processing failed so it retries later.
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_session
from dependencies import ensure_customer_access, require_capability
from schemas.payment import (
     CashPaymentRequest,
     InitiatePaymentRequest,
     InitiatePaymentResponse,
     PaymentRecordedResponse,
     PaymentResponse,
     WebhookPayload,
     WebhookResponse,
)
from services import billing
from services.context import Capability, RequestContext
from services.errors import BillingError
from services.payment_gateway import initiate_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post(
     "/cash",
     response_model=PaymentRecordedResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record cash payment",
)
def record_cash_payment(
     body: CashPaymentRequest,
     response: Response,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.RECORD_CASH)),
):
     """
     Record cash received by the calling staff member.

     Resubmitting with the same ``client_reference`` returns the stored
     payment with ``duplicate: true`` and moves no money.
     """
     outcome = billing.record_cash_payment(
          db,
          ctx,
          body.customer_id,
          body.amount,
          delivery_id=body.delivery_id,
          client_reference=body.client_reference,
     )
     if outcome.duplicate:
          response.status_code = status.HTTP_200_OK
     return PaymentRecordedResponse(
          payment=PaymentResponse.model_validate(outcome.payment),
          duplicate=outcome.duplicate,
          balance=outcome.new_balance,
          warnings=outcome.warnings,
     )


@router.post("/initiate", response_model=InitiatePaymentResponse, summary="Start a gateway checkout")
def initiate(
     body: InitiatePaymentRequest,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.INITIATE_PAYMENT)),
):
     ensure_customer_access(ctx, body.customer_id)
     session = initiate_payment(
          db,
          ctx,
          body.customer_id,
          body.amount,
          delivery_id=body.delivery_id,
          payment_method=body.payment_method,
     )
     return InitiatePaymentResponse(
          redirect_url=session.redirect_url,
          api_ref=session.api_ref,
          invoice_id=session.invoice_id,
     )


@router.post("/webhook", response_model=WebhookResponse, summary="Payment processor callback")
def payment_webhook(
     payload: WebhookPayload,
     db: Session = Depends(get_session),
):
     try:
          result = billing.handle_webhook(db, payload.model_dump())
     except BillingError:
          raise
     except Exception:
          logger.exception("Webhook processing failed for invoice %s", payload.invoice_id)
          return JSONResponse(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               content={"success": False, "error": "Webhook processing failed"},
          )

     outcome = result.outcome
     return WebhookResponse(
          success=True,
          status=outcome.status,
          payment_id=outcome.payment.id if outcome.payment else None,
     )
