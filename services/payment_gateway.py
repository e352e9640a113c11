# services/payment_gateway.py
"""
Gateway-initiate path: ask the payment processor (IntaSend) for a collection
request and hand the redirect URL back to the UI.

Nothing is written to the database here. The payment is recorded only when
the processor calls the webhook with state COMPLETE, so a customer who
abandons the checkout never locks the delivery's price.
"""
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import requests
from sqlalchemy.orm import Session

from services.context import RequestContext
from services.delivery_service import DeliveryService
from services.errors import ExternalServiceError, ValidationError
from services.ledger_service import get_customer, to_money

logger = logging.getLogger(__name__)

INTASEND_BASE_URL = os.getenv("INTASEND_BASE_URL", "https://api.intasend.com")
INTASEND_API_KEY = os.getenv("INTASEND_API_KEY")
INTASEND_PUBLISHABLE_KEY = os.getenv("INTASEND_PUBLISHABLE_KEY")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "KES")
PAYMENT_TIMEOUT = float(os.getenv("PAYMENT_TIMEOUT", "15"))

# UI method -> processor method
METHOD_MAP = {
     "mpesa": "M-PESA",
     "airtel-money": "M-PESA",
     "bank-transfer": "BANK-PAYMENT",
     "card": "CARD-PAYMENT",
}
DEFAULT_METHOD = "M-PESA"


@dataclass
class CheckoutSession:
     redirect_url: str
     api_ref: str
     invoice_id: Optional[str] = None


def _intasend_headers():
     return {
          "Content-Type": "application/json",
          "Authorization": f"Bearer {INTASEND_API_KEY}",
     }


def initiate_payment(
     db: Session,
     ctx: RequestContext,
     customer_id: int,
     amount,
     delivery_id: Optional[int] = None,
     payment_method: str = "mpesa",
) -> CheckoutSession:
     """
     Create a collection request with the processor.

     Raises:
          ValidationError: Non-positive amount or a delivery of another customer
          NotFoundError: Unknown customer or delivery
          ExternalServiceError: Processor not configured, unreachable,
               timed out, or answered with an error
     """
     amount = to_money(amount)
     if amount <= 0:
          raise ValidationError("Payment amount must be greater than zero")

     customer = get_customer(db, customer_id)
     if delivery_id is not None:
          delivery = DeliveryService.get_delivery(db, delivery_id)
          if delivery.customer_id != customer.id:
               raise ValidationError(f"Delivery {delivery_id} does not belong to customer {customer.id}")
          api_ref = str(delivery_id)
     else:
          api_ref = f"payment-{int(time.time() * 1000)}"

     if not (INTASEND_API_KEY and INTASEND_PUBLISHABLE_KEY):
          raise ExternalServiceError("Payment processor is not configured")

     payload = {
          "public_key": INTASEND_PUBLISHABLE_KEY,
          "email": customer.email,
          "phone_number": customer.phone,
          "amount": float(amount),
          "currency": PAYMENT_CURRENCY,
          "api_ref": api_ref,
          "method": METHOD_MAP.get(payment_method, DEFAULT_METHOD),
          "name": customer.in_charge_name,
     }

     logger.info(
          "Initiating %s payment of %s for customer %s (api_ref=%s) by %s",
          payload["method"], amount, customer.id, api_ref, ctx.principal_id,
     )
     try:
          response = requests.post(
               f"{INTASEND_BASE_URL}/api/v1/payment/collection/",
               json=payload,
               headers=_intasend_headers(),
               timeout=PAYMENT_TIMEOUT,
          )
     except requests.Timeout as e:
          raise ExternalServiceError("Payment provider timed out") from e
     except requests.RequestException as e:
          raise ExternalServiceError(f"Payment provider unreachable: {e}") from e

     if response.status_code not in (200, 201):
          logger.error("IntaSend error %s: %s", response.status_code, response.text)
          raise ExternalServiceError("Payment provider error")

     data = response.json()
     redirect_url = data.get("url") or data.get("redirect_url")
     if not redirect_url:
          raise ExternalServiceError("Payment provider returned no redirect URL")

     invoice = data.get("invoice") or {}
     return CheckoutSession(
          redirect_url=redirect_url,
          api_ref=api_ref,
          invoice_id=invoice.get("invoice_id") or data.get("id"),
     )
