# services/notifications.py
"""
Customer-facing dispatch: order status SMS and payment receipts.

Both are called through services.side_effects.run_best_effort, so every
failure here is reported by raising ExternalServiceError.
"""
import logging
import os

import requests

from models import Customer, Delivery, DeliveryStatus, Payment
from services.errors import ExternalServiceError
from utils.email import send_receipt_email

logger = logging.getLogger(__name__)

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
SMS_TIMEOUT = 10

STATUS_MESSAGES = {
     DeliveryStatus.EN_ROUTE: "Your order is now en route and will arrive soon!",
     DeliveryStatus.DELIVERED: "Your order has been delivered successfully!",
}


def send_sms(phone_number: str, message: str) -> dict:
     if not (TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER):
          raise ExternalServiceError("Twilio credentials are not set")
     try:
          response = requests.post(
               f"https://api.twilio.com/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
               auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
               data={"To": phone_number, "From": TWILIO_PHONE_NUMBER, "Body": message},
               timeout=SMS_TIMEOUT,
          )
     except requests.RequestException as e:
          raise ExternalServiceError(f"SMS request failed: {e}") from e
     if not response.ok:
          raise ExternalServiceError(f"Twilio error: {response.status_code}")
     return response.json()


def notify_status_change(customer: Customer, delivery: Delivery) -> None:
     """Tell the customer their order moved to en_route or delivered."""
     message = STATUS_MESSAGES.get(delivery.status)
     if message is None:
          return
     send_sms(customer.phone, message)
     logger.info("Status notification sent for delivery %s (%s)", delivery.id, delivery.status.value)


def send_payment_receipt(customer: Customer, payment: Payment) -> None:
     if not customer.email:
          return
     send_receipt_email(
          to_email=customer.email,
          customer_name=customer.in_charge_name,
          amount=payment.amount_paid,
          method=payment.method.value,
          reference=payment.provider_reference,
          paid_at=payment.paid_at,
     )
     logger.info("Receipt e-mail sent for payment %s", payment.provider_reference)
