# utils/email.py
import requests
import os

from services.errors import ExternalServiceError

BREVO_KEY = os.getenv("BREVO_API_KEY")
RECEIPT_SENDER_EMAIL = os.getenv("RECEIPT_SENDER_EMAIL", "noreply@gas-delivery.local")
RECEIPT_SENDER_NAME = os.getenv("RECEIPT_SENDER_NAME", "Gas Delivery")
EMAIL_TIMEOUT = 10


def send_receipt_email(
     to_email: str,
     customer_name: str,
     amount,
     method: str,
     reference: str,
     paid_at=None,
):
     if not BREVO_KEY:
          raise ExternalServiceError("BREVO_API_KEY is not set")

     paid_on = paid_at.strftime("%Y-%m-%d %H:%M") if paid_at else ""
     try:
          response = requests.post(
               "https://api.brevo.com/v3/smtp/email",
               headers={
                    "api-key": BREVO_KEY,
                    "Content-Type": "application/json",
               },
               json={
                    "sender": {"name": RECEIPT_SENDER_NAME, "email": RECEIPT_SENDER_EMAIL},
                    "to": [{"email": to_email, "name": customer_name}],
                    "subject": f"Payment receipt {reference}",
                    "htmlContent": f"""
                         <h2>Thank you, {customer_name}</h2>
                         <p>We received <strong>{amount}</strong> by {method}.</p>
                         <p>Reference: {reference}<br/>{paid_on}</p>
                    """,
               },
               timeout=EMAIL_TIMEOUT,
          )
     except requests.RequestException as e:
          raise ExternalServiceError(f"Brevo request failed: {e}") from e
     if response.status_code not in (200, 201, 202):
          raise ExternalServiceError(f"Brevo error: {response.text}")
