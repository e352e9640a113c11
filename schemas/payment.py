# schemas/payment.py
"""
Pydantic schemas for payment intake APIs.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from models import PaymentMethod, PaymentStatus


class PaymentResponse(BaseModel):
     id: int
     customer_id: int
     delivery_id: Optional[int] = None
     amount_paid: Decimal
     method: PaymentMethod
     payment_status: PaymentStatus
     payment_provider: str
     provider_reference: str
     handled_by: Optional[str] = None
     payer_account: Optional[str] = None
     paid_at: Optional[datetime] = None

     model_config = ConfigDict(from_attributes=True)


class CashPaymentRequest(BaseModel):
     """Request body for POST /api/payments/cash."""

     customer_id: int = Field(..., gt=0, description="Customer paying")
     delivery_id: Optional[int] = Field(None, gt=0, description="Delivery paid for; omit for account credit")
     amount: Decimal = Field(..., description="Amount received (must be positive)")
     client_reference: Optional[str] = Field(
          None,
          min_length=1,
          max_length=200,
          description="Optional form token; resubmitting the same token records the payment once",
     )

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "customer_id": 1,
                    "delivery_id": 10,
                    "amount": 1800.00,
               }
          }
     )


class PaymentRecordedResponse(BaseModel):
     payment: PaymentResponse
     duplicate: bool = False
     balance: Decimal
     warnings: List[str] = []


class InitiatePaymentRequest(BaseModel):
     """Request body for POST /api/payments/initiate."""

     customer_id: int = Field(..., gt=0)
     amount: Decimal = Field(..., description="Amount to collect (must be positive)")
     delivery_id: Optional[int] = Field(None, gt=0)
     payment_method: str = Field(default="mpesa", description="mpesa, airtel-money, bank-transfer or card")


class InitiatePaymentResponse(BaseModel):
     redirect_url: str
     api_ref: str
     invoice_id: Optional[str] = None


class WebhookPayload(BaseModel):
     """Payment processor callback body."""

     invoice_id: Optional[str] = None
     state: Optional[str] = None
     amount: Optional[str] = None
     currency: Optional[str] = None
     api_ref: Optional[str] = None
     account: Optional[str] = None
     provider: Optional[str] = None

     model_config = ConfigDict(
          extra="allow",
          coerce_numbers_to_str=True,
          json_schema_extra={
               "example": {
                    "invoice_id": "INV-100",
                    "state": "COMPLETE",
                    "amount": "500.00",
                    "currency": "KES",
                    "api_ref": "10",
                    "account": "254700000000",
               }
          },
     )


class WebhookResponse(BaseModel):
     success: bool = True
     status: str
     payment_id: Optional[int] = None


class PaymentHistoryResponse(BaseModel):
     payments: List[PaymentResponse]
     total: int
     page: int = 1
     page_size: int = 50
