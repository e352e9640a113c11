# schemas/delivery.py
"""
Pydantic schemas for delivery API request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from models import DeliveryStatus
from schemas.payment import PaymentResponse


class DeliveryItemCreate(BaseModel):
     cylinder_capacity_id: int = Field(..., gt=0, description="Cylinder capacity from the catalog")
     quantity: int = Field(..., description="Number of cylinders (must be positive)")


class DeliveryCreate(BaseModel):
     """Schema for logging a new delivery."""
     customer_id: Optional[int] = Field(None, gt=0, description="Customer billed (defaults to the caller's own record)")
     items: List[DeliveryItemCreate] = Field(default_factory=list)
     manual_adjustment: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
     notes: Optional[str] = Field(None, max_length=2000)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "customer_id": 1,
                    "items": [{"cylinder_capacity_id": 1, "quantity": 2}],
                    "manual_adjustment": 0,
                    "notes": "Back entrance",
               }
          }
     )


class DeliveryItemResponse(BaseModel):
     id: int
     cylinder_capacity_id: int
     quantity: int
     kg_contribution: Decimal

     model_config = ConfigDict(from_attributes=True)


class DeliveryResponse(BaseModel):
     id: int
     customer_id: int
     total_kg: Decimal
     price_per_kg_at_time: Decimal
     total_charge: Decimal
     manual_adjustment: Decimal
     status: DeliveryStatus
     notes: Optional[str] = None
     delivery_date: Optional[datetime] = None
     version: int
     items: List[DeliveryItemResponse] = []

     model_config = ConfigDict(from_attributes=True)


class DeliveryCreateResponse(BaseModel):
     delivery: DeliveryResponse
     balance: Decimal
     settlement: Optional[PaymentResponse] = None
     warnings: List[str] = []


class StatusUpdate(BaseModel):
     status: DeliveryStatus

     model_config = ConfigDict(json_schema_extra={"example": {"status": "en_route"}})


class StatusUpdateResponse(BaseModel):
     delivery: DeliveryResponse
     changed: bool
     warnings: List[str] = []


class LockStatusResponse(BaseModel):
     delivery_id: int
     locked: bool
     kind: str = "unlocked"
     reason: str = ""


class PriceUpdate(BaseModel):
     """Schema for a retroactive price change."""
     price_per_kg: Decimal = Field(..., description="New price per kg (must be positive)")
     expected_version: Optional[int] = Field(
          None,
          description="Version the client last read; a mismatch is rejected with 409",
     )

     model_config = ConfigDict(json_schema_extra={"example": {"price_per_kg": 200, "expected_version": 1}})


class PriceUpdateResponse(BaseModel):
     delivery: DeliveryResponse
     previous_total_charge: Decimal
     new_total_charge: Decimal
     delta: Decimal
     balance: Decimal


class DeliveryDeleteResponse(BaseModel):
     delivery_id: int
     balance: Decimal
