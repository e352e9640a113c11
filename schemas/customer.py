# schemas/customer.py
from decimal import Decimal
from typing import List
from pydantic import BaseModel


class BalanceResponse(BaseModel):
     customer_id: int
     balance: Decimal


class DebtorEntry(BaseModel):
     customer_id: int
     shop_name: str
     in_charge_name: str
     phone: str
     balance: Decimal


class DebtsReportResponse(BaseModel):
     debtors: List[DebtorEntry]
     total_outstanding: Decimal


class BalanceVerificationResponse(BaseModel):
     verified: bool
     message: str
     customers_checked: int = 1
     mismatches: List[dict] = []
