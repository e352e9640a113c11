# routers/customers.py
"""
Customer account API: balance, payment history, debts report and the
balance reconciliation checks used by admins.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_session
from dependencies import ensure_customer_access, get_request_context, require_capability
from schemas.customer import (
     BalanceResponse,
     BalanceVerificationResponse,
     DebtorEntry,
     DebtsReportResponse,
)
from schemas.payment import PaymentHistoryResponse, PaymentResponse
from services import billing, ledger_service, payment_service
from services.context import Capability, RequestContext

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("/debts", response_model=DebtsReportResponse, summary="Customers who owe money")
def debts_report(
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.VIEW_ALL_CUSTOMERS)),
):
     debtors, total = ledger_service.list_debtors(db)
     return DebtsReportResponse(
          debtors=[
               DebtorEntry(
                    customer_id=c.id,
                    shop_name=c.shop_name,
                    in_charge_name=c.in_charge_name,
                    phone=c.phone,
                    balance=c.balance,
               )
               for c in debtors
          ],
          total_outstanding=total,
     )


@router.get(
     "/verify-balances",
     response_model=BalanceVerificationResponse,
     summary="Reconcile every customer's balance",
)
def verify_all_balances(
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.RECONCILE)),
):
     """Recompute every balance from deliveries and payments and report drift."""
     all_valid, mismatches, checked = ledger_service.verify_all_balances(db)
     return BalanceVerificationResponse(
          verified=all_valid,
          message="All balances verified" if all_valid else f"{len(mismatches)} balance(s) drifted",
          customers_checked=checked,
          mismatches=mismatches,
     )


@router.get("/{customer_id}/balance", response_model=BalanceResponse, summary="Current balance")
def get_balance(
     customer_id: int,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(get_request_context),
):
     ensure_customer_access(ctx, customer_id)
     return BalanceResponse(customer_id=customer_id, balance=billing.get_balance(db, customer_id))


@router.get("/{customer_id}/payments", response_model=PaymentHistoryResponse, summary="Payment history")
def payment_history(
     customer_id: int,
     page: int = Query(1, ge=1),
     page_size: int = Query(50, ge=1, le=100),
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(get_request_context),
):
     ensure_customer_access(ctx, customer_id)
     rows, total = payment_service.list_payments(db, customer_id, page=page, page_size=page_size)
     return PaymentHistoryResponse(
          payments=[PaymentResponse.model_validate(p) for p in rows],
          total=total,
          page=page,
          page_size=page_size,
     )


@router.get(
     "/{customer_id}/verify-balance",
     response_model=BalanceVerificationResponse,
     summary="Reconcile one customer's balance",
)
def verify_balance(
     customer_id: int,
     db: Session = Depends(get_session),
     ctx: RequestContext = Depends(require_capability(Capability.RECONCILE)),
):
     ledger_service.get_customer(db, customer_id, include_retired=True)
     verified, message = ledger_service.verify_customer_balance(db, customer_id)
     return BalanceVerificationResponse(verified=verified, message=message)
