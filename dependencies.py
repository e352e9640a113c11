# dependencies.py
"""
FastAPI dependencies shared by the routers: bearer-token decoding into a
RequestContext, capability checks and customer scoping.
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from database import get_session
from models import Customer
from services.context import Capability, RequestContext, Role

load_dotenv()

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("JWT_SECRET")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")


def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=401, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
     except JWTError:
          raise HTTPException(status_code=403, detail="Invalid token")


def _customer_id_for_user(db: Session, user_id: str) -> Optional[int]:
     customer = db.query(Customer).filter(Customer.user_id == user_id).first()
     return customer.id if customer else None


def get_request_context(
     token: dict = Depends(verify_token),
     db: Session = Depends(get_session),
) -> RequestContext:
     """
     Build the caller context from the token claims.

     Claims: ``id`` (or ``sub``) is the principal, ``role`` one of
     admin/co_admin/staff/customer. A customer's own record comes from the
     ``customer_id`` claim or, failing that, from customers.user_id.
     """
     principal = token.get("id") or token.get("sub")
     if principal is None:
          raise HTTPException(status_code=403, detail="Invalid token")

     try:
          role = Role(token.get("role", Role.CUSTOMER.value))
     except ValueError:
          raise HTTPException(status_code=403, detail="Unknown role")
     if role == Role.SYSTEM:
          raise HTTPException(status_code=403, detail="Unknown role")

     customer_id = None
     if role == Role.CUSTOMER:
          customer_id = token.get("customer_id") or _customer_id_for_user(db, str(principal))
          if customer_id is None:
               raise HTTPException(status_code=403, detail="No customer record for this account")
          customer_id = int(customer_id)

     return RequestContext(principal_id=str(principal), role=role, customer_id=customer_id)


def require_capability(capability: Capability):
     """Dependency factory: reject callers whose role lacks ``capability``."""

     def checker(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
          if not ctx.can(capability):
               logger.info("Principal %s (%s) denied %s", ctx.principal_id, ctx.role.value, capability.value)
               raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You do not have permission to perform this action",
               )
          return ctx

     return checker


def ensure_customer_access(ctx: RequestContext, customer_id: int) -> None:
     """Staff see every customer; a customer only their own record."""
     if ctx.can(Capability.VIEW_ALL_CUSTOMERS):
          return
     if ctx.customer_id is None or ctx.customer_id != customer_id:
          raise HTTPException(
               status_code=status.HTTP_403_FORBIDDEN,
               detail="Access denied to this customer",
          )
