# services/ledger_service.py
"""
Ledger Core - the customer's arrears running total.

Every balance mutation in the system goes through adjust_balance, which
issues a single atomic statement:

     UPDATE customers SET balance = balance + :delta WHERE id = :id

so two concurrent writers can never lose each other's update. Positive
balances are money owed, negative balances are credit; there is no floor.

Verification: recompute the balance from deliveries and ledger-effective
payments and compare with the stored running total.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from models import Customer, Delivery, Payment
from services.errors import NotFoundError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
     """Normalize an amount to a 2-place Decimal."""
     return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def get_customer(db: Session, customer_id: int, include_retired: bool = False) -> Customer:
     customer = db.query(Customer).filter(Customer.id == customer_id).first()
     if customer is None or (customer.is_retired and not include_retired):
          raise NotFoundError(f"Customer with ID {customer_id} not found")
     return customer


def adjust_balance(db: Session, customer_id: int, delta) -> Decimal:
     """
     Atomically add ``delta`` to a customer's balance and return the new value.

     The increment happens inside the database, in the caller's transaction,
     and holds the row lock until that transaction ends. Any Customer instance
     already loaded in the session is refreshed with the new value.

     Raises:
          NotFoundError: If the customer does not exist.
     """
     delta = to_money(delta)
     result = db.execute(
          update(Customer)
          .where(Customer.id == customer_id)
          .values(balance=Customer.balance + delta)
          .execution_options(synchronize_session=False)
     )
     if result.rowcount == 0:
          raise NotFoundError(f"Customer with ID {customer_id} not found")

     loaded = db.identity_map.get(identity_key(Customer, customer_id))
     if loaded is not None:
          db.expire(loaded, ["balance"])

     new_balance = get_balance(db, customer_id)
     logger.debug("Balance of customer %s adjusted by %s to %s", customer_id, delta, new_balance)
     return new_balance


def get_balance(db: Session, customer_id: int) -> Decimal:
     """Plain read of the stored running total."""
     balance = db.query(Customer.balance).filter(Customer.id == customer_id).scalar()
     if balance is None:
          raise NotFoundError(f"Customer with ID {customer_id} not found")
     return to_money(balance)


def compute_expected_balance(db: Session, customer_id: int) -> Decimal:
     """
     Derive the balance from source rows:
     sum(total_charge + manual_adjustment) - sum(completed ledger payments).
     """
     charged = (
          db.query(func.coalesce(func.sum(Delivery.total_charge + Delivery.manual_adjustment), 0))
          .filter(Delivery.customer_id == customer_id)
          .scalar()
     )
     paid = (
          db.query(func.coalesce(func.sum(Payment.amount_paid), 0))
          .filter(Payment.customer_id == customer_id, Payment.ledger_effective())
          .scalar()
     )
     return to_money(charged) - to_money(paid)


def verify_customer_balance(db: Session, customer_id: int) -> Tuple[bool, str]:
     """
     Compare the stored running total with the derived balance.

     Returns:
          (success: bool, message: str)
     """
     stored = get_balance(db, customer_id)
     expected = compute_expected_balance(db, customer_id)
     if stored != expected:
          return False, f"Balance drift: stored={stored}, expected={expected}"
     return True, "Balance verified"


def verify_all_balances(db: Session) -> Tuple[bool, List[dict], int]:
     """
     Verify every customer's running total.

     Returns:
          (all_valid: bool, mismatches: list of dicts, customers_checked: int)
     """
     mismatches = []
     checked = 0
     for (customer_id,) in db.query(Customer.id).order_by(Customer.id).all():
          stored = get_balance(db, customer_id)
          expected = compute_expected_balance(db, customer_id)
          if stored != expected:
               mismatches.append({
                    "customer_id": customer_id,
                    "stored_balance": stored,
                    "expected_balance": expected,
               })
          checked += 1

     if mismatches:
          logger.warning("Balance verification found %d mismatching customers", len(mismatches))
     return not mismatches, mismatches, checked


def list_debtors(db: Session) -> Tuple[List[Customer], Decimal]:
     """
     Customers who owe money, largest balance first.

     Returns:
          (customers, total outstanding)
     """
     debtors = (
          db.query(Customer)
          .filter(Customer.balance > 0)
          .order_by(Customer.balance.desc(), Customer.id)
          .all()
     )
     total = sum((to_money(c.balance) for c in debtors), Decimal("0"))
     return debtors, total
