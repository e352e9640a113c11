# services/__init__.py
from .errors import (
     BillingError,
     ValidationError,
     NotFoundError,
     ConflictError,
     ConcurrencyError,
     ExternalServiceError,
)
from .ledger_service import (
     adjust_balance,
     get_balance,
     compute_expected_balance,
     verify_customer_balance,
     verify_all_balances,
)

__all__ = [
     "BillingError",
     "ValidationError",
     "NotFoundError",
     "ConflictError",
     "ConcurrencyError",
     "ExternalServiceError",
     "adjust_balance",
     "get_balance",
     "compute_expected_balance",
     "verify_customer_balance",
     "verify_all_balances",
]
