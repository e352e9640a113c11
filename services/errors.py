# services/errors.py
"""
Error taxonomy for the billing core.

Routers never catch these; main.py maps each class to an HTTP status.
"""


class BillingError(Exception):
     """Base class for every error the billing core raises on purpose."""


class ValidationError(BillingError):
     """Non-positive price or amount, empty item list, bad quantity."""


class NotFoundError(BillingError):
     """Customer, delivery or catalog entry absent (or customer retired)."""


class ConflictError(BillingError):
     """Price lock violation, invalid status transition or reused payment reference."""

     def __init__(self, message: str, reason: str = ""):
          super().__init__(message)
          self.reason = reason or message


class ConcurrencyError(BillingError):
     """Optimistic balance/delivery update collided; safe to retry."""


class ExternalServiceError(BillingError):
     """Payment processor, e-mail or SMS provider failed or timed out."""
