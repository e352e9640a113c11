# services/context.py
"""
Request-scoped caller context.

Routers build one RequestContext per request (see dependencies.py) and pass
it explicitly into every service call. Roles are translated once into a
closed set of capability tags; the services themselves only read
``principal_id`` for the logged_by / handled_by columns.
"""
import enum
from dataclasses import dataclass
from typing import FrozenSet, Optional


class Role(str, enum.Enum):
     ADMIN = "admin"
     CO_ADMIN = "co_admin"
     STAFF = "staff"
     CUSTOMER = "customer"
     SYSTEM = "system"


class Capability(str, enum.Enum):
     MANAGE_DELIVERIES = "manage_deliveries"
     EDIT_PRICES = "edit_prices"
     RECORD_CASH = "record_cash"
     VIEW_ALL_CUSTOMERS = "view_all_customers"
     PLACE_OWN_ORDERS = "place_own_orders"
     INITIATE_PAYMENT = "initiate_payment"
     RECONCILE = "reconcile"


_STAFF_CAPABILITIES = frozenset({
     Capability.MANAGE_DELIVERIES,
     Capability.EDIT_PRICES,
     Capability.RECORD_CASH,
     Capability.VIEW_ALL_CUSTOMERS,
     Capability.INITIATE_PAYMENT,
})

ROLE_CAPABILITIES = {
     Role.ADMIN: _STAFF_CAPABILITIES | {Capability.RECONCILE},
     Role.CO_ADMIN: _STAFF_CAPABILITIES | {Capability.RECONCILE},
     Role.STAFF: _STAFF_CAPABILITIES,
     Role.CUSTOMER: frozenset({Capability.PLACE_OWN_ORDERS, Capability.INITIATE_PAYMENT}),
     Role.SYSTEM: frozenset(),
}


@dataclass(frozen=True)
class RequestContext:
     principal_id: str
     role: Role
     customer_id: Optional[int] = None  # set for customers acting on their own record

     @property
     def capabilities(self) -> FrozenSet[Capability]:
          return ROLE_CAPABILITIES.get(self.role, frozenset())

     def can(self, capability: Capability) -> bool:
          return capability in self.capabilities

     @classmethod
     def system(cls, principal_id: str) -> "RequestContext":
          """Context for unauthenticated machine callers such as webhooks."""
          return cls(principal_id=principal_id, role=Role.SYSTEM)
