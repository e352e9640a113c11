# routers/__init__.py
from . import customers, deliveries, payments

__all__ = ["customers", "deliveries", "payments"]
