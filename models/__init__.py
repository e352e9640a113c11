# models/__init__.py
from .base import Base
from .customer import Customer
from .cylinder_capacity import CylinderCapacity
from .delivery import Delivery, DeliveryItem, DeliveryStatus
from .payment import Payment, PaymentMethod, PaymentStatus

__all__ = [
     "Base",
     "Customer",
     "CylinderCapacity",
     "Delivery",
     "DeliveryItem",
     "DeliveryStatus",
     "Payment",
     "PaymentMethod",
     "PaymentStatus",
]
