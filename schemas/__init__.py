# schemas/__init__.py
from .delivery import (
     DeliveryCreate,
     DeliveryResponse,
     DeliveryCreateResponse,
     StatusUpdate,
     PriceUpdate,
     LockStatusResponse,
)
from .payment import (
     CashPaymentRequest,
     InitiatePaymentRequest,
     PaymentResponse,
     WebhookPayload,
)

__all__ = [
     "DeliveryCreate",
     "DeliveryResponse",
     "DeliveryCreateResponse",
     "StatusUpdate",
     "PriceUpdate",
     "LockStatusResponse",
     "CashPaymentRequest",
     "InitiatePaymentRequest",
     "PaymentResponse",
     "WebhookPayload",
]
