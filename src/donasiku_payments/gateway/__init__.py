"""Payment gateway client and payment-method catalogue sync."""

from .base import GatewayBase, StatusResult, CallbackPayload
from .duitku import (
    DuitkuClient,
    status_signature,
    callback_signature,
    payment_method_signature,
    format_datetime,
)
from .payment_methods import PaymentMethodSyncService, categorize_payment_method

__all__ = [
    "GatewayBase",
    "StatusResult",
    "CallbackPayload",
    "DuitkuClient",
    "status_signature",
    "callback_signature",
    "payment_method_signature",
    "format_datetime",
    "PaymentMethodSyncService",
    "categorize_payment_method",
]
