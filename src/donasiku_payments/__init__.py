"""Payment confirmation and reconciliation for the Donasiku donation platform."""

__version__ = "0.1.0"

from .config import AppConfig
from .exceptions import (
    DonasikuError,
    NotFoundError,
    SignatureError,
    CallbackValidationError,
    GatewayError,
    GatewayTransientError,
    NotificationError,
)

__all__ = [
    "__version__",
    "AppConfig",
    "DonasikuError",
    "NotFoundError",
    "SignatureError",
    "CallbackValidationError",
    "GatewayError",
    "GatewayTransientError",
    "NotificationError",
]
