"""Exception types shared by the gateway, reconciler and notifier."""

from typing import Optional


class DonasikuError(Exception):
    """Base class for all errors raised by this package."""


class NotFoundError(DonasikuError):
    """The referenced transaction or campaign does not exist."""

    def __init__(self, resource: str, key: str):
        super().__init__(f"{resource} not found: {key}")
        self.resource = resource
        self.key = key


class SignatureError(DonasikuError):
    """A callback payload carried a signature that does not match."""


class CallbackValidationError(DonasikuError):
    """A callback payload is missing fields or disagrees with stored data."""


class GatewayError(DonasikuError):
    """The payment gateway rejected a request or answered with garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayTransientError(GatewayError):
    """The gateway could not be reached; the operation is safe to retry later."""


class NotificationError(DonasikuError):
    """A single notification channel failed to deliver a message."""
