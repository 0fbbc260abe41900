"""
Error taxonomy for the order lifecycle.

- Validation errors block a checkout stage transition and are never retried.
- Transient errors leave the session in its last consistent stage; the user
  may retry manually.
- Geocoding and routing failures never raise: they degrade to ``None``.
"""

from typing import Optional


class StorefrontError(Exception):
    retryable = False


class CheckoutValidationError(StorefrontError):
    """A checkout gate refused a stage transition."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class AuthenticationRequiredError(CheckoutValidationError):
    def __init__(self, message: str = "Sign in to continue"):
        super().__init__(message, field="auth")


class TransientNetworkError(StorefrontError):
    retryable = True


class OrderSubmissionError(TransientNetworkError):
    """submitOrder failed; no partial order exists."""


class OrderNotFoundError(StorefrontError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidStatusTransition(StorefrontError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move order from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested
