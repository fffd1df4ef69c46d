"""Error taxonomy for the Funding domain.

Each error extends the Protean exception that carries the same meaning, so
``protean.integrations.fastapi.register_exception_handlers`` already maps the
base cases to HTTP statuses. The app registers the funding-specific statuses
(403, 429, 402) on top.
"""

import os

from protean.exceptions import (
    InvalidOperationError,
    ObjectNotFoundError,
    ProteanException,
    ValidationError,
)

SUPPORT_EMAIL = "support@opencollective.com"


class ValidationFailed(ValidationError):
    """Input is malformed or violates a business rule."""

    def __init__(self, message: str, field: str = "_entity", **kwargs) -> None:
        super().__init__({field: [message]}, **kwargs)
        self.message = message


class PaymentMethodRequired(ValidationFailed):
    def __init__(self, message: str = "This order requires a payment method", **kwargs) -> None:
        super().__init__(message, field="payment_method", **kwargs)


class AccountExists(ValidationFailed):
    def __init__(
        self,
        message: str = "An account already exists for this email address. Please login.",
        **kwargs,
    ) -> None:
        super().__init__(message, field="email", **kwargs)


class NotFound(ObjectNotFoundError):
    """A referenced entity does not exist."""


class Unauthorized(InvalidOperationError):
    """The requester lacks the role required for the operation."""


class LimitExceeded(ProteanException):
    """An order rate limit was already reached for one of the requester's keys."""

    def __init__(self, keys: list[str], **kwargs) -> None:
        super().__init__(support_message("Orders limit reached"), **kwargs)
        self.keys = keys


class ChargeFailed(ProteanException):
    """The payment provider declined, failed or timed out."""

    def __init__(self, reason: str, **kwargs) -> None:
        super().__init__(reason, **kwargs)
        self.reason = reason


def is_development() -> bool:
    return (os.getenv("PROTEAN_ENV") or "development").lower() == "development"


def support_message(detail: str | None = None) -> str:
    """Generic contact-support message, with the detail appended in development."""
    message = f"Error while processing your request, please try again or contact {SUPPORT_EMAIL}"
    if detail and is_development():
        return f"{message} - {detail}"
    return message
