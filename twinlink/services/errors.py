"""Error categories shared by the API and the chat client.

Every failure a user can see falls into one of five kinds. Each kind has an
HTTP status (where the server produces it) and a notice the UI shows as a
toast. Nothing is retried automatically; the user re-submits.
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    PAYMENT_REQUIRED = "payment_required"
    UPSTREAM = "upstream"
    CLIENT = "client"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.PAYMENT_REQUIRED: 402,
    ErrorKind.UPSTREAM: 500,
}

NOTICES: Dict[ErrorKind, Tuple[str, str]] = {
    ErrorKind.UNAUTHORIZED: ("Sign in required", "Please sign in and try again."),
    ErrorKind.RATE_LIMITED: ("Rate limit exceeded", "Please wait a moment and try again."),
    ErrorKind.PAYMENT_REQUIRED: ("Credits required", "Please add credits to continue using AI."),
    ErrorKind.UPSTREAM: ("Error", "Failed to get AI response"),
    ErrorKind.CLIENT: ("Error", "Could not reach the AI service. Please try again."),
}


class TwinLinkError(Exception):
    """Base error carrying a kind and a message safe to show to users."""

    kind = ErrorKind.UPSTREAM
    default_message = "AI service error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES.get(self.kind, 500)

    @property
    def notice(self) -> Tuple[str, str]:
        title, description = NOTICES[self.kind]
        if self.kind == ErrorKind.UPSTREAM and self.message != self.default_message:
            description = self.message
        return title, description

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind.value}


class UnauthorizedError(TwinLinkError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Unauthorized"


class RateLimitedError(TwinLinkError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Rate limit exceeded. Please try again later."


class PaymentRequiredError(TwinLinkError):
    kind = ErrorKind.PAYMENT_REQUIRED
    default_message = "Payment required. Please add credits."


class UpstreamError(TwinLinkError):
    kind = ErrorKind.UPSTREAM


class ClientError(TwinLinkError):
    kind = ErrorKind.CLIENT
    default_message = "Network or parse error"


_BY_STATUS = {
    401: UnauthorizedError,
    402: PaymentRequiredError,
    429: RateLimitedError,
}


def error_for_status(status_code: int, message: Optional[str] = None) -> TwinLinkError:
    """Map a non-2xx HTTP status to the matching error."""
    cls = _BY_STATUS.get(status_code)
    if cls is not None:
        return cls()
    return UpstreamError(message)
