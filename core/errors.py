"""Error types and provider failure classification."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple


class ErrorCategory(str, Enum):
    RATE_LIMIT = "rate_limit"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"
    AUTH = "auth"
    GENERIC = "generic"


class SessionNotFoundError(KeyError):
    """Raised when a session id is not known to the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session '{self.session_id}' not found"


class ProviderError(RuntimeError):
    """Failure raised by a stream provider, with an optional HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


_STATUS_CATEGORIES = {
    429: ErrorCategory.RATE_LIMIT,
    400: ErrorCategory.BAD_REQUEST,
    401: ErrorCategory.AUTH,
    403: ErrorCategory.AUTH,
    500: ErrorCategory.UNAVAILABLE,
    502: ErrorCategory.UNAVAILABLE,
    503: ErrorCategory.UNAVAILABLE,
    504: ErrorCategory.UNAVAILABLE,
}

# Checked in order; the first matching signature decides
_SIGNATURES: Tuple[Tuple[ErrorCategory, Tuple[str, ...]], ...] = (
    (ErrorCategory.RATE_LIMIT, ("429", "rate limit", "rate_limit", "resource_exhausted", "quota")),
    (ErrorCategory.AUTH, ("401", "403", "api key", "api_key", "permission_denied", "unauthorized", "unauthenticated")),
    (ErrorCategory.BAD_REQUEST, ("400", "invalid_argument", "bad request", "invalid argument")),
    (ErrorCategory.UNAVAILABLE, ("503", "unavailable", "overloaded", "timed out", "timeout", "connection")),
)

_MESSAGES = {
    ErrorCategory.RATE_LIMIT: "The model is rate limited or out of quota. Wait a moment and retry.",
    ErrorCategory.BAD_REQUEST: "The request was rejected by the model backend.",
    ErrorCategory.UNAVAILABLE: "The model backend is temporarily unavailable.",
    ErrorCategory.AUTH: "The model backend rejected the credentials. Check the API key.",
    ErrorCategory.GENERIC: "The search stream failed.",
}


def _status_of(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_provider_error(exc: BaseException) -> Tuple[ErrorCategory, str]:
    """Map a provider exception to a category and a human-readable message."""
    status = _status_of(exc)
    category = _STATUS_CATEGORIES.get(status) if status is not None else None

    detail = str(exc).strip() or type(exc).__name__
    if category is None:
        lowered = detail.lower()
        for candidate, needles in _SIGNATURES:
            if any(needle in lowered for needle in needles):
                category = candidate
                break
    if category is None:
        category = ErrorCategory.GENERIC

    return category, f"{_MESSAGES[category]} ({detail[:300]})"


__all__ = [
    "ErrorCategory",
    "SessionNotFoundError",
    "ProviderError",
    "classify_provider_error",
]
