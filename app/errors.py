# Domain error taxonomy shared by the booking and commission services.
# Services raise these; the API layer renders them through a single exception handler in main.py.
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class DomainError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "domain_error"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """Malformed input or a state-machine guard that the caller violated."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class AuthorizationError(DomainError):
    """Actor is not the guest or host of record for the entity."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"{resource} not found", details)


class ConflictError(DomainError):
    """State moved underneath the caller: lost availability, duplicates, terminal states.

    Safe to retry after re-reading the entity.
    """

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class RetryableError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "retryable"
    retryable = True
    retry_after: int = 1


class DatastoreTimeoutError(RetryableError):
    """A bounded datastore wait (lock, busy handler, pool checkout) elapsed."""

    code = "datastore_timeout"


class RateLimitedError(RetryableError):
    """Per-client request budget for the current window is spent."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"

    def __init__(self, message: str, retry_after: int, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after
