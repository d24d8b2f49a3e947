"""Exception hierarchy and HTTP error mapping for depsync."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class DepSyncError(Exception):
    """
    Base exception for depsync.

    Attributes:
        details: Optional structured information (e.g., HTTP status, token id).
        cause: Optional original exception that triggered this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.cause = cause


class InvalidStateError(DepSyncError):
    """Raised when the library is used in an invalid state."""


class AuthError(DepSyncError):
    """Raised when OAuth authentication/refresh fails."""


class PermissionError(DepSyncError):
    """Raised when access is denied (HTTP 403)."""


class InvalidArgumentError(DepSyncError):
    """Raised when arguments or configuration are invalid (HTTP 400, etc.)."""


class NotFoundError(DepSyncError):
    """Raised when a Graph resource is not found (HTTP 404)."""


class ConflictError(DepSyncError):
    """Raised when a conflict occurs (HTTP 409/412)."""


class RateLimitError(DepSyncError):
    """Raised when throttled by Graph (HTTP 429)."""

    @property
    def retry_after(self) -> Optional[int]:
        """Seconds from the Retry-After header, when Graph sent one."""
        value = self.details.get("retry_after")
        return value if isinstance(value, int) else None


class NetworkError(DepSyncError):
    """Raised when network/timeout issues prevent the request."""


class ApiError(DepSyncError):
    """Raised for unclassified API errors (5xx, unknown 4xx, etc.)."""


class TokenStatusError(DepSyncError):
    """Raised when an enrollment token carries an unparseable timestamp."""


class VerificationError(DepSyncError):
    """Raised when a deleted record is still visible after the settling delay."""


class SyncCancelled(DepSyncError):
    """Raised when the operator stops the continuous sync loop."""


@dataclass(frozen=True)
class HttpErrorInfo:
    """Lightweight HTTP error information for mapping to depsync exceptions."""

    status_code: int
    reason: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


def map_http_error(
    info: HttpErrorInfo,
    *,
    cause: Optional[BaseException] = None,
) -> DepSyncError:
    """
    Map an HTTP error to a depsync exception.

    Policy:
        - 400 -> InvalidArgumentError
        - 401 -> AuthError
        - 403 -> PermissionError
        - 404 -> NotFoundError
        - 409/412 -> ConflictError
        - 429 -> RateLimitError
        - otherwise -> ApiError
    """
    details: dict[str, Any] = {
        "status_code": info.status_code,
        "reason": info.reason,
    }
    if info.details:
        details.update(info.details)

    message = info.message or f"HTTP error {info.status_code}"

    if info.status_code == 400:
        return InvalidArgumentError(message, details=details, cause=cause)
    if info.status_code == 401:
        return AuthError(message, details=details, cause=cause)
    if info.status_code == 403:
        return PermissionError(message, details=details, cause=cause)
    if info.status_code == 404:
        return NotFoundError(message, details=details, cause=cause)
    if info.status_code in (409, 412):
        return ConflictError(message, details=details, cause=cause)
    if info.status_code == 429:
        return RateLimitError(message, details=details, cause=cause)

    return ApiError(message, details=details, cause=cause)


def is_fatal(exc: DepSyncError) -> bool:
    """Return True for errors that no retry or sibling operation can fix."""
    return isinstance(
        exc,
        (
            AuthError,
            PermissionError,
            InvalidArgumentError,
            InvalidStateError,
        ),
    )
