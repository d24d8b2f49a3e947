"""Public error exports for depsync."""

from __future__ import annotations

from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    DepSyncError,
    HttpErrorInfo,
    InvalidArgumentError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    SyncCancelled,
    TokenStatusError,
    VerificationError,
    is_fatal,
    map_http_error,
)

__all__ = [
    "DepSyncError",
    "InvalidStateError",
    "AuthError",
    "PermissionError",
    "InvalidArgumentError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "NetworkError",
    "ApiError",
    "TokenStatusError",
    "VerificationError",
    "SyncCancelled",
    "HttpErrorInfo",
    "is_fatal",
    "map_http_error",
]
