"""depsync public API."""

from __future__ import annotations

from depsync.auth import AuthInfo, OAuthClient
from depsync.controller import GraphController
from depsync.errors import (
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
    map_http_error,
)
from depsync.manager import EnrollmentManager
from depsync.models import (
    EnrolledDeviceIdentity,
    EnrollmentToken,
    ManagedDeviceRecord,
    PassResult,
    RemovalResult,
    RemovalTarget,
    StepResult,
    TokenSyncResult,
)
from depsync.removal import RemovalPlan, RemovalStep, RemovalWorkflow
from depsync.schedule import (
    COOLDOWN_WINDOW,
    CooldownScheduler,
    CooldownState,
    Countdown,
    TokenStatus,
    compute_cooldown_state,
)

__all__ = [
    # High-level
    "EnrollmentManager",
    "GraphController",
    # Auth
    "AuthInfo",
    "OAuthClient",
    # Scheduling
    "COOLDOWN_WINDOW",
    "CooldownScheduler",
    "CooldownState",
    "Countdown",
    "TokenStatus",
    "compute_cooldown_state",
    # Removal
    "RemovalPlan",
    "RemovalStep",
    "RemovalWorkflow",
    # Models
    "EnrollmentToken",
    "ManagedDeviceRecord",
    "EnrolledDeviceIdentity",
    "RemovalTarget",
    "StepResult",
    "TokenSyncResult",
    "PassResult",
    "RemovalResult",
    # Errors
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
    "map_http_error",
]
