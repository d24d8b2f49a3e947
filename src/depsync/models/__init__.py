"""Public model exports for depsync."""

from __future__ import annotations

from .device import EnrolledDeviceIdentity, ManagedDeviceRecord, RemovalTarget
from .results import (
    CountdownOutcome,
    PassResult,
    RemovalResult,
    RemovalStatus,
    StepResult,
    StepStatus,
    TokenSyncResult,
    TokenSyncStatus,
)
from .token import EnrollmentToken

__all__ = [
    "EnrollmentToken",
    "ManagedDeviceRecord",
    "EnrolledDeviceIdentity",
    "RemovalTarget",
    "StepStatus",
    "RemovalStatus",
    "TokenSyncStatus",
    "CountdownOutcome",
    "StepResult",
    "TokenSyncResult",
    "PassResult",
    "RemovalResult",
]
