"""Removal steps for depsync."""

from __future__ import annotations

from enum import Enum


class RemovalStep(str, Enum):
    """Steps of a device removal, declared in execution order."""

    RESOLVE = "RESOLVE"
    DELETE_MANAGED_DEVICE = "DELETE_MANAGED_DEVICE"
    VERIFY_MANAGED_DEVICE = "VERIFY_MANAGED_DEVICE"
    REMOVE_ENROLLED_IDENTITY = "REMOVE_ENROLLED_IDENTITY"
    TRIGGER_SYNC = "TRIGGER_SYNC"


# Managed-device deletion (and its verification) always precede the roster.
STEP_ORDER: tuple[RemovalStep, ...] = (
    RemovalStep.DELETE_MANAGED_DEVICE,
    RemovalStep.VERIFY_MANAGED_DEVICE,
    RemovalStep.REMOVE_ENROLLED_IDENTITY,
    RemovalStep.TRIGGER_SYNC,
)
