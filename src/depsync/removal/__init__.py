"""Public removal exports for depsync."""

from __future__ import annotations

from .plan import RemovalPlan, build_removal_plan
from .steps import STEP_ORDER, RemovalStep
from .workflow import DEFAULT_SETTLE_DELAY, RemovalWorkflow

__all__ = [
    "RemovalStep",
    "STEP_ORDER",
    "RemovalPlan",
    "build_removal_plan",
    "RemovalWorkflow",
    "DEFAULT_SETTLE_DELAY",
]
