"""Result models for sync passes and removal runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional


StepStatus = Literal["success", "failed", "skipped", "warning"]
RemovalStatus = Literal["success", "noop", "failed"]
TokenSyncStatus = Literal["triggered", "failed", "skipped"]
CountdownOutcome = Literal["expired", "cancelled"]


@dataclass(slots=True)
class StepResult:
    """Result for a single removal step."""

    step: str
    status: StepStatus
    message: Optional[str] = None

    error_type: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Optional[dict[str, Any]] = None


@dataclass(slots=True)
class TokenSyncResult:
    """Result of evaluating (and possibly triggering) one token."""

    token_id: str
    token_name: str
    status: TokenSyncStatus

    triggered_at: Optional[datetime] = None
    countdown: Optional[CountdownOutcome] = None

    error_type: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Optional[dict[str, Any]] = None


@dataclass(slots=True)
class PassResult:
    """Aggregate result for one sequential pass over all tokens."""

    results: list[TokenSyncResult]
    summary: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class RemovalResult:
    """
    Aggregate result for one removal run.

    status:
        - "success": every planned step completed (warnings allowed)
        - "noop": nothing to remove, or the operator declined
        - "failed": a remote call or verification failed
    """

    serial_number: str
    status: RemovalStatus
    steps: list[StepResult] = field(default_factory=list)

    stopped_step: Optional[str] = None
    reason: Optional[str] = None
    sync: Optional[TokenSyncResult] = None
    summary: dict[str, int] = field(default_factory=dict)
