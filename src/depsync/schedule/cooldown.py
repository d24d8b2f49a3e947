"""Token status and cooldown computation (pure, no remote calls)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from depsync.errors import TokenStatusError
from depsync.models import EnrollmentToken
from depsync.util.time import format_local, normalize_dt, parse_optional_timestamp

COOLDOWN_WINDOW: timedelta = timedelta(minutes=15)


@dataclass(frozen=True)
class CooldownState:
    """
    Whether a sync may be triggered now.

    next_eligible_at is None for a token that has never been triggered.
    """

    eligible: bool
    next_eligible_at: Optional[datetime] = None

    def remaining_seconds(self, now: datetime) -> int:
        if self.eligible or self.next_eligible_at is None:
            return 0
        return remaining_seconds(self.next_eligible_at, now)


def compute_cooldown_state(
    last_triggered_at: Optional[datetime],
    now: datetime,
    window: timedelta = COOLDOWN_WINDOW,
) -> CooldownState:
    """
    Derive the cooldown state of one token.

    Eligible when the token was never triggered or when at least `window`
    has passed since the last trigger.
    """
    now = normalize_dt(now)
    if last_triggered_at is None:
        return CooldownState(eligible=True, next_eligible_at=None)

    next_eligible_at = normalize_dt(last_triggered_at) + window
    if now - last_triggered_at >= window:
        return CooldownState(eligible=True, next_eligible_at=next_eligible_at)
    return CooldownState(eligible=False, next_eligible_at=next_eligible_at)


def remaining_seconds(deadline: datetime, now: datetime) -> int:
    """Whole seconds until deadline, rounded up and never negative."""
    delta = (normalize_dt(deadline) - normalize_dt(now)).total_seconds()
    if delta <= 0:
        return 0
    return math.ceil(delta)


@dataclass(frozen=True)
class TokenStatus:
    """Parsed timestamps of one enrollment token."""

    token: EnrollmentToken
    last_triggered_at: Optional[datetime]
    last_success_at: Optional[datetime]

    @classmethod
    def from_token(cls, token: EnrollmentToken) -> "TokenStatus":
        """
        Parse the raw Graph timestamps of a token.

        Raises:
            TokenStatusError: if either timestamp is malformed.
        """
        try:
            triggered = parse_optional_timestamp(token.last_sync_triggered)
            success = parse_optional_timestamp(token.last_successful_sync)
        except (TypeError, ValueError) as exc:
            raise TokenStatusError(
                "Invalid sync timestamp",
                details={
                    "token_id": token.token_id,
                    "last_sync_triggered": token.last_sync_triggered,
                    "last_successful_sync": token.last_successful_sync,
                },
                cause=exc,
            ) from exc
        return cls(token=token, last_triggered_at=triggered, last_success_at=success)

    def cooldown(self, now: datetime, window: timedelta = COOLDOWN_WINDOW) -> CooldownState:
        return compute_cooldown_state(self.last_triggered_at, now, window)

    @property
    def last_triggered_local(self) -> str:
        return format_local(self.last_triggered_at)

    @property
    def last_success_local(self) -> str:
        return format_local(self.last_success_at)
