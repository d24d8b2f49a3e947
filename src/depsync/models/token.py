"""Data model for Apple enrollment (DEP) tokens."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True, frozen=True)
class EnrollmentToken:
    """
    Snapshot of one DEP onboarding setting as returned by Graph.

    Notes:
        - Timestamps are kept as the raw strings Graph returned. Parsing
          happens in TokenStatus so a malformed value only affects this token.
        - Instances are never mutated; each scheduler iteration reads a new one.
    """

    token_id: str
    name: str
    apple_identifier: Optional[str] = None
    last_successful_sync: Optional[str] = None
    last_sync_triggered: Optional[str] = None
    synced_device_count: int = 0
