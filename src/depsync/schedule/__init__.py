"""Public scheduling exports for depsync."""

from __future__ import annotations

from .cooldown import (
    COOLDOWN_WINDOW,
    CooldownState,
    TokenStatus,
    compute_cooldown_state,
    remaining_seconds,
)
from .countdown import Countdown
from .listener import KeyPressListener
from .scheduler import CooldownScheduler

__all__ = [
    "COOLDOWN_WINDOW",
    "CooldownState",
    "TokenStatus",
    "compute_cooldown_state",
    "remaining_seconds",
    "Countdown",
    "KeyPressListener",
    "CooldownScheduler",
]
