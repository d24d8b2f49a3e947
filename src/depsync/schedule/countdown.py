"""Cancellable countdown driven by the wall clock."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, ContextManager, Optional

from depsync.models import CountdownOutcome
from depsync.util.time import now_utc

from .cooldown import remaining_seconds

_LOGGER = logging.getLogger(__name__)

ListenerFactory = Callable[[threading.Event], ContextManager[object]]


class Countdown:
    """
    Cooperative countdown with a fixed tick.

    Remaining time is recomputed from `clock()` on every tick, so a late tick
    or a clock change corrects itself on the next one. Expiry is checked
    before the cancel flag, so expiry wins when both happen in one tick.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = now_utc,
        sleep: Callable[[float], None] = time.sleep,
        tick_seconds: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        on_finish: Optional[Callable[[CountdownOutcome], None]] = None,
        listener: Optional[ListenerFactory] = None,
    ) -> None:
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._clock = clock
        self._sleep = sleep
        self._tick = tick_seconds
        self._on_tick = on_tick
        self._on_finish = on_finish
        self._listener = listener

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    def wait_until(self, deadline: datetime, cancel: threading.Event) -> CountdownOutcome:
        """
        Block until deadline or until cancel is set.

        The cancel flag is cleared on entry so a stale signal from an earlier
        countdown does not end this one.
        """
        cancel.clear()
        _LOGGER.debug(
            "Countdown started: %ds remaining",
            remaining_seconds(deadline, self._clock()),
        )
        watcher = self._listener(cancel) if self._listener is not None else nullcontext()
        with watcher:
            outcome = self._run(deadline, cancel)

        _LOGGER.debug("Countdown finished: %s", outcome)
        if self._on_finish is not None:
            self._on_finish(outcome)
        return outcome

    def _run(self, deadline: datetime, cancel: threading.Event) -> CountdownOutcome:
        while True:
            remaining = remaining_seconds(deadline, self._clock())
            if remaining <= 0:
                return "expired"
            if cancel.is_set():
                return "cancelled"
            if self._on_tick is not None:
                self._on_tick(remaining)
            self._sleep(min(self._tick, remaining))
