"""CooldownScheduler: triggers DEP token syncs without hitting the cooldown."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from depsync.errors import DepSyncError, SyncCancelled, TokenStatusError, is_fatal
from depsync.models import CountdownOutcome, EnrollmentToken, PassResult, TokenSyncResult

from .cooldown import COOLDOWN_WINDOW, CooldownState, TokenStatus
from .countdown import Countdown

_LOGGER = logging.getLogger(__name__)

DEFAULT_IDLE_SECONDS: float = 60.0


class TokenController(Protocol):
    def list_enrollment_tokens(self) -> list[EnrollmentToken]: ...

    def get_enrollment_token(self, token_id: str) -> EnrollmentToken: ...

    def trigger_enrollment_sync(self, token_id: str) -> None: ...


class CooldownScheduler:
    """
    Sequential, cooldown-aware sync scheduler.

    Per token: CHECKING -> COUNTING_DOWN (while in cooldown, re-reading the
    token after each wait) -> DISPATCHING -> COUNTING_DOWN (a fresh window
    anchored at the local dispatch time). Tokens are handled one at a time,
    in the order Graph lists them.

    Modes:
        - continuous (run_pass/run_forever): a cancelled countdown raises
          SyncCancelled and ends the loop.
        - one-shot (sync_once): a cancelled countdown returns early.
    """

    def __init__(
        self,
        controller: TokenController,
        *,
        countdown: Optional[Countdown] = None,
        window: timedelta = COOLDOWN_WINDOW,
        idle_seconds: float = DEFAULT_IDLE_SECONDS,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._controller = controller
        self._countdown = countdown if countdown is not None else Countdown()
        self._clock = self._countdown.clock
        self._window = window
        self._idle = timedelta(seconds=idle_seconds)
        self._cancel = cancel if cancel is not None else threading.Event()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    @property
    def window(self) -> timedelta:
        return self._window

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    def evaluate(self, token: EnrollmentToken, now: Optional[datetime] = None) -> CooldownState:
        """Return the cooldown state of token. Raises TokenStatusError."""
        status = TokenStatus.from_token(token)
        return status.cooldown(now if now is not None else self._clock(), self._window)

    # ----------------------------
    # Continuous mode
    # ----------------------------
    def run_pass(self) -> PassResult:
        """
        Process every token once, in listing order.

        Raises:
            DepSyncError: if the tokens cannot be listed.
            SyncCancelled: if the operator cancels a countdown.
        """
        tokens = self._controller.list_enrollment_tokens()
        _LOGGER.debug("Sync pass over %d token(s)", len(tokens))

        results: list[TokenSyncResult] = []
        for token in tokens:
            results.append(self._process_token(token, continuous=True, wait_after=True))

        return PassResult(results=results, summary=_summarize_results(results))

    def run_forever(
        self,
        *,
        max_passes: Optional[int] = None,
        on_pass: Optional[Callable[[PassResult], None]] = None,
    ) -> int:
        """
        Repeat passes until cancelled (or until max_passes are done).

        A pass that triggers nothing (no tokens, every token failed, or the
        listing failed) is followed by an idle wait so failures never turn
        into a tight request loop.

        Returns:
            The number of passes attempted.

        Raises:
            SyncCancelled: when the operator stops the loop.
            DepSyncError: fatal errors (auth, permission, invalid argument).
        """
        passes = 0
        while max_passes is None or passes < max_passes:
            passes += 1
            try:
                result = self.run_pass()
            except SyncCancelled:
                raise
            except DepSyncError as exc:
                if is_fatal(exc):
                    raise
                _LOGGER.error("Could not list enrollment tokens: %s", exc)
                self._idle_wait()
                continue

            if on_pass is not None:
                on_pass(result)

            if not result.summary.get("triggered"):
                if not result.results:
                    _LOGGER.warning("No enrollment tokens found")
                self._idle_wait()

        return passes

    # ----------------------------
    # One-shot mode
    # ----------------------------
    def sync_once(self, token_id: str, *, wait: bool = True) -> TokenSyncResult:
        """
        Trigger exactly one sync for token_id.

        If the token is cooling down, first waits (cancellable) until it is
        eligible, whatever wait says; cancelling that wait skips the trigger.
        wait only controls the countdown of a full window that follows a
        successful trigger.
        """
        try:
            token = self._controller.get_enrollment_token(token_id)
        except DepSyncError as exc:
            _LOGGER.warning("Could not read token %s: %s", token_id, exc)
            return _failed_result(token_id, "", exc)
        return self._process_token(token, continuous=False, wait_after=wait)

    # ----------------------------
    # Internals
    # ----------------------------
    def _process_token(
        self,
        token: EnrollmentToken,
        *,
        continuous: bool,
        wait_after: bool,
    ) -> TokenSyncResult:
        current = token
        while True:
            try:
                state = self.evaluate(current)
            except TokenStatusError as exc:
                _LOGGER.warning("Token %s (%s): %s", current.name, current.token_id, exc)
                return _failed_result(current.token_id, current.name, exc)

            if state.eligible or state.next_eligible_at is None:
                break

            _LOGGER.info(
                "Token %s is cooling down for %ds",
                current.name or current.token_id,
                state.remaining_seconds(self._clock()),
            )
            outcome = self._wait(state.next_eligible_at, continuous=continuous)
            if outcome == "cancelled":
                return TokenSyncResult(
                    token_id=current.token_id,
                    token_name=current.name,
                    status="skipped",
                    countdown=outcome,
                )

            try:
                current = self._controller.get_enrollment_token(current.token_id)
            except DepSyncError as exc:
                _LOGGER.warning("Could not re-read token %s: %s", current.token_id, exc)
                return _failed_result(current.token_id, current.name, exc)

        dispatched_at = self._clock()
        try:
            self._controller.trigger_enrollment_sync(current.token_id)
        except DepSyncError as exc:
            _LOGGER.warning(
                "Sync trigger failed for token %s (%s): %s",
                current.name,
                current.token_id,
                exc,
            )
            return _failed_result(current.token_id, current.name, exc)

        _LOGGER.info("Sync triggered for token %s", current.name or current.token_id)

        outcome: Optional[CountdownOutcome] = None
        if wait_after:
            outcome = self._wait(dispatched_at + self._window, continuous=continuous)

        return TokenSyncResult(
            token_id=current.token_id,
            token_name=current.name,
            status="triggered",
            triggered_at=dispatched_at,
            countdown=outcome,
        )

    def _wait(self, deadline: datetime, *, continuous: bool) -> CountdownOutcome:
        outcome = self._countdown.wait_until(deadline, self._cancel)
        if outcome == "cancelled" and continuous:
            raise SyncCancelled("Sync loop stopped by operator")
        return outcome

    def _idle_wait(self) -> None:
        self._wait(self._clock() + self._idle, continuous=True)


def _failed_result(token_id: str, token_name: str, exc: DepSyncError) -> TokenSyncResult:
    return TokenSyncResult(
        token_id=token_id,
        token_name=token_name,
        status="failed",
        error_type=exc.__class__.__name__,
        error_message=str(exc),
        error_details=getattr(exc, "details", None),
    )


def _summarize_results(results: list[TokenSyncResult]) -> dict[str, int]:
    summary: dict[str, int] = {"triggered": 0, "failed": 0, "skipped": 0}
    for r in results:
        summary[r.status] = summary.get(r.status, 0) + 1
    return summary
