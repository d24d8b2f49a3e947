"""EnrollmentManager: wires the Graph controller, scheduler and removal workflow."""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

from depsync.auth import AuthInfo
from depsync.controller import GraphController
from depsync.controller.fields import DEFAULT_BASE_URL
from depsync.errors import TokenStatusError
from depsync.models import EnrollmentToken, PassResult, RemovalResult, TokenSyncResult
from depsync.removal import DEFAULT_SETTLE_DELAY, RemovalWorkflow
from depsync.schedule import CooldownScheduler, Countdown, TokenStatus
from depsync.util.time import format_duration


class EnrollmentManager:
    """High-level entry point for DEP token sync and device removal."""

    def __init__(
        self,
        auth_info: AuthInfo,
        *,
        scopes: Optional[Sequence[str]] = None,
        base_url: str = DEFAULT_BASE_URL,
        countdown: Optional[Countdown] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ) -> None:
        controller = GraphController(auth_info, scopes=scopes, base_url=base_url)
        self._setup(controller, countdown=countdown, settle_delay=settle_delay, sleep=time.sleep)

    @classmethod
    def from_controller(
        cls,
        controller,
        *,
        countdown: Optional[Countdown] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "EnrollmentManager":
        """Create manager with an injected controller (useful for tests)."""
        obj = cls.__new__(cls)
        obj._setup(controller, countdown=countdown, settle_delay=settle_delay, sleep=sleep)
        return obj

    def _setup(
        self,
        controller,
        *,
        countdown: Optional[Countdown],
        settle_delay: float,
        sleep: Callable[[float], None],
    ) -> None:
        self._controller = controller
        self._scheduler = CooldownScheduler(controller, countdown=countdown)
        self._settle_delay = settle_delay
        self._sleep = sleep

    @property
    def scheduler(self) -> CooldownScheduler:
        return self._scheduler

    def list_tokens(self) -> list[EnrollmentToken]:
        return self._controller.list_enrollment_tokens()

    def token_overview(self) -> list[dict[str, str]]:
        """
        One row per token for display.

        A token with a malformed timestamp gets an error row; the other
        tokens are still reported.
        """
        now = self._scheduler.clock()
        rows: list[dict[str, str]] = []
        for token in self.list_tokens():
            row = {
                "name": token.name,
                "token_id": token.token_id,
                "apple_id": token.apple_identifier or "",
                "devices": str(token.synced_device_count),
            }
            try:
                status = TokenStatus.from_token(token)
            except TokenStatusError as exc:
                row.update(last_triggered="?", last_success="?", state=f"error: {exc}")
                rows.append(row)
                continue

            state = status.cooldown(now, self._scheduler.window)
            row.update(
                last_triggered=status.last_triggered_local,
                last_success=status.last_success_local,
                state=(
                    "ready"
                    if state.eligible
                    else f"cooldown {format_duration(state.remaining_seconds(now))}"
                ),
            )
            rows.append(row)
        return rows

    def sync_forever(
        self,
        *,
        max_passes: Optional[int] = None,
        on_pass: Optional[Callable[[PassResult], None]] = None,
    ) -> int:
        """Run the continuous sync loop. See CooldownScheduler.run_forever."""
        return self._scheduler.run_forever(max_passes=max_passes, on_pass=on_pass)

    def sync_token(self, token_id: str, *, wait: bool = True) -> TokenSyncResult:
        return self._scheduler.sync_once(token_id, wait=wait)

    def remove_device(
        self,
        serial_number: str,
        *,
        confirm: Callable[[str], bool],
        sync: Optional[bool] = None,
        wait: Optional[bool] = None,
    ) -> RemovalResult:
        """Remove serial_number from Intune and its DEP token roster."""
        workflow = RemovalWorkflow(
            self._controller,
            confirm=confirm,
            scheduler=self._scheduler,
            settle_delay=self._settle_delay,
            sleep=self._sleep,
        )
        return workflow.run(serial_number, sync=sync, wait=wait)
