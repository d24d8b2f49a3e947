"""RemovalWorkflow: verified, ordered device removal across both registries."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Optional, Protocol, TypeVar

from depsync.errors import (
    DepSyncError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    VerificationError,
)
from depsync.models import (
    EnrolledDeviceIdentity,
    EnrollmentToken,
    ManagedDeviceRecord,
    RemovalResult,
    RemovalTarget,
    StepResult,
)
from depsync.schedule import CooldownScheduler
from depsync.util.serial import same_serial

from .plan import RemovalPlan, build_removal_plan
from .steps import RemovalStep

T = TypeVar("T")

_LOGGER = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY: float = 30.0

ConfirmFunc = Callable[[str], bool]


class RemovalController(Protocol):
    def list_enrollment_tokens(self) -> list[EnrollmentToken]: ...

    def find_managed_device(self, serial_number: str) -> Optional[ManagedDeviceRecord]: ...

    def delete_managed_device(self, device_id: str) -> None: ...

    def iter_enrolled_identities(self, token_id: str) -> Iterator[EnrolledDeviceIdentity]: ...

    def remove_enrolled_identity(self, token_id: str, identity_id: str) -> None: ...


class _Abort(Exception):
    """Stops the remaining steps of a run."""


class RemovalWorkflow:
    """
    Remove one device, by serial number, from Intune and from its DEP token.

    Policy:
        - Resolution is read-only and always runs fully.
        - One confirmation covers the destructive steps; the optional sync
          asks separately.
        - Managed-device deletion failure or a failed verification aborts
          before the token roster is touched.
        - A missing roster entry is a warning; other roster failures are
          reported without aborting.
        - Errors are returned in RemovalResult, never raised from run().
    """

    def __init__(
        self,
        controller: RemovalController,
        *,
        confirm: ConfirmFunc,
        scheduler: Optional[CooldownScheduler] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if settle_delay < 0:
            raise InvalidArgumentError("settle_delay must not be negative")
        self._controller = controller
        self._confirm = confirm
        self._scheduler = scheduler
        self._settle_delay = settle_delay
        self._sleep = sleep

    def resolve(self, serial_number: str) -> RemovalTarget:
        """
        Look the serial number up in both registries.

        Raises:
            InvalidArgumentError: if serial_number is empty.
            DepSyncError: if a lookup fails.
        """
        serial = _clean_serial(serial_number)
        managed = self._controller.find_managed_device(serial)
        token, identity = self._find_enrolled_identity(serial)
        _LOGGER.debug(
            "Resolved %s: managed_device=%s identity=%s",
            serial,
            managed.device_id if managed else None,
            identity.identity_id if identity else None,
        )
        return RemovalTarget(
            serial_number=serial,
            managed_device=managed,
            token=token,
            identity=identity,
        )

    def run(
        self,
        serial_number: str,
        *,
        sync: Optional[bool] = None,
        wait: Optional[bool] = None,
    ) -> RemovalResult:
        """
        Resolve, confirm and remove serial_number.

        Args:
            sync: trigger a token sync afterwards; None asks the operator.
            wait: wait out the cooldown after the sync; None asks.

        Raises:
            InvalidArgumentError: if serial_number is empty.
        """
        serial = _clean_serial(serial_number)

        try:
            target = self.resolve(serial)
        except DepSyncError as exc:
            _LOGGER.error("Could not look up %s: %s", serial, exc)
            step = _failed_step(RemovalStep.RESOLVE, exc)
            return _finish(serial, [step], stopped_step=RemovalStep.RESOLVE)

        if target.is_empty:
            _LOGGER.info("%s not found in either registry; nothing to remove", serial)
            return RemovalResult(serial_number=serial, status="noop", reason="not_found")

        plan = build_removal_plan(target)
        if not self._confirm(plan.describe() + "\nProceed with removal?"):
            _LOGGER.info("Removal of %s declined", serial)
            return RemovalResult(serial_number=serial, status="noop", reason="declined")

        return self.apply_plan(plan, sync=sync, wait=wait)

    def apply_plan(
        self,
        plan: RemovalPlan,
        *,
        sync: Optional[bool] = None,
        wait: Optional[bool] = None,
    ) -> RemovalResult:
        """
        Apply an already confirmed plan, step by step, in plan order.

        Raises:
            InvalidStateError: if the plan has no steps, or a step has no
                record to act on.
        """
        if plan.is_empty:
            raise InvalidStateError(
                "Removal plan has no steps",
                details={"serial_number": plan.target.serial_number},
            )
        target = plan.target
        steps: list[StepResult] = []
        result = RemovalResult(serial_number=target.serial_number, status="success", steps=steps)

        for step in plan.steps:
            try:
                if step is RemovalStep.DELETE_MANAGED_DEVICE:
                    steps.append(self._delete_managed_device(target))
                elif step is RemovalStep.VERIFY_MANAGED_DEVICE:
                    steps.append(self._verify_managed_device(target))
                elif step is RemovalStep.REMOVE_ENROLLED_IDENTITY:
                    steps.append(self._remove_enrolled_identity(target))
                elif step is RemovalStep.TRIGGER_SYNC:
                    steps.append(self._trigger_sync(target, result, sync=sync, wait=wait))
                else:
                    raise InvalidArgumentError("Unsupported step", details={"step": step})
            except _Abort as abort:
                failed = abort.args[0]
                steps.append(failed)
                return _finish(
                    target.serial_number,
                    steps,
                    stopped_step=step,
                    sync=result.sync,
                )

        return _finish(target.serial_number, steps, sync=result.sync)

    # ----------------------------
    # Steps
    # ----------------------------
    def _delete_managed_device(self, target: RemovalTarget) -> StepResult:
        step = RemovalStep.DELETE_MANAGED_DEVICE
        device = _required(target.managed_device, "managed device", target)
        try:
            self._controller.delete_managed_device(device.device_id)
        except DepSyncError as exc:
            _LOGGER.error(
                "Deleting managed device %s (%s) failed: %s",
                device.device_id,
                target.serial_number,
                exc,
            )
            raise _Abort(_failed_step(step, exc)) from exc

        _LOGGER.info("Deleted managed device %s (%s)", device.device_id, target.serial_number)
        return StepResult(step=step.value, status="success", message=device.device_id)

    def _verify_managed_device(self, target: RemovalTarget) -> StepResult:
        step = RemovalStep.VERIFY_MANAGED_DEVICE
        _LOGGER.info("Waiting %.0fs before verifying removal", self._settle_delay)
        self._sleep(self._settle_delay)

        try:
            still_there = self._controller.find_managed_device(target.serial_number)
        except DepSyncError as exc:
            _LOGGER.error("Verification lookup for %s failed: %s", target.serial_number, exc)
            raise _Abort(_failed_step(step, exc)) from exc

        if still_there is not None:
            exc = VerificationError(
                "Managed device is still present after deletion",
                details={
                    "serial_number": target.serial_number,
                    "device_id": still_there.device_id,
                },
            )
            _LOGGER.error("%s: %s", target.serial_number, exc)
            raise _Abort(_failed_step(step, exc))

        return StepResult(step=step.value, status="success")

    def _remove_enrolled_identity(self, target: RemovalTarget) -> StepResult:
        step = RemovalStep.REMOVE_ENROLLED_IDENTITY
        token = _required(target.token, "enrollment token", target)
        identity = _required(target.identity, "enrolled identity", target)
        try:
            self._controller.remove_enrolled_identity(token.token_id, identity.identity_id)
        except NotFoundError as exc:
            _LOGGER.warning(
                "%s was already absent from token %s",
                target.serial_number,
                token.name,
            )
            return StepResult(
                step=step.value,
                status="warning",
                message="already removed",
                error_type=exc.__class__.__name__,
                error_message=str(exc),
                error_details=exc.details,
            )
        except DepSyncError as exc:
            _LOGGER.error(
                "Removing %s from token %s failed: %s",
                target.serial_number,
                token.name,
                exc,
            )
            return _failed_step(step, exc)

        _LOGGER.info("Removed %s from token %s", target.serial_number, token.name)
        return StepResult(step=step.value, status="success", message=identity.identity_id)

    def _trigger_sync(
        self,
        target: RemovalTarget,
        result: RemovalResult,
        *,
        sync: Optional[bool],
        wait: Optional[bool],
    ) -> StepResult:
        step = RemovalStep.TRIGGER_SYNC
        token = _required(target.token, "enrollment token", target)

        if self._scheduler is None:
            return StepResult(step=step.value, status="skipped", message="no scheduler")

        if sync is None:
            sync = self._confirm(f"Trigger a sync for token '{token.name}' now?")
        if not sync:
            return StepResult(step=step.value, status="skipped", message="declined")

        if wait is None:
            wait = self._confirm(
                "After the sync is triggered, wait out the new cooldown? "
                "(A token that is still cooling down is always waited for "
                "before the trigger.)"
            )

        sync_result = self._scheduler.sync_once(token.token_id, wait=wait)
        result.sync = sync_result

        if sync_result.status == "failed":
            return StepResult(
                step=step.value,
                status="failed",
                error_type=sync_result.error_type,
                error_message=sync_result.error_message,
                error_details=sync_result.error_details,
            )
        if sync_result.status == "skipped":
            return StepResult(step=step.value, status="skipped", message="cancelled")
        return StepResult(step=step.value, status="success")

    # ----------------------------
    # Internals
    # ----------------------------
    def _find_enrolled_identity(
        self,
        serial: str,
    ) -> tuple[Optional[EnrollmentToken], Optional[EnrolledDeviceIdentity]]:
        for token in self._controller.list_enrollment_tokens():
            for identity in self._controller.iter_enrolled_identities(token.token_id):
                if same_serial(identity.serial_number, serial):
                    return token, identity
        return None, None


def _required(value: Optional[T], what: str, target: RemovalTarget) -> T:
    if value is None:
        raise InvalidStateError(
            f"Removal target has no {what}",
            details={"serial_number": target.serial_number},
        )
    return value


def _clean_serial(serial_number: str) -> str:
    serial = serial_number.strip() if isinstance(serial_number, str) else ""
    if not serial:
        raise InvalidArgumentError("serial number must be a non-empty string")
    return serial


def _failed_step(step: RemovalStep, exc: DepSyncError) -> StepResult:
    return StepResult(
        step=step.value,
        status="failed",
        error_type=exc.__class__.__name__,
        error_message=str(exc),
        error_details=getattr(exc, "details", None),
    )


def _finish(
    serial: str,
    steps: list[StepResult],
    *,
    stopped_step: Optional[RemovalStep] = None,
    sync=None,
) -> RemovalResult:
    summary = _summarize_steps(steps)
    status = "failed" if summary.get("failed") else "success"
    return RemovalResult(
        serial_number=serial,
        status=status,  # type: ignore[arg-type]
        steps=steps,
        stopped_step=stopped_step.value if stopped_step is not None else None,
        sync=sync,
        summary=summary,
    )


def _summarize_steps(steps: list[StepResult]) -> dict[str, int]:
    summary: dict[str, int] = {"success": 0, "failed": 0, "skipped": 0, "warning": 0}
    for s in steps:
        summary[s.status] = summary.get(s.status, 0) + 1
    return summary
