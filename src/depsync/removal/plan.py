"""RemovalPlan: the ordered steps derived from a resolved target."""

from __future__ import annotations

from dataclasses import dataclass

from depsync.models import RemovalTarget
from depsync.util.time import format_local

from .steps import STEP_ORDER, RemovalStep


@dataclass(slots=True, frozen=True)
class RemovalPlan:
    """A plan that is shown to the operator and then applied in order."""

    target: RemovalTarget
    steps: tuple[RemovalStep, ...]

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def describe(self) -> str:
        """Human-readable summary used for the confirmation prompt."""
        target = self.target
        lines = [f"Device {target.serial_number} will be removed from:"]
        if target.managed_device is not None:
            md = target.managed_device
            lines.append(
                f"  - Intune managed devices: {md.device_name or '(unnamed)'} "
                f"[{md.operating_system} {md.os_version}] "
                f"enrolled {format_local(md.enrolled_at, never='unknown')} (id {md.device_id})"
            )
        if target.token is not None and target.identity is not None:
            lines.append(
                f"  - Enrollment token '{target.token.name}' roster "
                f"(identity {target.identity.identity_id})"
            )
        return "\n".join(lines)


def build_removal_plan(target: RemovalTarget) -> RemovalPlan:
    """
    Build the removal plan for target.

    Rules:
        - Steps always follow STEP_ORDER.
        - DELETE/VERIFY only when a managed device was resolved.
        - REMOVE_ENROLLED_IDENTITY/TRIGGER_SYNC only when a roster entry was
          resolved.
    """
    wanted: set[RemovalStep] = set()
    if target.has_managed_device:
        wanted.add(RemovalStep.DELETE_MANAGED_DEVICE)
        wanted.add(RemovalStep.VERIFY_MANAGED_DEVICE)
    if target.has_enrolled_identity:
        wanted.add(RemovalStep.REMOVE_ENROLLED_IDENTITY)
        wanted.add(RemovalStep.TRIGGER_SYNC)

    return RemovalPlan(
        target=target,
        steps=tuple(step for step in STEP_ORDER if step in wanted),
    )
