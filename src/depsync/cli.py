"""depsync command line: continuous sync, status table and device removal."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Optional, Sequence, TextIO

from depsync.config import Settings
from depsync.errors import DepSyncError, SyncCancelled
from depsync.manager import EnrollmentManager
from depsync.models import CountdownOutcome, PassResult, RemovalResult
from depsync.schedule import Countdown, KeyPressListener
from depsync.util.time import format_duration, format_local

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_ACTION = 2
EXIT_INTERRUPTED = 130

ManagerFactory = Callable[[Settings, Countdown], EnrollmentManager]


class Shell:
    """Operator-facing prompts and output."""

    def __init__(
        self,
        *,
        input_func: Callable[[str], str] = input,
        out: Optional[TextIO] = None,
    ) -> None:
        self._input = input_func
        self._out = out if out is not None else sys.stdout

    def say(self, text: str = "") -> None:
        self._out.write(text + "\n")
        self._out.flush()

    def ask(self, prompt: str) -> str:
        try:
            return self._input(prompt).strip()
        except EOFError:
            return ""

    def confirm(self, question: str) -> bool:
        answer = self.ask(f"{question} [y/N]: ").lower()
        return answer in ("y", "yes")

    def show_countdown(self, remaining: int) -> None:
        self._out.write(f"\rNext check in {format_duration(remaining)} (press Enter to stop) ")
        self._out.flush()

    def end_countdown(self, outcome: CountdownOutcome) -> None:
        self._out.write("\n" if outcome == "expired" else "\nCountdown stopped.\n")
        self._out.flush()

    def report_pass(self, result: PassResult) -> None:
        for r in result.results:
            label = r.token_name or r.token_id
            if r.status == "triggered":
                self.say(f"[{label}] sync triggered at {format_local(r.triggered_at)}")
            elif r.status == "failed":
                self.say(f"[{label}] FAILED ({r.error_type}): {r.error_message}")
            else:
                self.say(f"[{label}] skipped")

    def report_removal(self, result: RemovalResult) -> None:
        if result.status == "noop":
            if result.reason == "declined":
                self.say("No changes made.")
            else:
                self.say(f"{result.serial_number} was not found. Nothing to remove.")
            return

        for step in result.steps:
            line = f"  {step.step}: {step.status}"
            if step.error_message:
                line += f" ({step.error_type}: {step.error_message})"
            elif step.message:
                line += f" ({step.message})"
            self.say(line)

        if result.status == "failed":
            where = f" at {result.stopped_step}" if result.stopped_step else ""
            self.say(f"Removal of {result.serial_number} did not complete{where}.")
        else:
            self.say(f"Removal of {result.serial_number} completed.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="depsync",
        description="Intune DEP token sync and device removal",
    )
    parser.add_argument("--client-secrets", help="OAuth client secrets JSON")
    parser.add_argument("--token-file", help="Cached OAuth token JSON")
    parser.add_argument("--tenant-id", help="Entra tenant id (without a client secrets file)")
    parser.add_argument("--client-id", help="App registration client id")
    parser.add_argument("--graph-url", help="Graph base URL")
    parser.add_argument(
        "--settle-delay",
        type=float,
        help="Seconds to wait before verifying a deletion",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sync", help="Trigger DEP syncs continuously, respecting the cooldown")
    sub.add_parser("status", help="Show every token's sync state")

    remove = sub.add_parser("remove", help="Remove a device from Intune and its DEP token")
    remove.add_argument("serial", nargs="?", help="Device serial number")
    remove.add_argument(
        "--sync",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Trigger a token sync afterwards (asked when omitted)",
    )
    remove.add_argument(
        "--wait",
        action=argparse.BooleanOptionalAction,
        default=None,
        help=(
            "Wait out the new cooldown after the sync (asked when omitted). "
            "A token still cooling down is waited for before the trigger either way."
        ),
    )
    remove.add_argument(
        "--once",
        action="store_true",
        help="Do not offer to remove another device",
    )
    return parser


def default_manager_factory(settings: Settings, countdown: Countdown) -> EnrollmentManager:
    return EnrollmentManager(
        settings.auth_info(),
        scopes=settings.scopes,
        base_url=settings.graph_url,
        countdown=countdown,
        settle_delay=settings.settle_delay,
    )


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    shell: Optional[Shell] = None,
    manager_factory: ManagerFactory = default_manager_factory,
    environ: Optional[dict[str, str]] = None,
) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    shell = shell if shell is not None else Shell()

    try:
        settings = Settings.from_env(environ).override(
            client_secrets_file=args.client_secrets,
            token_file=args.token_file,
            tenant_id=args.tenant_id,
            client_id=args.client_id,
            graph_url=args.graph_url,
            settle_delay=args.settle_delay,
        )
        countdown = Countdown(
            on_tick=shell.show_countdown,
            on_finish=shell.end_countdown,
            listener=KeyPressListener,
        )
        manager = manager_factory(settings, countdown)

        if args.command == "sync":
            return _cmd_sync(manager, shell)
        if args.command == "status":
            return _cmd_status(manager, shell)
        return _cmd_remove(manager, shell, args)
    except KeyboardInterrupt:
        shell.say("\nInterrupted.")
        return EXIT_INTERRUPTED
    except DepSyncError as exc:
        _LOGGER.error("%s: %s %s", exc.__class__.__name__, exc, exc.details or "")
        return EXIT_ERROR


def _cmd_sync(manager: EnrollmentManager, shell: Shell) -> int:
    shell.say("Starting continuous DEP sync. Press Enter during a countdown to stop.")
    try:
        manager.sync_forever(on_pass=shell.report_pass)
    except SyncCancelled:
        shell.say("Sync loop stopped.")
    return EXIT_OK


def _cmd_status(manager: EnrollmentManager, shell: Shell) -> int:
    rows = manager.token_overview()
    if not rows:
        shell.say("No enrollment tokens found.")
        return EXIT_NO_ACTION
    for row in rows:
        shell.say(f"{row['name']} ({row['token_id']})")
        shell.say(f"  Apple ID:        {row['apple_id']}")
        shell.say(f"  Synced devices:  {row['devices']}")
        shell.say(f"  Last triggered:  {row['last_triggered']}")
        shell.say(f"  Last success:    {row['last_success']}")
        shell.say(f"  State:           {row['state']}")
    return EXIT_OK


def _cmd_remove(manager: EnrollmentManager, shell: Shell, args: argparse.Namespace) -> int:
    serial = args.serial or shell.ask("Serial number: ")
    code = EXIT_NO_ACTION
    while True:
        if not serial:
            shell.say("No serial number given. Nothing to remove.")
            return code

        result = manager.remove_device(
            serial,
            confirm=shell.confirm,
            sync=args.sync,
            wait=args.wait,
        )
        shell.report_removal(result)
        code = _worst_exit_code(code, _removal_exit_code(result))

        if args.once or not shell.confirm("Remove another device?"):
            return code
        serial = shell.ask("Serial number: ")


# A failure outranks a success, which outranks "nothing done".
_EXIT_RANK = {EXIT_NO_ACTION: 0, EXIT_OK: 1, EXIT_ERROR: 2}


def _worst_exit_code(a: int, b: int) -> int:
    return max(a, b, key=_EXIT_RANK.__getitem__)


def _removal_exit_code(result: RemovalResult) -> int:
    if result.status == "noop":
        return EXIT_NO_ACTION
    if result.status == "failed":
        return EXIT_ERROR
    return EXIT_OK
