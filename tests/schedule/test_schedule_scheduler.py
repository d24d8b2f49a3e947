import threading
import unittest
from datetime import datetime, timedelta, timezone

from depsync.errors import (
    ApiError,
    AuthError,
    HttpErrorInfo,
    NotFoundError,
    SyncCancelled,
    map_http_error,
)
from depsync.models import EnrollmentToken
from depsync.schedule.countdown import Countdown
from depsync.schedule.scheduler import CooldownScheduler

START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start
        self.slept = 0.0

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.slept += seconds
        self.now += timedelta(seconds=seconds)


class FakeGraph:
    """In-memory DEP tokens; a trigger stamps the token like Intune does."""

    def __init__(self, clock: FakeClock, tokens: list[EnrollmentToken]) -> None:
        self.clock = clock
        self.tokens = {t.token_id: t for t in tokens}
        self.order = [t.token_id for t in tokens]
        self.calls: list[tuple] = []
        self.trigger_errors: dict[str, Exception] = {}
        self.list_error: Exception | None = None
        self.get_errors: dict[str, Exception] = {}

    def list_enrollment_tokens(self) -> list[EnrollmentToken]:
        self.calls.append(("list",))
        if self.list_error is not None:
            raise self.list_error
        return [self.tokens[tid] for tid in self.order]

    def get_enrollment_token(self, token_id: str) -> EnrollmentToken:
        self.calls.append(("get", token_id))
        if token_id in self.get_errors:
            raise self.get_errors[token_id]
        if token_id not in self.tokens:
            raise NotFoundError("no such token", details={"token_id": token_id})
        return self.tokens[token_id]

    def trigger_enrollment_sync(self, token_id: str) -> None:
        self.calls.append(("trigger", token_id, self.clock()))
        if token_id in self.trigger_errors:
            raise self.trigger_errors[token_id]
        old = self.tokens[token_id]
        self.tokens[token_id] = EnrollmentToken(
            token_id=old.token_id,
            name=old.name,
            last_successful_sync=old.last_successful_sync,
            last_sync_triggered=self.clock().isoformat(),
        )

    def triggers(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "trigger"]


def _token(token_id: str, minutes_ago: float | None) -> EnrollmentToken:
    triggered = None
    if minutes_ago is not None:
        triggered = (START - timedelta(minutes=minutes_ago)).isoformat()
    return EnrollmentToken(token_id=token_id, name=token_id.upper(), last_sync_triggered=triggered)


class SchedulerTestCase(unittest.TestCase):
    def make(self, tokens, *, cancel_when=None, idle_seconds: float = 60.0):
        self.clock = FakeClock(START)
        self.graph = FakeGraph(self.clock, tokens)
        self.cancel = threading.Event()

        def on_tick(remaining: int) -> None:
            if cancel_when is not None and cancel_when(remaining):
                self.cancel.set()

        countdown = Countdown(clock=self.clock, sleep=self.clock.sleep, on_tick=on_tick)
        return CooldownScheduler(
            self.graph,
            countdown=countdown,
            cancel=self.cancel,
            idle_seconds=idle_seconds,
        )


class TestRunPass(SchedulerTestCase):
    def test_eligible_token_is_triggered_then_waits_a_full_window(self) -> None:
        scheduler = self.make([_token("t1", 20)])

        self.assertTrue(scheduler.evaluate(self.graph.tokens["t1"]).eligible)
        result = scheduler.run_pass()

        self.assertEqual(self.graph.triggers(), [("trigger", "t1", START)])
        r = result.results[0]
        self.assertEqual(r.status, "triggered")
        self.assertEqual(r.triggered_at, START)
        self.assertEqual(r.countdown, "expired")
        self.assertEqual(self.clock.now, START + timedelta(minutes=15))

    def test_cooling_token_waits_before_trigger(self) -> None:
        scheduler = self.make([_token("t2", 5)])

        state = scheduler.evaluate(self.graph.tokens["t2"])
        self.assertFalse(state.eligible)
        self.assertEqual(state.remaining_seconds(START), 600)

        scheduler.run_pass()

        # Re-read after the countdown, then one trigger 600s later.
        self.assertEqual(
            [c[0] for c in self.graph.calls],
            ["list", "get", "trigger"],
        )
        self.assertEqual(self.graph.triggers()[0][2], START + timedelta(seconds=600))

    def test_tokens_processed_in_listing_order(self) -> None:
        scheduler = self.make([_token("b", None), _token("a", None), _token("c", 30)])

        result = scheduler.run_pass()

        self.assertEqual([c[1] for c in self.graph.triggers()], ["b", "a", "c"])
        self.assertEqual(result.summary["triggered"], 3)
        # One full window per trigger, strictly sequential.
        times = [c[2] for c in self.graph.triggers()]
        self.assertEqual(times[1] - times[0], timedelta(minutes=15))
        self.assertEqual(times[2] - times[1], timedelta(minutes=15))

    def test_trigger_failure_is_reported_and_next_token_still_runs(self) -> None:
        scheduler = self.make([_token("t1", None), _token("t2", None)])
        self.graph.trigger_errors["t1"] = ApiError("boom", details={"status_code": 500})

        result = scheduler.run_pass()

        first, second = result.results
        self.assertEqual(first.status, "failed")
        self.assertEqual(first.token_id, "t1")
        self.assertEqual(first.error_type, "ApiError")
        self.assertEqual(first.error_message, "boom")
        self.assertEqual(second.status, "triggered")
        self.assertEqual(result.summary, {"triggered": 1, "failed": 1, "skipped": 0})
        # No retry for t1 within the pass.
        self.assertEqual([c[1] for c in self.graph.triggers()], ["t1", "t2"])

    def test_rejected_trigger_does_not_stop_later_tokens(self) -> None:
        scheduler = self.make(
            [_token("expired", None), _token("denied", None), _token("healthy", None)]
        )
        self.graph.trigger_errors["expired"] = map_http_error(HttpErrorInfo(status_code=400))
        self.graph.trigger_errors["denied"] = map_http_error(HttpErrorInfo(status_code=403))

        result = scheduler.run_pass()

        self.assertEqual(
            [r.status for r in result.results],
            ["failed", "failed", "triggered"],
        )
        self.assertEqual(result.results[0].error_type, "InvalidArgumentError")
        self.assertEqual(result.results[1].error_type, "PermissionError")
        self.assertEqual(
            [c[1] for c in self.graph.triggers()],
            ["expired", "denied", "healthy"],
        )

    def test_rejected_reread_does_not_stop_later_tokens(self) -> None:
        scheduler = self.make([_token("t1", 5), _token("t2", None)])
        self.graph.get_errors["t1"] = AuthError("token revoked")

        result = scheduler.run_pass()

        self.assertEqual(result.results[0].status, "failed")
        self.assertEqual(result.results[0].error_type, "AuthError")
        self.assertEqual(result.results[1].status, "triggered")
        self.assertEqual([c[1] for c in self.graph.triggers()], ["t2"])

    def test_bad_timestamp_fails_only_that_token(self) -> None:
        bad = EnrollmentToken(token_id="bad", name="BAD", last_sync_triggered="garbage")
        scheduler = self.make([bad, _token("ok", None)])

        result = scheduler.run_pass()

        self.assertEqual(result.results[0].status, "failed")
        self.assertEqual(result.results[0].error_type, "TokenStatusError")
        self.assertEqual(result.results[1].status, "triggered")

    def test_listing_failure_is_fatal_for_the_pass(self) -> None:
        scheduler = self.make([_token("t1", None)])
        self.graph.list_error = ApiError("down")

        with self.assertRaises(ApiError):
            scheduler.run_pass()
        self.assertEqual(self.graph.triggers(), [])

    def test_cancel_during_countdown_stops_continuous_mode(self) -> None:
        scheduler = self.make([_token("t1", 5)], cancel_when=lambda r: r <= 590)

        with self.assertRaises(SyncCancelled):
            scheduler.run_pass()
        self.assertEqual(self.graph.triggers(), [])


class TestRunForever(SchedulerTestCase):
    def test_max_passes_and_reevaluation(self) -> None:
        scheduler = self.make([_token("t1", None)])
        passes = []

        count = scheduler.run_forever(max_passes=2, on_pass=passes.append)

        self.assertEqual(count, 2)
        self.assertEqual(len(passes), 2)
        times = [c[2] for c in self.graph.triggers()]
        self.assertEqual(times, [START, START + timedelta(minutes=15)])

    def test_empty_token_list_waits_idle_interval(self) -> None:
        scheduler = self.make([], idle_seconds=60)

        scheduler.run_forever(max_passes=3)

        self.assertEqual(self.clock.now, START + timedelta(seconds=180))

    def test_failed_pass_waits_instead_of_hammering(self) -> None:
        scheduler = self.make([_token("t1", None)], idle_seconds=60)
        self.graph.trigger_errors["t1"] = ApiError("boom")

        scheduler.run_forever(max_passes=2)

        self.assertEqual(len(self.graph.triggers()), 2)
        self.assertEqual(self.clock.now, START + timedelta(seconds=120))

    def test_non_fatal_listing_error_is_retried_after_idle(self) -> None:
        scheduler = self.make([_token("t1", None)], idle_seconds=30)
        self.graph.list_error = ApiError("down")

        scheduler.run_forever(max_passes=2)

        self.assertEqual(self.clock.now, START + timedelta(seconds=60))

    def test_fatal_listing_error_propagates(self) -> None:
        scheduler = self.make([_token("t1", None)])
        self.graph.list_error = AuthError("expired")

        with self.assertRaises(AuthError):
            scheduler.run_forever(max_passes=5)

    def test_cancel_propagates(self) -> None:
        scheduler = self.make([_token("t1", None)], cancel_when=lambda r: True)

        with self.assertRaises(SyncCancelled):
            scheduler.run_forever()
        self.assertEqual(len(self.graph.triggers()), 1)


class TestSyncOnce(SchedulerTestCase):
    def test_eligible_token_triggers_once_and_waits(self) -> None:
        scheduler = self.make([_token("t1", 30)])

        result = scheduler.sync_once("t1")

        self.assertEqual(result.status, "triggered")
        self.assertEqual(result.countdown, "expired")
        self.assertEqual(len(self.graph.triggers()), 1)
        self.assertEqual(self.clock.now, START + timedelta(minutes=15))

    def test_no_wait(self) -> None:
        scheduler = self.make([_token("t1", None)])

        result = scheduler.sync_once("t1", wait=False)

        self.assertEqual(result.status, "triggered")
        self.assertIsNone(result.countdown)
        self.assertEqual(self.clock.now, START)

    def test_cancel_after_trigger_returns_early(self) -> None:
        scheduler = self.make([_token("t1", None)], cancel_when=lambda r: r <= 880)

        result = scheduler.sync_once("t1")

        self.assertEqual(result.status, "triggered")
        self.assertEqual(result.countdown, "cancelled")
        self.assertLess(self.clock.now, START + timedelta(minutes=15))

    def test_cancel_while_cooling_skips_trigger(self) -> None:
        scheduler = self.make([_token("t1", 5)], cancel_when=lambda r: True)

        result = scheduler.sync_once("t1")

        self.assertEqual(result.status, "skipped")
        self.assertEqual(result.countdown, "cancelled")
        self.assertEqual(self.graph.triggers(), [])

    def test_unknown_token_is_failed_result(self) -> None:
        scheduler = self.make([])

        result = scheduler.sync_once("missing")

        self.assertEqual(result.status, "failed")
        self.assertEqual(result.error_type, "NotFoundError")


if __name__ == "__main__":
    unittest.main()
