import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from bangs.reminders import repository
from bangs.reminders.claimer import ClaimedReminder, DueClaimer
from bangs.reminders.dispatcher import DispatchResult, TimeoutDispatcher
from bangs.reminders.recurrence import Frequency, Once, Recurring, ReminderKind
from bangs.reminders.schemas import ReminderUpdate
from bangs.reminders.state_machine import Outcome, ReminderState, ReminderStateMachine
from bangs.reminders.store import Claim
from bangs.utils.timezone import to_utc_aware

from .conftest import RecordingDispatcher

UTC = timezone.utc
NOW = datetime(2025, 1, 6, 9, 5, tzinfo=UTC)


def _claimed(schedule, next_due, title="Read later"):
    return ClaimedReminder(
        id=1,
        user_id=7,
        title=title,
        url="https://example.com/post",
        schedule=schedule,
        next_due=next_due,
        claim=Claim(reminder_id=1, version=1, token="t" * 32, claimed_at=NOW),
    )


class TestAdvance:
    def test_once_completes(self):
        payload, transition = ReminderStateMachine.advance(_claimed(Once(), NOW))

        assert transition.state == ReminderState.FIRED_ONCE
        assert transition.resulting_state == ReminderState.FIRED_ONCE
        assert transition.is_completed is True
        assert transition.next_due is None
        assert payload.reminder_type == ReminderKind.ONCE
        assert payload.frequency is None
        assert payload.due_at == NOW
        assert payload.url == "https://example.com/post"

    def test_recurring_anchors_on_previous_due(self):
        due = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)
        payload, transition = ReminderStateMachine.advance(_claimed(Recurring(Frequency.WEEKLY), due))

        assert transition.state == ReminderState.FIRED_RECURRING
        assert transition.resulting_state == ReminderState.PENDING
        assert transition.is_completed is False
        assert transition.next_due == datetime(2025, 1, 13, 9, 0, tzinfo=UTC)
        assert payload.frequency == Frequency.WEEKLY
        assert payload.due_at == due

    def test_advance_is_pure(self):
        claimed = _claimed(Recurring(Frequency.DAILY), NOW)
        assert ReminderStateMachine.advance(claimed) == ReminderStateMachine.advance(claimed)


class TestProcess:
    @pytest.fixture
    def claim_one(self, store, make_reminder):
        def _claim(**kwargs):
            reminder = make_reminder(**kwargs)
            (claimed,) = DueClaimer(store).claim_batch(NOW, 10)
            assert claimed.id == reminder.id
            return claimed
        return _claim

    def test_fired_recurring_commits_and_releases(self, store, dispatcher, claim_one, fetch):
        claimed = claim_one(next_due=NOW - timedelta(minutes=5), reminder_type="recurring", frequency="daily")
        machine = ReminderStateMachine(store, dispatcher)

        assert machine.process(claimed, NOW) == Outcome.FIRED

        row = fetch(claimed.id)
        assert to_utc_aware(row.next_due) == NOW - timedelta(minutes=5) + timedelta(days=1)
        assert row.is_completed is False
        assert row.claimed_at is None
        assert row.claim_token is None
        assert row.fire_count == 1
        assert row.last_error is None
        assert row.version == 2
        assert dispatcher.ids() == [claimed.id]

    def test_dispatch_failure_still_advances(self, store, claim_one, fetch):
        claimed = claim_one(next_due=NOW - timedelta(minutes=5))
        alerter = MagicMock()
        machine = ReminderStateMachine(store, RecordingDispatcher(fail=True), alerter=alerter)

        assert machine.process(claimed, NOW) == Outcome.DISPATCH_FAILED

        row = fetch(claimed.id)
        assert row.is_completed is True
        assert row.next_due is None
        assert row.claimed_at is None
        assert row.last_error == "smtp unavailable"
        alerter.dispatch_failed.assert_called_once_with(claimed.id, "smtp unavailable")

    def test_user_edit_while_claimed_wins(self, store, dispatcher, claim_one, session_factory, fetch):
        claimed = claim_one(next_due=NOW - timedelta(minutes=5), reminder_type="recurring", frequency="weekly")
        with session_factory() as db:
            repository.update_reminder(db, claimed.id, ReminderUpdate(title="Renamed"))

        outcome = ReminderStateMachine(store, dispatcher).process(claimed, NOW)

        assert outcome == Outcome.CONFLICT
        row = fetch(claimed.id)
        assert row.title == "Renamed"
        assert row.fire_count == 0
        assert to_utc_aware(row.next_due) == NOW - timedelta(minutes=5)
        assert row.claimed_at is None

    def test_commit_failure_leaves_row_stuck(self, store, dispatcher, claim_one, fetch):
        claimed = claim_one(next_due=NOW - timedelta(minutes=5))
        machine = ReminderStateMachine(store, dispatcher)

        with patch.object(store, "commit_transition", side_effect=OperationalError("UPDATE", {}, Exception("db gone"))):
            assert machine.process(claimed, NOW) == Outcome.STUCK

        row = fetch(claimed.id)
        assert row.claimed_at is not None
        assert row.is_completed is False
        assert store.select_due_candidates(NOW + timedelta(days=1), 10) == []


class TestTimeoutDispatcher:
    def _payload(self):
        payload, _ = ReminderStateMachine.advance(_claimed(Once(), NOW))
        return payload

    def test_passes_through_success(self):
        inner = RecordingDispatcher()
        dispatcher = TimeoutDispatcher(inner, timeout_seconds=5)
        try:
            assert dispatcher.deliver(self._payload()).ok
        finally:
            dispatcher.shutdown()
        assert inner.ids() == [1]

    def test_overrun_is_a_failure(self):
        class Slow:
            def deliver(self, payload):
                time.sleep(0.5)
                return DispatchResult.success()

        dispatcher = TimeoutDispatcher(Slow(), timeout_seconds=0.05)
        try:
            result = dispatcher.deliver(self._payload())
        finally:
            dispatcher.shutdown()
        assert not result.ok
        assert "timed out" in result.error

    def test_exception_is_a_failure(self):
        class Broken:
            def deliver(self, payload):
                raise RuntimeError("boom")

        dispatcher = TimeoutDispatcher(Broken(), timeout_seconds=5)
        try:
            result = dispatcher.deliver(self._payload())
        finally:
            dispatcher.shutdown()
        assert not result.ok
        assert "boom" in result.error

    def test_hung_transport_fails_fast_and_never_delivers_late(self):
        class Hung:
            def __init__(self):
                self.release = threading.Event()
                self.delivered = []

            def deliver(self, payload):
                self.release.wait(5)
                self.delivered.append(payload.reminder_id)
                return DispatchResult.success()

        inner = Hung()
        dispatcher = TimeoutDispatcher(inner, timeout_seconds=0.1, max_workers=1)
        first = self._payload()
        second = first.model_copy(update={"reminder_id": 2})
        third = first.model_copy(update={"reminder_id": 3})
        try:
            r1 = dispatcher.deliver(first)
            r2 = dispatcher.deliver(second)
            inner.release.set()

            # The slot comes back once the hung call returns
            deadline = time.monotonic() + 5
            r3 = dispatcher.deliver(third)
            while not r3.ok and time.monotonic() < deadline:
                time.sleep(0.02)
                r3 = dispatcher.deliver(third)
        finally:
            inner.release.set()
            dispatcher.shutdown(wait=True)

        assert not r1.ok and "timed out" in r1.error
        assert not r2.ok and "busy" in r2.error
        assert r3.ok
        assert inner.delivered == [1, 3]

    def test_timed_out_call_that_has_not_started_is_cancelled(self):
        started = threading.Event()
        release = threading.Event()
        inner = RecordingDispatcher()
        dispatcher = TimeoutDispatcher(inner, timeout_seconds=0.1, max_workers=2)

        def block():
            started.set()
            release.wait(5)

        busy = ThreadPoolExecutor(max_workers=1)
        busy.submit(block)
        started.wait(5)
        try:
            with patch.object(dispatcher, "_executor", busy):
                result = dispatcher.deliver(self._payload())
                release.set()
                busy.shutdown(wait=True)
        finally:
            release.set()
            dispatcher.shutdown(wait=True)

        assert not result.ok
        assert "timed out" in result.error
        assert inner.payloads == []
