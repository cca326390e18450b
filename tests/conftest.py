import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker

from bangs.db.base import Base
from bangs.models import Reminder, User
from bangs.reminders.dispatcher import DispatchResult
from bangs.reminders.scheduler import SweepScheduler
from bangs.reminders.store import ReminderStore

UTC = timezone.utc


class RecordingDispatcher:
    """Collects delivered payloads; optionally reports every delivery as failed."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.payloads = []
        self._lock = threading.Lock()

    def deliver(self, payload):
        with self._lock:
            self.payloads.append(payload)
        if self.fail:
            return DispatchResult.failure("smtp unavailable")
        return DispatchResult.success()

    def ids(self):
        return [p.reminder_id for p in self.payloads]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'reminders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = User(email="ada@example.com", username="ada", timezone="Europe/London")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def store(session_factory):
    return ReminderStore(session_factory)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 6, 9, 5, tzinfo=UTC))


@pytest.fixture
def scheduler(store, dispatcher, clock):
    return SweepScheduler(store, dispatcher, batch_size=50, stuck_after_seconds=900, clock=clock)


@pytest.fixture
def make_reminder(db, user):
    """Insert a row directly, bypassing schema validation.

    ``skip_checks`` also disables the table CHECK constraints so tests can plant
    rows an older writer or a manual edit could have left behind.
    """
    def _make(next_due, reminder_type="once", frequency=None, title="Read later", url=None,
              skip_checks=False, **extra):
        reminder = Reminder(
            user_id=user.id,
            title=title,
            url=url,
            reminder_type=reminder_type,
            frequency=frequency,
            next_due=next_due,
            **extra,
        )
        if skip_checks:
            db.execute(text("PRAGMA ignore_check_constraints = ON"))
        try:
            db.add(reminder)
            db.flush()
        finally:
            if skip_checks:
                db.execute(text("PRAGMA ignore_check_constraints = OFF"))
        db.commit()
        db.refresh(reminder)
        return reminder
    return _make


@pytest.fixture
def fetch(session_factory):
    """Read a reminder through a fresh session."""
    def _fetch(reminder_id):
        with session_factory() as session:
            return session.get(Reminder, reminder_id)
    return _fetch
