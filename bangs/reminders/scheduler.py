"""
Periodic sweep driver.

Each cycle claims a bounded batch of due reminders and runs the state machine
over it. Nothing carries over between cycles except what is in the store, so
any number of schedulers (threads, processes, Celery beat) can run against the
same database and a restart simply rediscovers overdue reminders.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from bangs.utils.timezone import utcnow
from .alerts import Alerter, LogAlerter
from .claimer import ClaimedReminder, DueClaimer
from .config import ReminderSettings, settings as reminder_settings
from .dispatcher import Dispatcher, build_dispatcher
from .metrics import scheduler_sweeps_total, scheduler_sweeps_aborted_total, reminders_stuck
from .schemas import SchedulerStatus
from .state_machine import Outcome, ReminderStateMachine
from .store import ReminderStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    started_at: datetime
    claimed: int = 0
    outcomes: Dict[Outcome, int] = field(default_factory=dict)
    stuck: int = 0
    aborted: bool = False

    def record(self, outcome: Outcome) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1

    def count(self, outcome: Outcome) -> int:
        return self.outcomes.get(outcome, 0)

    @property
    def fired(self) -> int:
        return self.count(Outcome.FIRED) + self.count(Outcome.DISPATCH_FAILED)


class SweepScheduler:
    def __init__(
        self,
        store: ReminderStore,
        dispatcher: Dispatcher,
        interval_seconds: float = 60,
        batch_size: int = 100,
        max_workers: int = 1,
        stuck_after_seconds: float = 1800,
        clock: Callable[[], datetime] = utcnow,
        alerter: Optional[Alerter] = None,
    ):
        self.store = store
        self.alerter = alerter or LogAlerter()
        self.claimer = DueClaimer(store, alerter=self.alerter)
        self.state_machine = ReminderStateMachine(store, dispatcher, alerter=self.alerter)
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.max_workers = max(1, max_workers)
        self.stuck_after = timedelta(seconds=stuck_after_seconds)
        self.clock = clock

        self.last_run_at: Optional[datetime] = None
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> SweepReport:
        """One sweep cycle: claim, advance each claimed reminder, report stuck claims."""
        now = self.clock()
        scheduler_sweeps_total.inc()
        report = SweepReport(started_at=now)

        try:
            claimed = self.claimer.claim_batch(now, self.batch_size)
        except SQLAlchemyError:
            scheduler_sweeps_aborted_total.inc()
            logger.exception("❌ [Sweep] Store unavailable - aborting cycle, next tick retries")
            report.aborted = True
            return report

        report.claimed = len(claimed)
        for outcome in self._process_batch(claimed, now):
            report.record(outcome)

        self._report_stuck(now, report)
        self.last_run_at = now
        if report.claimed:
            logger.info(
                f"📊 [Sweep] claimed={report.claimed} fired={report.count(Outcome.FIRED)} "
                f"dispatch_failed={report.count(Outcome.DISPATCH_FAILED)} "
                f"conflicts={report.count(Outcome.CONFLICT)} stuck_now={report.count(Outcome.STUCK)} "
                f"stuck_total={report.stuck}"
            )
        return report

    def _process_batch(self, claimed: List[ClaimedReminder], now: datetime) -> List[Outcome]:
        if self.max_workers == 1 or len(claimed) <= 1:
            return [self._process_one(item, now) for item in claimed]
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reminder-sweep") as pool:
            return list(pool.map(lambda item: self._process_one(item, now), claimed))

    def _process_one(self, claimed: ClaimedReminder, now: datetime) -> Outcome:
        try:
            return self.state_machine.process(claimed, now)
        except Exception:
            # One bad reminder must not block the rest of the batch; its claim stays put
            logger.exception(f"❌ [Sweep] Unexpected error processing reminder={claimed.id}")
            return Outcome.STUCK

    def _report_stuck(self, now: datetime, report: SweepReport) -> None:
        try:
            stuck = self.store.find_stuck(now - self.stuck_after, limit=self.batch_size)
        except SQLAlchemyError:
            logger.exception("❌ [Sweep] Could not query stuck reminders")
            return
        report.stuck = len(stuck)
        reminders_stuck.set(len(stuck))
        if stuck:
            self.alerter.stuck([r.id for r in stuck])

    # --- In-process periodic driver ---

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info(f"🚀 [Sweep] Scheduler loop started, interval={self.interval_seconds}s")
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("❌ [Sweep] Cycle crashed; continuing on next tick")
            stop_event.wait(self.interval_seconds)
        logger.info("🛑 [Sweep] Scheduler loop stopped")

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self.run_forever,
            args=(self._stop_event,),
            name="reminder-sweep-loop",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        self._stop_event = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            interval_seconds=self.interval_seconds,
            last_run_at=self.last_run_at,
        )


def build_scheduler(
    session_factory: Optional[sessionmaker] = None,
    settings: ReminderSettings = reminder_settings,
    dispatcher: Optional[Dispatcher] = None,
) -> SweepScheduler:
    """Wire a scheduler from settings against the application database."""
    if session_factory is None:
        from bangs.db.session import SessionLocal
        session_factory = SessionLocal
    return SweepScheduler(
        store=ReminderStore(session_factory),
        dispatcher=dispatcher or build_dispatcher(settings),
        interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
        batch_size=settings.SWEEP_BATCH_SIZE,
        max_workers=settings.SWEEP_MAX_WORKERS,
        stuck_after_seconds=settings.STUCK_AFTER_SECONDS,
    )
