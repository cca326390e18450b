import logging
from datetime import timedelta
from typing import Optional

from celery import shared_task

from bangs.utils.timezone import utcnow
from .celery_app import celery_app  # noqa: F401  (binds shared tasks to the reminders app)
from .config import settings
from .scheduler import SweepScheduler, build_scheduler

logger = logging.getLogger(__name__)

_scheduler: Optional[SweepScheduler] = None


def get_scheduler() -> SweepScheduler:
    """One scheduler per worker process; it holds wiring only, no sweep state."""
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler()
    return _scheduler


@shared_task(name="reminders.sweep")
def sweep_task() -> dict:
    """Run one sweep cycle. Returns a summary of the cycle."""
    report = get_scheduler().run_once()
    return {
        "started_at": report.started_at.isoformat(),
        "claimed": report.claimed,
        "fired": report.fired,
        "outcomes": {outcome.value: n for outcome, n in report.outcomes.items()},
        "stuck": report.stuck,
        "aborted": report.aborted,
    }


@shared_task(name="reminders.report_stuck")
def report_stuck_task() -> int:
    """Alert on claims that were never resolved. Returns how many are stuck."""
    scheduler = get_scheduler()
    cutoff = utcnow() - timedelta(seconds=settings.STUCK_AFTER_SECONDS)
    stuck = scheduler.store.find_stuck(cutoff, limit=settings.SWEEP_BATCH_SIZE)
    if stuck:
        scheduler.alerter.stuck([r.id for r in stuck])
    else:
        logger.info("✅ [Stuck] No stuck reminders")
    return len(stuck)
