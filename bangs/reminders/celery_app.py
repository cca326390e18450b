from celery import Celery
from .config import settings


celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_default_queue=settings.CELERY_QUEUE,
    include=["bangs.reminders.tasks"],
    timezone="UTC",
    enable_utc=True,
)

# Celery Beat schedule for periodic sweeps. Overlapping sweeps are safe: every
# occurrence is claimed with a conditional update.
celery_app.conf.beat_schedule = {
    "sweep-due-reminders": {
        "task": "reminders.sweep",
        "schedule": settings.SWEEP_INTERVAL_SECONDS,
    },
    "report-stuck-reminders": {
        "task": "reminders.report_stuck",
        "schedule": settings.STUCK_REPORT_INTERVAL_SECONDS,
    },
}
