"""
Reminder sweep worker.

    python -m bangs.reminders loop     # in-process periodic sweeps
    python -m bangs.reminders once     # a single sweep cycle, e.g. from cron
    python -m bangs.reminders serve    # operations API (health, stuck claims, metrics)

For Celery deployments run ``celery -A bangs.reminders.celery_app worker -B``
instead of ``loop``.
"""
import argparse
import logging
import os
import signal
import sys
import threading

# Load environment variables from .env file before importing settings
from dotenv import load_dotenv

load_dotenv(os.path.join(os.getcwd(), ".env"))

from bangs.core.logging import configure_logging  # noqa: E402
from bangs.reminders.config import settings  # noqa: E402

logger = logging.getLogger("bangs.reminders.worker")


def _run_loop() -> None:
    from bangs.reminders.scheduler import build_scheduler

    scheduler = build_scheduler()
    stop_event = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info(f"🛑 Received signal {signum}, stopping after current cycle")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)
    scheduler.run_forever(stop_event)


def _run_once() -> int:
    from bangs.reminders.scheduler import build_scheduler

    report = build_scheduler().run_once()
    logger.info(f"Sweep finished: claimed={report.claimed} fired={report.fired} aborted={report.aborted}")
    return 1 if report.aborted else 0


def _serve() -> None:
    import uvicorn

    uvicorn.run("bangs.reminders.service:app", host=settings.SERVICE_HOST, port=settings.SERVICE_PORT)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="bangs.reminders", description="Reminder sweep worker")
    parser.add_argument("command", choices=["loop", "once", "serve"])
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--log-file", default=None)
    args = parser.parse_args(argv)

    configure_logging(args.log_level, args.log_file)
    logger.info(f"🚀 Starting reminder worker: {args.command}")
    try:
        if args.command == "loop":
            _run_loop()
        elif args.command == "once":
            return _run_once()
        else:
            _serve()
    except KeyboardInterrupt:
        logger.info("🛑 Worker shutdown requested")
    finally:
        logger.info("👋 Worker terminated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
