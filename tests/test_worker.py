import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from bangs.core.config import Settings
from bangs.reminders import __main__ as worker
from bangs.reminders.config import ReminderSettings
from bangs.reminders.scheduler import SweepReport


class TestSettings:
    def test_database_uri_derived_from_parts(self):
        s = Settings(POSTGRES_SERVER="db", POSTGRES_PORT=5433, POSTGRES_USER="app",
                     POSTGRES_PASSWORD="p@ss", POSTGRES_DB="bangs", SQLALCHEMY_DATABASE_URI=None)
        assert s.SQLALCHEMY_DATABASE_URI == "postgresql://app:p%40ss@db:5433/bangs"

    def test_explicit_uri_wins(self):
        s = Settings(SQLALCHEMY_DATABASE_URI="sqlite:///x.db")
        assert s.SQLALCHEMY_DATABASE_URI == "sqlite:///x.db"

    def test_log_level_normalized(self):
        assert Settings(LOG_LEVEL=" debug ").LOG_LEVEL == "DEBUG"
        assert Settings(LOG_LEVEL="").LOG_LEVEL == "INFO"


class TestReminderSettings:
    def test_defaults_leave_room_for_a_full_batch(self):
        s = ReminderSettings()
        assert s.STUCK_AFTER_SECONDS > s.worst_case_batch_seconds

    def test_stuck_threshold_shorter_than_a_batch_rejected(self):
        with pytest.raises(ValidationError):
            ReminderSettings(SWEEP_BATCH_SIZE=100, DISPATCH_TIMEOUT_SECONDS=10, SWEEP_MAX_WORKERS=1,
                             STUCK_AFTER_SECONDS=900)

    def test_more_workers_shorten_the_batch(self):
        s = ReminderSettings(SWEEP_BATCH_SIZE=100, DISPATCH_TIMEOUT_SECONDS=10, SWEEP_MAX_WORKERS=2,
                             STUCK_AFTER_SECONDS=900)
        assert s.worst_case_batch_seconds == 500


class TestMain:
    @pytest.fixture(autouse=True)
    def _no_logging_reconfig(self):
        with patch.object(worker, "configure_logging") as configure:
            yield configure

    def _report(self, aborted):
        return SweepReport(started_at=datetime(2025, 1, 6, tzinfo=timezone.utc), aborted=aborted)

    def test_once_exit_codes(self):
        scheduler = MagicMock()
        with patch("bangs.reminders.scheduler.build_scheduler", return_value=scheduler):
            scheduler.run_once.return_value = self._report(aborted=False)
            assert worker.main(["once"]) == 0
            scheduler.run_once.return_value = self._report(aborted=True)
            assert worker.main(["once"]) == 1

    def test_log_options_passed_through(self, _no_logging_reconfig):
        with patch("bangs.reminders.scheduler.build_scheduler") as build:
            build.return_value.run_once.return_value = self._report(aborted=False)
            worker.main(["once", "--log-level", "debug", "--log-file", "/tmp/worker.log"])
        _no_logging_reconfig.assert_called_once_with("debug", "/tmp/worker.log")

    def test_serve_runs_uvicorn(self):
        with patch("uvicorn.run") as run:
            worker.main(["serve"])
        assert run.call_args.args == ("bangs.reminders.service:app",)

    def test_unknown_command_exits(self):
        with pytest.raises(SystemExit):
            worker.main(["fire-now"])


def test_configure_logging_quiets_sqlalchemy(tmp_path):
    from bangs.core.logging import configure_logging

    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("warning", str(tmp_path / "worker.log"))
        assert root.level == logging.WARNING
        assert any(isinstance(h, logging.FileHandler) for h in root.handlers)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        for h in root.handlers:
            if h not in saved_handlers:
                h.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
