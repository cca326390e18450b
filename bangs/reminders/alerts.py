import logging
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


class Alerter(Protocol):
    """Operational alerting collaborator."""

    def dispatch_failed(self, reminder_id: int, reason: str) -> None: ...

    def flagged(self, reminder_id: int, reason: str) -> None: ...

    def stuck(self, reminder_ids: Sequence[int]) -> None: ...


class LogAlerter:
    """Alerts through the log; log shipping turns these into pages."""

    def dispatch_failed(self, reminder_id: int, reason: str) -> None:
        logger.warning(f"⚠️  [Alert] Dispatch failed for reminder={reminder_id}: {reason}")

    def flagged(self, reminder_id: int, reason: str) -> None:
        logger.error(f"❌ [Alert] Reminder={reminder_id} flagged and skipped: {reason}")

    def stuck(self, reminder_ids: Sequence[int]) -> None:
        if reminder_ids:
            logger.error(
                f"❌ [Alert] {len(reminder_ids)} reminder(s) stuck in claimed state, "
                f"needs operator release: {list(reminder_ids)}"
            )
