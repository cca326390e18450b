import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from bangs.utils.timezone import to_utc_aware
from .alerts import Alerter, LogAlerter
from .exceptions import ReminderError
from .metrics import reminders_claimed_total, reminders_claim_conflicts_total, reminders_flagged_total
from .models import Reminder
from .recurrence import Schedule, parse_schedule
from .store import Claim, ReminderStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimedReminder:
    """A due occurrence owned by exactly one sweep."""
    id: int
    user_id: int
    title: str
    url: Optional[str]
    schedule: Schedule
    next_due: datetime
    claim: Claim


class DueClaimer:
    """Selects due candidates and claims each one with a compare-and-swap."""

    def __init__(self, store: ReminderStore, alerter: Optional[Alerter] = None):
        self.store = store
        self.alerter = alerter or LogAlerter()

    def claim_batch(self, now: datetime, limit: int) -> List[ClaimedReminder]:
        """Claim up to ``limit`` due reminders, oldest ``next_due`` first.

        Rows another sweep got to first are skipped. Storage errors propagate
        so the caller can abort the cycle.
        """
        now = to_utc_aware(now)
        candidates = self.store.select_due_candidates(now, limit)
        if not candidates:
            return []

        claimed: List[ClaimedReminder] = []
        conflicts = 0
        for row in candidates:
            claim = self.store.claim(row, now)
            if claim is None:
                conflicts += 1
                reminders_claim_conflicts_total.inc()
                logger.debug(f"[Claim] Lost race for reminder={row.id} v{row.version}; skipping")
                continue
            reminders_claimed_total.inc()

            item = self._to_claimed(row, claim, now)
            if item is not None:
                claimed.append(item)

        logger.info(
            f"🧭 [Claim] candidates={len(candidates)} claimed={len(claimed)} conflicts={conflicts}"
        )
        return claimed

    def _to_claimed(self, row: Reminder, claim: Claim, now: datetime) -> Optional[ClaimedReminder]:
        try:
            schedule = parse_schedule(row.reminder_type, row.frequency)
        except ReminderError as e:
            # Keep the claim so the row is not picked up every cycle
            reason = f"invalid schedule: {e}"
            self.store.flag_claimed(claim, reason, now)
            reminders_flagged_total.inc()
            self.alerter.flagged(row.id, reason)
            return None
        return ClaimedReminder(
            id=row.id,
            user_id=row.user_id,
            title=row.title,
            url=row.url,
            schedule=schedule,
            next_due=to_utc_aware(row.next_due),
            claim=claim,
        )
