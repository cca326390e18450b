"""
Storage primitives used by the sweep: due-candidate scan and conditional updates
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from bangs.utils.timezone import to_utc_aware
from . import repository
from .models import Reminder


@dataclass(frozen=True)
class Claim:
    """A won claim: the row version and token the commit must match."""
    reminder_id: int
    version: int
    token: str
    claimed_at: datetime


class ReminderStore:
    """Reminder persistence for sweep workers.

    Every method opens its own session from ``session_factory`` so one store
    can be shared by worker threads and by several schedulers.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def select_due_candidates(self, now: datetime, limit: int) -> List[Reminder]:
        """Incomplete, unclaimed reminders with ``next_due <= now``, oldest first."""
        now = to_utc_aware(now)
        stmt = (
            select(Reminder)
            .where(Reminder.is_completed.is_(False))
            .where(Reminder.next_due.is_not(None))
            .where(Reminder.next_due <= now)
            .where(Reminder.claimed_at.is_(None))
            .order_by(Reminder.next_due.asc(), Reminder.id.asc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return list(db.execute(stmt).scalars())

    def conditional_update(
        self,
        reminder_id: int,
        expected_version: int,
        fields: Dict[str, Any],
        conditions: Iterable = (),
    ) -> bool:
        """Compare-and-swap on ``version``.

        Returns True when exactly this caller moved the row from
        ``expected_version`` to ``expected_version + 1``; False on conflict.
        """
        values = dict(fields)
        values["version"] = expected_version + 1
        stmt = (
            update(Reminder)
            .where(Reminder.id == reminder_id)
            .where(Reminder.version == expected_version)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db:
            with db.begin():
                result = db.execute(stmt)
            return result.rowcount == 1

    def claim(self, candidate: Reminder, now: datetime) -> Optional[Claim]:
        now = to_utc_aware(now)
        token = uuid.uuid4().hex
        won = self.conditional_update(
            candidate.id,
            candidate.version,
            {"claimed_at": now, "claim_token": token, "last_error": None, "updated_at": now},
            conditions=(
                Reminder.claimed_at.is_(None),
                Reminder.is_completed.is_(False),
                Reminder.next_due <= now,
            ),
        )
        if not won:
            return None
        return Claim(reminder_id=candidate.id, version=candidate.version + 1, token=token, claimed_at=now)

    def commit_transition(
        self,
        claim: Claim,
        next_due: Optional[datetime],
        is_completed: bool,
        fired_at: datetime,
        error: Optional[str] = None,
    ) -> bool:
        """Store the post-firing state and release the claim in one conditional update."""
        return self.conditional_update(
            claim.reminder_id,
            claim.version,
            {
                "next_due": to_utc_aware(next_due),
                "is_completed": is_completed,
                "claimed_at": None,
                "claim_token": None,
                "last_fired_at": to_utc_aware(fired_at),
                "fire_count": Reminder.fire_count + 1,
                "last_error": error,
                "updated_at": to_utc_aware(fired_at),
            },
            conditions=(Reminder.claim_token == claim.token,),
        )

    def flag_claimed(self, claim: Claim, reason: str, now: datetime) -> bool:
        """Record why a claimed row cannot be processed; the claim is kept."""
        return self.conditional_update(
            claim.reminder_id,
            claim.version,
            {"last_error": reason[:1000], "updated_at": to_utc_aware(now)},
            conditions=(Reminder.claim_token == claim.token,),
        )

    def find_stuck(self, claimed_before: datetime, limit: int = 100) -> List[Reminder]:
        with self._session_factory() as db:
            return repository.list_stuck(db, claimed_before, limit=limit)

    def release_claim(self, reminder_id: int) -> bool:
        with self._session_factory() as db:
            return repository.release_claim(db, reminder_id)
