from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, update

from bangs.utils.timezone import to_utc_aware, utcnow
from .models import Reminder
from .recurrence import parse_schedule, Recurring
from .schemas import ReminderCreate, ReminderUpdate


def create_reminder(db: Session, data: ReminderCreate) -> Reminder:
    reminder = Reminder(
        user_id=data.user_id,
        title=data.title,
        url=data.url,
        reminder_type=data.reminder_type.value,
        frequency=data.frequency.value if data.frequency else None,
        # Normalize to UTC-aware for storage in timestamptz column
        next_due=to_utc_aware(data.next_due),
        is_completed=False,
        version=0,
        fire_count=0,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def get_reminder(db: Session, reminder_id: int) -> Optional[Reminder]:
    return db.get(Reminder, reminder_id)


def list_reminders(
    db: Session,
    user_id: Optional[int] = None,
    include_completed: bool = True,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
) -> List[Reminder]:
    stmt = select(Reminder).order_by(Reminder.next_due.asc()).limit(limit)
    if user_id is not None:
        stmt = stmt.where(Reminder.user_id == user_id)
    if not include_completed:
        stmt = stmt.where(Reminder.is_completed.is_(False))
    if start:
        stmt = stmt.where(Reminder.next_due >= to_utc_aware(start))
    if end:
        stmt = stmt.where(Reminder.next_due <= to_utc_aware(end))
    return list(db.execute(stmt).scalars())


def update_reminder(db: Session, reminder_id: int, data: ReminderUpdate) -> Optional[Reminder]:
    """Apply a user edit.

    The edit bumps ``version`` and drops any claim, so a sweep that claimed the
    old occurrence loses its commit and the edited schedule wins. Setting
    ``next_due`` re-arms a completed reminder.
    """
    reminder = db.get(Reminder, reminder_id, populate_existing=True)
    if not reminder:
        return None

    changes = data.model_dump(exclude_unset=True)
    reminder_type = changes.get("reminder_type", reminder.reminder_type)
    frequency = changes.get("frequency", reminder.frequency)
    # Raises InvalidScheduleError / InvalidFrequencyError on an inconsistent edit
    schedule = parse_schedule(getattr(reminder_type, "value", reminder_type), getattr(frequency, "value", frequency))

    if "title" in changes:
        reminder.title = changes["title"]
    if "url" in changes:
        reminder.url = changes["url"]
    reminder.reminder_type = schedule.kind.value
    reminder.frequency = schedule.frequency.value if isinstance(schedule, Recurring) else None
    if changes.get("next_due") is not None:
        reminder.next_due = to_utc_aware(changes["next_due"])
        reminder.is_completed = False

    reminder.claimed_at = None
    reminder.claim_token = None
    reminder.last_error = None
    reminder.version = reminder.version + 1
    reminder.updated_at = utcnow()

    db.commit()
    db.refresh(reminder)
    return reminder


def cancel_reminder(db: Session, reminder_id: int) -> bool:
    """Complete a reminder on the user's behalf; it will not fire again."""
    result = db.execute(
        update(Reminder)
        .where(Reminder.id == reminder_id)
        .values(
            is_completed=True,
            claimed_at=None,
            claim_token=None,
            version=Reminder.version + 1,
            updated_at=utcnow(),
        )
    )
    db.commit()
    return result.rowcount == 1


def list_stuck(db: Session, claimed_before: datetime, limit: int = 100) -> List[Reminder]:
    """Reminders whose claim was committed but never resolved.

    Flagged rows (claimed with ``last_error`` set) are listed by ``list_flagged``
    instead; a claim clears ``last_error``, so the two sets never overlap.
    """
    stmt = (
        select(Reminder)
        .where(Reminder.claimed_at.is_not(None))
        .where(Reminder.last_error.is_(None))
        .where(Reminder.claimed_at <= to_utc_aware(claimed_before))
        .order_by(Reminder.claimed_at.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def list_flagged(db: Session, limit: int = 100) -> List[Reminder]:
    stmt = (
        select(Reminder)
        .where(Reminder.claimed_at.is_not(None))
        .where(Reminder.last_error.is_not(None))
        .order_by(Reminder.claimed_at.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def release_claim(db: Session, reminder_id: int) -> bool:
    """Operator remediation: drop a stuck claim so the next sweep sees the row as due again."""
    result = db.execute(
        update(Reminder)
        .where(Reminder.id == reminder_id)
        .where(Reminder.claimed_at.is_not(None))
        .values(
            claimed_at=None,
            claim_token=None,
            last_error=None,
            version=Reminder.version + 1,
            updated_at=utcnow(),
        )
    )
    db.commit()
    return result.rowcount == 1
