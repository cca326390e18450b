from datetime import timedelta
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from bangs.db.session import get_db
from bangs.utils.timezone import utcnow
from .config import settings
from .repository import get_reminder, list_flagged, list_stuck, release_claim
from .schemas import ReminderRead, ReminderReleased


router = APIRouter()


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "reminders"}


@router.get("/stuck", response_model=List[ReminderRead])
def list_stuck_endpoint(limit: int = 100, db: Session = Depends(get_db)):
    """Claimed reminders whose transition never committed."""
    cutoff = utcnow() - timedelta(seconds=settings.STUCK_AFTER_SECONDS)
    return [ReminderRead.model_validate(r) for r in list_stuck(db, cutoff, limit=limit)]


@router.get("/flagged", response_model=List[ReminderRead])
def list_flagged_endpoint(limit: int = 100, db: Session = Depends(get_db)):
    """Claimed reminders the sweep refused to process (e.g. bad frequency)."""
    return [ReminderRead.model_validate(r) for r in list_flagged(db, limit=limit)]


@router.post("/{reminder_id}/release", response_model=ReminderReleased)
def release_reminder_endpoint(reminder_id: int, db: Session = Depends(get_db)):
    if not get_reminder(db, reminder_id):
        raise HTTPException(status_code=404, detail="Reminder not found")
    if not release_claim(db, reminder_id):
        raise HTTPException(status_code=409, detail="Reminder is not claimed")
    return ReminderReleased(id=reminder_id)
