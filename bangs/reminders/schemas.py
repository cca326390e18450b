"""
Schemas for reminder writes, operator reads and dispatch payloads
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .recurrence import Frequency, ReminderKind


class ReminderCreate(BaseModel):
    """Schema for creating a reminder"""
    user_id: int
    title: str = Field(..., min_length=1)
    url: Optional[str] = None
    reminder_type: ReminderKind = ReminderKind.ONCE
    frequency: Optional[Frequency] = None
    next_due: datetime

    @model_validator(mode="after")
    def _check_schedule(self) -> "ReminderCreate":
        if self.reminder_type == ReminderKind.RECURRING and self.frequency is None:
            raise ValueError("frequency is required for recurring reminders")
        if self.reminder_type == ReminderKind.ONCE:
            self.frequency = None
        return self


class ReminderUpdate(BaseModel):
    """Schema for editing a reminder; unset fields are left alone"""
    title: Optional[str] = Field(default=None, min_length=1)
    url: Optional[str] = None
    reminder_type: Optional[ReminderKind] = None
    frequency: Optional[Frequency] = None
    next_due: Optional[datetime] = None


class ReminderRead(BaseModel):
    """Schema for reading a reminder row"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    url: Optional[str] = None
    reminder_type: str
    frequency: Optional[str] = None
    next_due: Optional[datetime] = None
    is_completed: bool
    version: int
    claimed_at: Optional[datetime] = None
    last_fired_at: Optional[datetime] = None
    fire_count: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ReminderReleased(BaseModel):
    id: int
    released: bool = True


class DispatchPayload(BaseModel):
    """What the dispatcher delivers for one due occurrence"""
    reminder_id: int
    user_id: int
    title: str
    url: Optional[str] = None
    reminder_type: ReminderKind
    frequency: Optional[Frequency] = None
    due_at: datetime


class SchedulerStatus(BaseModel):
    is_running: bool
    interval_seconds: float
    last_run_at: Optional[datetime] = None
