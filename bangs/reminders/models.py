"""
Reminder table - one row per reminder, one-time and recurring alike
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from bangs.db.base import Base


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    url = Column(Text, nullable=True)
    reminder_type = Column(String, nullable=False, default="once")  # once | recurring
    frequency = Column(String, nullable=True)  # daily | weekly | biweekly | monthly
    next_due = Column(DateTime(timezone=True), nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)

    # Claim bookkeeping (written only through conditional updates)
    version = Column(Integer, nullable=False, default=0)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    claim_token = Column(String(32), nullable=True)
    last_fired_at = Column(DateTime(timezone=True), nullable=True)
    fire_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="reminders")

    __table_args__ = (
        Index("ix_reminders_user_next_due", "user_id", "next_due"),
        Index("reminders_next_due_idx", "next_due"),
        Index("ix_reminders_completed_next_due", "is_completed", "next_due"),
        Index("ix_reminders_claimed_at", "claimed_at"),
        CheckConstraint("reminder_type IN ('once', 'recurring')", name="ck_reminders_reminder_type"),
        CheckConstraint(
            "frequency IS NULL OR frequency IN ('daily', 'weekly', 'biweekly', 'monthly')",
            name="ck_reminders_frequency",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Reminder id={self.id} type={self.reminder_type} freq={self.frequency} "
            f"next_due={self.next_due} completed={self.is_completed} v{self.version}>"
        )
