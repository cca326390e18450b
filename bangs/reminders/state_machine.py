"""
Reminder lifecycle: Pending -> Due (claimed) -> Fired-Once | Fired-Recurring -> Pending
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .alerts import Alerter, LogAlerter
from .claimer import ClaimedReminder
from .dispatcher import Dispatcher
from .metrics import reminders_fired_total, reminders_commit_conflicts_total
from .recurrence import Frequency, Recurring, RecurrenceCalculator
from .schemas import DispatchPayload
from .store import ReminderStore

logger = logging.getLogger(__name__)


class ReminderState(str, Enum):
    PENDING = "pending"
    DUE = "due"
    FIRED_ONCE = "fired_once"
    FIRED_RECURRING = "fired_recurring"


class Outcome(str, Enum):
    FIRED = "fired"
    DISPATCH_FAILED = "dispatch_failed"  # transition still committed
    CONFLICT = "conflict"                # row changed while claimed; nothing written
    STUCK = "stuck"                      # claim durable, transition not committed


@dataclass(frozen=True)
class Transition:
    state: ReminderState
    next_due: Optional[datetime]
    is_completed: bool

    @property
    def resulting_state(self) -> ReminderState:
        """State the row rests in once the transition is committed."""
        return ReminderState.PENDING if self.state == ReminderState.FIRED_RECURRING else self.state


class ReminderStateMachine:
    def __init__(self, store: ReminderStore, dispatcher: Dispatcher, alerter: Optional[Alerter] = None):
        self.store = store
        self.dispatcher = dispatcher
        self.alerter = alerter or LogAlerter()

    @staticmethod
    def advance(claimed: ClaimedReminder) -> Tuple[DispatchPayload, Transition]:
        """Pure transition for a claimed occurrence.

        Recurring reminders are rescheduled from the occurrence's own due time,
        so a late sweep does not shift the cadence.
        """
        schedule = claimed.schedule
        frequency: Optional[Frequency] = schedule.frequency if isinstance(schedule, Recurring) else None
        payload = DispatchPayload(
            reminder_id=claimed.id,
            user_id=claimed.user_id,
            title=claimed.title,
            url=claimed.url,
            reminder_type=schedule.kind,
            frequency=frequency,
            due_at=claimed.next_due,
        )
        if frequency is None:
            return payload, Transition(state=ReminderState.FIRED_ONCE, next_due=None, is_completed=True)

        next_due = RecurrenceCalculator.next_for(schedule, claimed.next_due)
        return payload, Transition(state=ReminderState.FIRED_RECURRING, next_due=next_due, is_completed=False)

    def process(self, claimed: ClaimedReminder, now: datetime) -> Outcome:
        """Deliver, then commit the transition regardless of delivery outcome."""
        payload, transition = self.advance(claimed)

        result = self.dispatcher.deliver(payload)
        error = None
        if not result.ok:
            error = result.error or "dispatch failed"
            self.alerter.dispatch_failed(claimed.id, error)

        try:
            committed = self.store.commit_transition(
                claimed.claim,
                next_due=transition.next_due,
                is_completed=transition.is_completed,
                fired_at=now,
                error=error,
            )
        except SQLAlchemyError:
            logger.exception(
                f"❌ [StateMachine] Commit failed for reminder={claimed.id}; claim left in place"
            )
            return Outcome.STUCK

        if not committed:
            reminders_commit_conflicts_total.inc()
            logger.warning(
                f"⚠️  [StateMachine] reminder={claimed.id} changed while claimed; transition dropped"
            )
            return Outcome.CONFLICT

        reminders_fired_total.labels(kind=claimed.schedule.kind.value).inc()
        logger.info(
            f"✅ [StateMachine] reminder={claimed.id} {transition.state.value} "
            f"due={claimed.next_due.isoformat()} next={transition.next_due.isoformat() if transition.next_due else None}"
        )
        return Outcome.FIRED if result.ok else Outcome.DISPATCH_FAILED
