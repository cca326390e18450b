"""Reminder sweep service (claimer, state machine, scheduler, dispatcher).

Runs beside the web application. Reminders are created and edited by the
application's CRUD layer; this package finds due reminders, claims each
occurrence exactly once across any number of sweep workers, hands a payload to
the dispatcher and moves the reminder to its next state.
"""

# Register every mapped class (Reminder.user needs User) before the first query,
# whichever entry point loads this package.
import bangs.models  # noqa: F401,E402
