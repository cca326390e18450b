class ReminderError(Exception):
    """Base class for reminder subsystem errors."""


class InvalidFrequencyError(ReminderError, ValueError):
    """A recurring reminder carries a frequency the calculator does not know."""

    def __init__(self, frequency):
        self.frequency = frequency
        super().__init__(f"Unrecognized reminder frequency: {frequency!r}")


class InvalidScheduleError(ReminderError, ValueError):
    """Reminder fields do not describe a valid once/recurring schedule."""

