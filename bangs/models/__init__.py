from bangs.models.user import User
from bangs.reminders.models import Reminder

__all__ = ["User", "Reminder"]
