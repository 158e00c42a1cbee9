from .scheduler import (
    REMINDER_OFFSETS,
    build_meeting_reminders,
    cascade_dismiss,
    schedule_meeting_reminders,
)

__all__ = [
    "REMINDER_OFFSETS",
    "build_meeting_reminders",
    "cascade_dismiss",
    "schedule_meeting_reminders",
]
