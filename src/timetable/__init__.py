"""Timetable ingestion and class reminders for the university timetable portal.

Scrapes the portal's undocumented endpoints (session + CSRF, option lookups,
weekly search) and turns the resulting schedule into local class reminders.
"""

from src.timetable.models import Profile, TimetableEntry, TimetableResult
from src.timetable.options import OptionsResolver
from src.timetable.scheduler import ReminderScheduler, schedule_reminders
from src.timetable.timetable import TimetableFetcher, infer_type

__all__ = [
    "OptionsResolver",
    "Profile",
    "ReminderScheduler",
    "TimetableEntry",
    "TimetableFetcher",
    "TimetableResult",
    "infer_type",
    "schedule_reminders",
]
