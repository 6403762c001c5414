"""Pydantic models for timetable data.

All data structures use Pydantic v2 for validation, serialization, and type safety.
"""

import re
from datetime import time as clock_time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

# Fixed six-day teaching week, Monday first
DAYS: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

_SLOT_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


class ClassType(str, Enum):
    LECTURE = "lecture"
    LAB = "lab"
    TUTORIAL = "tutorial"
    FREE = "free"


def parse_slot(slot: str) -> tuple[clock_time, clock_time] | None:
    """Parse an "HH:MM-HH:MM" slot into (start, end), or None if invalid."""
    match = _SLOT_RE.match(slot or "")
    if not match:
        return None
    h1, m1, h2, m2 = (int(g) for g in match.groups())
    try:
        return clock_time(h1, m1), clock_time(h2, m2)
    except ValueError:
        return None


def normalize_slot(slot: str) -> str | None:
    """Return the zero-padded "HH:MM-HH:MM" form of a slot, or None if invalid.

    Zero padding keeps lexicographic order equal to chronological order.
    """
    parsed = parse_slot(slot)
    if parsed is None:
        return None
    start, end = parsed
    return f"{start:%H:%M}-{end:%H:%M}"


class SessionContext(BaseModel):
    """Cookies and anti-forgery token captured from one portal page load.

    Built fresh for each logical operation and discarded afterwards.
    """

    model_config = ConfigDict(frozen=True)

    cookies: tuple[str, ...] = ()  # "name=value", in the order the portal sent them
    csrf_token: str = ""

    def cookie_header(self) -> str:
        return "; ".join(self.cookies)


class BatchRecord(BaseModel):
    """One academic batch row as returned by the portal's option endpoints.

    Every field is optional: the portal omits or nulls fields freely.
    """

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    degree: str = ""
    year: str = ""
    batch: str = ""
    semester: str = ""
    school_dept: str = ""
    session: str = ""
    group_name: str | None = None
    sub_batch: str | None = None
    status: str = ""

    @field_validator(
        "degree", "year", "batch", "semester", "school_dept", "session", "status",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value):
        if value is None:
            return ""
        return str(value)


class TimetableEntry(BaseModel):
    """A single class in the weekly timetable."""

    model_config = ConfigDict(frozen=True)

    day: str  # One of DAYS
    time: str  # "09:00-09:50"
    subject: str
    faculty: str
    room: str
    type: ClassType
    ltp: str | None = None  # Lecture-Tutorial-Practical code, e.g. "3-1-0"
    batch: str = ""
    semester: str = ""

    @field_validator("time")
    @classmethod
    def _valid_slot(cls, value: str) -> str:
        normalized = normalize_slot(value)
        if normalized is None:
            raise ValueError(f"invalid time slot {value!r}")
        return normalized

    @property
    def identity(self) -> tuple[str, str, str, str]:
        """Class identity, stable across fetches of the same class."""
        return (self.day, self.time, self.subject, self.room)

    @property
    def start(self) -> clock_time:
        return parse_slot(self.time)[0]

    @property
    def end(self) -> clock_time:
        return parse_slot(self.time)[1]


WeeklySchedule = dict[str, list[TimetableEntry]]

Source = Literal["live", "cached", "unavailable", "error"]


class TimetableResult(BaseModel):
    """Weekly schedule plus where it came from."""

    classes: WeeklySchedule = {}
    source: Source = "unavailable"
    degree: str | None = None
    year: str | None = None

    @property
    def has_data(self) -> bool:
        return self.source in ("live", "cached")


class Profile(BaseModel):
    """Cohort a student follows, read from the surrounding account store."""

    degree: str | None = None
    year: str | None = None
    batch: str | None = None
    full_name: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.degree and self.year and self.batch)

    @property
    def storage_key(self) -> str:
        return f"{self.degree}|{self.year}|{self.batch}"

    @property
    def first_name(self) -> str | None:
        if not self.full_name or not self.full_name.strip():
            return None
        return self.full_name.split()[0]
