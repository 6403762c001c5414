"""TimetableFetcher - weekly class schedule for one degree/year/batch.

Posts the batch report search form and flattens the nested response:

    {"success": true,
     "data": {"Monday": {"09:00-09:50": [{"subject": ..., "facultyName": ...,
                                          "room_name": ..., "ltp": "3-1-0"}]}}}

into a day -> [TimetableEntry] mapping sorted by time. The portal doesn't say
whether a class is a lab or a tutorial; infer_type() guesses from the subject
name and the LTP (lecture-tutorial-practical hours) code.

fetch() never raises. Callers always get something renderable, with a source
tag saying whether it is real.
"""

import re
from typing import Any

from pydantic import ValidationError

from src.timetable.errors import ShapeMismatchError, TimetableError
from src.timetable.logging import get_logger
from src.timetable.models import (
    DAYS,
    ClassType,
    TimetableEntry,
    TimetableResult,
    WeeklySchedule,
)
from src.timetable.portal import PortalClient

logger = get_logger(__name__)

_PRACTICAL_LTP_RE = re.compile(r"\d+-\d+-[1-9]")
_TUTORIAL_LTP_RE = re.compile(r"\d+-[1-9]+-\d+")


def infer_type(ltp: str | None, subject: str | None) -> ClassType:
    """Classify a class from its LTP code and subject name.

    Checked in priority order: "lab" in the subject, practical hours in the
    LTP code, "tutorial" in the subject, tutorial hours in the LTP code.
    Anything else is a lecture.
    """
    ltp_lower = str(ltp or "").lower()
    subject_lower = str(subject or "").lower()

    if "lab" in subject_lower:
        return ClassType.LAB
    if "0-0-" in ltp_lower or _PRACTICAL_LTP_RE.search(ltp_lower):
        return ClassType.LAB
    if "tutorial" in subject_lower:
        return ClassType.TUTORIAL
    if _TUTORIAL_LTP_RE.search(ltp_lower):
        return ClassType.TUTORIAL
    return ClassType.LECTURE


def _text(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value)


def parse_schedule(payload: Any, batch: str) -> WeeklySchedule:
    """Flatten the search response into a WeeklySchedule.

    Raises:
        ShapeMismatchError: If payload is not {"success": true, "data": {...}}.
    """
    if not isinstance(payload, dict) or not payload.get("success"):
        raise ShapeMismatchError("search response is not a success envelope")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ShapeMismatchError("search response has no day mapping")

    classes: WeeklySchedule = {}
    for day, slots in data.items():
        if day not in DAYS:
            logger.debug("timetable_day_skipped", day=day)
            continue
        entries: list[TimetableEntry] = []
        if isinstance(slots, dict):
            for slot, schedules in slots.items():
                if not isinstance(schedules, list):
                    continue
                for item in schedules:
                    if not isinstance(item, dict):
                        continue
                    raw_ltp = item.get("ltp")
                    ltp = str(raw_ltp) if raw_ltp not in (None, "") else None
                    subject = _text(item.get("subject"), "Unknown")
                    try:
                        entries.append(
                            TimetableEntry(
                                day=day,
                                time=slot,
                                subject=subject,
                                faculty=_text(item.get("facultyName"), "TBA"),
                                room=_text(item.get("room_name"), "TBA"),
                                type=infer_type(ltp, subject),
                                ltp=ltp,
                                batch=_text(item.get("batch"), batch),
                                semester=_text(item.get("semester"), ""),
                            )
                        )
                    except ValidationError:
                        logger.warning("timetable_slot_invalid", day=day, slot=slot)
        entries.sort(key=lambda e: e.time)
        classes[day] = entries
    return classes


class TimetableFetcher:
    """Fetches the live weekly timetable from the portal's search endpoint."""

    def __init__(self, client: PortalClient | None = None) -> None:
        self.client = client or PortalClient()
        self.config = self.client.config

    def fetch(self, degree: str, year: str, batch: str) -> TimetableResult:
        """Fetch and flatten the timetable for a cohort.

        Returns:
            TimetableResult with source "live" on success, an empty schedule
            with source "unavailable" when the portal failed or answered with
            something unusable, or "error" on an unexpected exception.
        """
        try:
            return self._fetch_live(degree, year, batch)
        except TimetableError as e:
            logger.warning(
                "timetable_unavailable",
                degree=degree,
                year=year,
                batch=batch,
                error=str(e),
                kind=type(e).__name__,
            )
            return TimetableResult(classes={}, source="unavailable")
        except Exception:
            logger.exception("timetable_fetch_error", degree=degree, year=year, batch=batch)
            return TimetableResult(classes={}, source="error")

    def _fetch_live(self, degree: str, year: str, batch: str) -> TimetableResult:
        session = self.client.acquire()
        form = {
            "_token": session.csrf_token,
            "degree": degree,
            "year": year,
            "batch": batch,
        }
        payload = self.client.post_form(self.config.search_path, session, form)
        classes = parse_schedule(payload, batch)

        logger.info(
            "timetable_fetched",
            degree=degree,
            year=year,
            batch=batch,
            days=len(classes),
            entries=sum(len(entries) for entries in classes.values()),
        )
        return TimetableResult(
            classes=classes,
            source="live",
            degree=_optional_text(payload.get("degree")),
            year=_optional_text(payload.get("year")),
        )


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)
