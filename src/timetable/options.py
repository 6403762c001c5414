"""Resolve the year and batch choices available for a degree.

The portal exposes several half-working endpoints for the same data. Each
lookup tries them one after another, in the order they have proven reliable,
and stops at the first non-empty answer. Requests are never sent in parallel:
the portal is slow and rate-sensitive.
"""

from typing import Any

from src.timetable.errors import MissingParameterError
from src.timetable.logging import get_logger
from src.timetable.models import SessionContext
from src.timetable.portal import PortalClient
from src.timetable.records import extract, extract_records, to_records

logger = get_logger(__name__)

YEAR_RANK: dict[str, int] = {
    "First": 1,
    "Second": 2,
    "Third": 3,
    "Fourth": 4,
    "Fifth": 5,
}
UNRANKED = 99


def order_years(labels: list[str]) -> list[str]:
    """De-duplicate year labels and order them First..Fifth.

    Unknown labels go last, keeping their relative order (sorted() is stable).
    """
    unique = list(dict.fromkeys(label for label in labels if label))
    return sorted(unique, key=lambda label: YEAR_RANK.get(label, UNRANKED))


def batch_labels(payload: Any) -> list[str]:
    """Batch names from a response that is either strings or records."""
    items = extract(payload)
    if not items and isinstance(payload, list):
        # Bare ["A1", "A2"] matches no record shape
        items = payload
    if not items:
        return []
    if isinstance(items[0], str):
        return [item for item in items if isinstance(item, str) and item]
    return list(dict.fromkeys(r.batch for r in to_records(items) if r.batch))


class OptionsResolver:
    """Years for a degree, and batches for a degree+year."""

    def __init__(self, client: PortalClient | None = None) -> None:
        self.client = client or PortalClient()
        self.config = self.client.config

    def get_years(self, degree: str | None) -> list[str]:
        """Return the year labels offered for a degree, First..Fifth first.

        Raises:
            MissingParameterError: If degree is empty.
            UpstreamUnreachableError: If no session could be acquired.
        """
        if not degree:
            raise MissingParameterError("degree")

        session = self.client.acquire()
        labels = self._years_from_get(session, degree)
        if not labels:
            labels = self._years_from_post(session, degree)

        years = order_years(labels)
        logger.info("years_resolved", degree=degree, count=len(years))
        return years

    def get_batches(self, degree: str | None, year: str | None) -> list[str]:
        """Return the sorted batch labels for a degree and year.

        Raises:
            MissingParameterError: If degree or year is empty (checked before
                any request is made).
            UpstreamUnreachableError: If no session could be acquired.
        """
        if not degree:
            raise MissingParameterError("degree")
        if not year:
            raise MissingParameterError("year")

        session = self.client.acquire()
        strategies = (
            ("post", self._batches_from_post),
            ("get", self._batches_from_get),
            ("year_filter", self._batches_from_year_list),
        )
        batches: list[str] = []
        for name, strategy in strategies:
            batches = strategy(session, degree, year)
            if batches:
                logger.info("batches_resolved", strategy=name, count=len(batches))
                break
        else:
            logger.info("batches_empty", degree=degree, year=year)

        return sorted(set(batches))

    def _years_from_get(self, session: SessionContext, degree: str) -> list[str]:
        payload = self.client.try_get_json(
            self.config.years_path, session, {"degree": degree}
        )
        records = extract_records(payload)
        logger.debug("years_get", records=len(records))
        return [r.year for r in records]

    def _years_from_post(self, session: SessionContext, degree: str) -> list[str]:
        form = {"_token": session.csrf_token, "degree": degree}
        for path in self.config.years_post_paths:
            records = extract_records(self.client.try_post_form(path, session, form))
            logger.debug("years_post", path=path, records=len(records))
            if records:
                return [r.year for r in records]
        return []

    def _batches_from_post(
        self, session: SessionContext, degree: str, year: str
    ) -> list[str]:
        form = {"_token": session.csrf_token, "degree": degree, "year": year}
        for path in self.config.batches_post_paths:
            labels = batch_labels(self.client.try_post_form(path, session, form))
            logger.debug("batches_post", path=path, count=len(labels))
            if labels:
                return labels
        return []

    def _batches_from_get(
        self, session: SessionContext, degree: str, year: str
    ) -> list[str]:
        payload = self.client.try_get_json(
            self.config.batches_path, session, {"degree": degree, "year": year}
        )
        return batch_labels(payload)

    def _batches_from_year_list(
        self, session: SessionContext, degree: str, year: str
    ) -> list[str]:
        # The unfiltered year list carries every batch row for the degree
        payload = self.client.try_get_json(
            self.config.years_path, session, {"degree": degree}
        )
        wanted = str(year)
        return [r.batch for r in extract_records(payload) if r.year == wanted and r.batch]
