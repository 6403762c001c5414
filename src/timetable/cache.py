"""Best-effort client-side cache of the last live timetable."""

from pydantic import ValidationError

from src.timetable.logging import get_logger
from src.timetable.models import Profile, TimetableResult
from src.timetable.scheduler import TimetableSource
from src.timetable.store import ReminderStore

logger = get_logger(__name__)


class CachingTimetableSource:
    """Wraps a fetcher; serves the last live result when the portal is down.

    Served copies carry source="cached".
    """

    def __init__(self, fetcher: TimetableSource, store: ReminderStore) -> None:
        self.fetcher = fetcher
        self.store = store

    def fetch(self, degree: str, year: str, batch: str) -> TimetableResult:
        key = Profile(degree=degree, year=year, batch=batch).storage_key
        result = self.fetcher.fetch(degree, year, batch)

        if result.source == "live":
            self.store.save_cached(key, result.model_dump(mode="json"))
            return result

        cached = self.store.load_cached(key)
        if not cached:
            return result
        try:
            stale = TimetableResult.model_validate(cached)
        except ValidationError:
            logger.warning("timetable_cache_invalid", profile=key)
            return result

        logger.info("timetable_served_from_cache", profile=key, live_source=result.source)
        return stale.model_copy(update={"source": "cached"})
