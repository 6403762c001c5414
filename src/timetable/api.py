"""JSON operations exposed to the surrounding application.

Both take a decoded JSON request body and return (http_status, payload).
Upstream trouble never escapes as an exception or as raw error text: the
caller always gets a renderable payload.
"""

from typing import Any

from src.timetable.errors import MissingParameterError, UpstreamUnreachableError
from src.timetable.logging import get_logger
from src.timetable.options import OptionsResolver
from src.timetable.timetable import TimetableFetcher

logger = get_logger(__name__)

UNREACHABLE_MESSAGE = "Could not connect to timetable portal"


def _bad_request(message: str) -> tuple[int, dict[str, Any]]:
    return 400, {"success": False, "error": message}


def resolve_options(
    body: Any, resolver: OptionsResolver | None = None
) -> tuple[int, dict[str, Any]]:
    """Handle {"action": "getYears"|"getBatches", "degree": ..., "year": ...}.

    Returns:
        (200, {"success": True, "options": [...]}) on success,
        (400, {"success": False, "error": ...}) for missing/unknown input,
        (200, {"success": False, "options": [], "error": ...}) when the
        portal could not be reached.
    """
    if not isinstance(body, dict):
        return _bad_request("Invalid request body")

    action = body.get("action")
    degree = body.get("degree")
    year = body.get("year")
    if not action or not degree:
        return _bad_request("Missing action or degree")
    if action not in ("getYears", "getBatches"):
        return _bad_request("Unknown action")
    if action == "getBatches" and not year:
        return _bad_request("Missing year")

    resolver = resolver or OptionsResolver()
    logger.info("options_requested", action=action, degree=degree, year=year)
    try:
        if action == "getYears":
            options = resolver.get_years(degree)
        else:
            options = resolver.get_batches(degree, year)
    except MissingParameterError as e:
        return _bad_request(str(e))
    except UpstreamUnreachableError as e:
        logger.warning("options_upstream_unreachable", action=action, error=str(e))
        return 200, {"success": False, "options": [], "error": UNREACHABLE_MESSAGE}

    return 200, {"success": True, "options": options}


def fetch_timetable(
    body: Any, fetcher: TimetableFetcher | None = None
) -> tuple[int, dict[str, Any]]:
    """Handle {"degree": ..., "year": ..., "batch": ...}.

    Returns:
        (200, {"success": True, "classes": {...}, "source": ...}); the
        schedule is empty when source is "unavailable" or "error".
        (400, {"success": False, "error": "Missing parameters"}) otherwise.
    """
    if not isinstance(body, dict):
        return _bad_request("Invalid request body")

    degree, year, batch = body.get("degree"), body.get("year"), body.get("batch")
    if not degree or not year or not batch:
        return _bad_request("Missing parameters")

    fetcher = fetcher or TimetableFetcher()
    result = fetcher.fetch(str(degree), str(year), str(batch))

    payload: dict[str, Any] = {"success": True, **result.model_dump(mode="json")}
    for field in ("degree", "year"):
        if payload.get(field) is None:
            payload.pop(field, None)
    return 200, payload
