"""Locate the record array inside the portal's inconsistently shaped JSON.

The option endpoints return the same rows wrapped in different ways:

    {"yearList": [...]}           keyed object (also batchList/data/list)
    [[{...}, {...}]]              doubly nested array
    [{...}, {...}]                flat array
    {"whatever": [{...}, ...]}    object with an unknown key

Each shape has a matcher returning the list it found or None. Matchers are
tried in order and the first hit wins. This is a structural sniff, not schema
validation: an empty result means "no data", never an error.
"""

from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from src.timetable.logging import get_logger
from src.timetable.models import BatchRecord

logger = get_logger(__name__)

RECORD_KEYS: tuple[str, ...] = ("yearList", "batchList", "data", "list")


def match_keyed_object(value: Any) -> list | None:
    if not isinstance(value, dict):
        return None
    for key in RECORD_KEYS:
        items = value.get(key)
        if isinstance(items, list) and items:
            return items
    return None


def match_nested_array(value: Any) -> list | None:
    if isinstance(value, list) and value and isinstance(value[0], list):
        return value[0]
    return None


def match_flat_array(value: Any) -> list | None:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value
    return None


def match_scan_values(value: Any) -> list | None:
    if not isinstance(value, dict):
        return None
    for item in value.values():
        if isinstance(item, list) and item and isinstance(item[0], dict):
            return item
    return None


SHAPE_MATCHERS: tuple[tuple[str, Callable[[Any], list | None]], ...] = (
    ("keyed_object", match_keyed_object),
    ("nested_array", match_nested_array),
    ("flat_array", match_flat_array),
    ("scan_values", match_scan_values),
)


def extract(value: Any) -> list:
    """Return the record array found in value, or [] if no shape matches."""
    for name, matcher in SHAPE_MATCHERS:
        items = matcher(value)
        if items is not None:
            logger.debug("records_shape_matched", shape=name, count=len(items))
            return items
    logger.debug("records_shape_unmatched", kind=type(value).__name__)
    return []


def to_records(items: list) -> list[BatchRecord]:
    """Validate dict items into BatchRecords, skipping anything else."""
    records: list[BatchRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            records.append(BatchRecord.model_validate(item))
        except ValidationError as e:
            logger.debug("record_invalid", error=str(e))
    return records


def extract_records(value: Any) -> list[BatchRecord]:
    return to_records(extract(value))
