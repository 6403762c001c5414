"""Look up years, batches, or a weekly timetable from the portal.

Run with: python scripts/fetch_timetable.py --degree BTECH-CSE --years
Batches:  python scripts/fetch_timetable.py --degree BTECH-CSE --year Second --batches
Weekly:   python scripts/fetch_timetable.py --degree BTECH-CSE --year Second --batch A1
Table:    python scripts/fetch_timetable.py --degree BTECH-CSE --year Second --batch A1 --table
Cached:   python scripts/fetch_timetable.py ... --cache  (fall back to the last live copy)

Exit codes:
  0 = success (JSON or table on stdout)
  1 = error (message on stderr)
"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.cache import CachingTimetableSource  # noqa: E402
from src.timetable.config import get_config  # noqa: E402
from src.timetable.errors import (  # noqa: E402
    MissingParameterError,
    UpstreamUnreachableError,
)
from src.timetable.logging import get_logger, setup_logging  # noqa: E402
from src.timetable.models import DAYS, TimetableResult  # noqa: E402
from src.timetable.options import OptionsResolver  # noqa: E402
from src.timetable.portal import PortalClient  # noqa: E402
from src.timetable.store import ReminderStore  # noqa: E402
from src.timetable.timetable import TimetableFetcher  # noqa: E402

logger = get_logger("fetch_timetable")


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Fetch options or a weekly timetable from the portal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--degree", required=True, help="Degree code, e.g. BTECH-CSE.")
    parser.add_argument("--year", help="Year label, e.g. Second.")
    parser.add_argument("--batch", help="Batch label, e.g. A1.")

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--years",
        action="store_true",
        help="List the years available for the degree.",
    )
    mode_group.add_argument(
        "--batches",
        action="store_true",
        help="List the batches available for the degree and year.",
    )

    parser.add_argument(
        "--table",
        action="store_true",
        help="Print the timetable as a human-readable table instead of JSON.",
    )
    parser.add_argument(
        "--cache",
        action="store_true",
        help="Serve the last live timetable when the portal is unavailable.",
    )
    return parser.parse_args()


def _format_table(result: TimetableResult) -> str:
    """Format a weekly timetable as a human-readable table.

    Columns: Day | Time | Subject | Type | Faculty | Room
    """
    if not any(result.classes.values()):
        return f"(no classes - source: {result.source})"

    headers = ["Day", "Time", "Subject", "Type", "Faculty", "Room"]
    rows = []
    for day in DAYS:
        for entry in result.classes.get(day, []):
            rows.append(
                [day, entry.time, entry.subject, entry.type.value, entry.faculty, entry.room]
            )

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [
        " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows
    ]
    return "\n".join([header_line, separator, *row_lines, f"(source: {result.source})"])


def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    client = PortalClient(config)

    if args.years or args.batches:
        resolver = OptionsResolver(client)
        try:
            if args.years:
                options = resolver.get_years(args.degree)
            else:
                options = resolver.get_batches(args.degree, args.year)
        except MissingParameterError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        except UpstreamUnreachableError:
            print("ERROR: could not connect to timetable portal", file=sys.stderr)
            return 1
        print(json.dumps(options, indent=2))
        return 0

    if not args.year or not args.batch:
        print("ERROR: --year and --batch are required for a timetable", file=sys.stderr)
        return 1

    fetcher = TimetableFetcher(client)
    if args.cache:
        store = ReminderStore(config.state_dir, config.notified_retention_days)
        fetcher = CachingTimetableSource(fetcher, store)
    result = fetcher.fetch(args.degree, args.year, args.batch)
    logger.info("timetable_source", source=result.source)

    if args.table:
        print(_format_table(result))
    else:
        print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(main(args))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
