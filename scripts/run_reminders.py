"""Run class reminders for one cohort until interrupted.

Run with: python scripts/run_reminders.py --degree BTECH-CSE --year Second --batch A1
Named:    python scripts/run_reminders.py ... --name "Asha Rao"
Console:  python scripts/run_reminders.py ... --console   (print instead of log)
Reset:    python scripts/run_reminders.py ... --clear-notified
Disable:  python scripts/run_reminders.py ... --disable   (persisted, then exit)
Enable:   python scripts/run_reminders.py ... --enable    (persisted, then run)
Push:     python scripts/run_reminders.py ... --subscribe subscription.json
VAPID:    python scripts/run_reminders.py ... --vapid-key  (print key, exit)

Reminders fire --lead-minutes before each class (default from
TIMETABLE_REMINDER_LEAD_MINUTES, 10). State is kept under
TIMETABLE_STATE_DIR so a restart doesn't repeat reminders, and a cohort
disabled with --disable stays idle until --enable is given.

Exit codes:
  0 = stopped normally (or nothing to run)
  1 = error (message on stderr)
"""

import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.cache import CachingTimetableSource  # noqa: E402
from src.timetable.config import get_config  # noqa: E402
from src.timetable.logging import get_logger, setup_logging  # noqa: E402
from src.timetable.models import Profile  # noqa: E402
from src.timetable.notifier import ConsoleNotifier, LogNotifier  # noqa: E402
from src.timetable.push import get_vapid_public_key, load_subscription, subscribe  # noqa: E402
from src.timetable.scheduler import resolve_enabled, schedule_reminders  # noqa: E402
from src.timetable.store import ReminderStore  # noqa: E402
from src.timetable.timetable import TimetableFetcher  # noqa: E402

logger = get_logger("run_reminders")


def _parse_args() -> argparse.Namespace:
    config = get_config()
    parser = argparse.ArgumentParser(
        description="Run class reminders for a cohort.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--degree", required=True, help="Degree code, e.g. BTECH-CSE.")
    parser.add_argument("--year", required=True, help="Year label, e.g. Second.")
    parser.add_argument("--batch", required=True, help="Batch label, e.g. A1.")
    parser.add_argument("--name", default=None, help="Student's full name for greetings.")
    parser.add_argument(
        "--lead-minutes",
        type=int,
        default=config.reminder_lead_minutes,
        help=f"Minutes before class to remind (default: {config.reminder_lead_minutes}).",
    )
    parser.add_argument("--console", action="store_true", help="Print notifications.")
    parser.add_argument(
        "--clear-notified",
        action="store_true",
        help="Forget which classes were already reminded about, then run.",
    )

    flag_group = parser.add_mutually_exclusive_group()
    flag_group.add_argument(
        "--enable",
        action="store_true",
        help="Persist reminders as enabled for this cohort, then run.",
    )
    flag_group.add_argument(
        "--disable",
        action="store_true",
        help="Persist reminders as disabled for this cohort and exit.",
    )

    parser.add_argument(
        "--subscribe",
        metavar="FILE",
        help="Register a browser PushSubscription (JSON file) with the push server.",
    )
    parser.add_argument(
        "--vapid-key",
        action="store_true",
        help="Print the push server's VAPID public key and exit.",
    )
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    if args.vapid_key:
        print(get_vapid_public_key(config.push_server_url))
        return 0

    profile = Profile(
        degree=args.degree, year=args.year, batch=args.batch, full_name=args.name
    )
    store = ReminderStore(config.state_dir, config.notified_retention_days)

    requested = None
    if args.enable:
        requested = True
    elif args.disable:
        requested = False
    enabled = resolve_enabled(store, profile, requested)
    if args.disable:
        logger.info("reminders_disabled", profile=profile.storage_key)
        return 0
    if not enabled:
        print(
            f"run_reminders: reminders are disabled for {profile.storage_key} "
            "(use --enable)",
            file=sys.stderr,
        )
        return 0

    if args.subscribe:
        subscribe(config.push_server_url, load_subscription(args.subscribe), profile)
    if args.clear_notified:
        store.clear_notified(profile.storage_key)

    source = CachingTimetableSource(TimetableFetcher(), store)
    notifier = ConsoleNotifier() if args.console else LogNotifier()

    scheduler = schedule_reminders(
        profile,
        enabled,
        args.lead_minutes,
        source=source,
        store=store,
        notifier=notifier,
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.cancel()
    return 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        print("run_reminders: stopped", file=sys.stderr)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
