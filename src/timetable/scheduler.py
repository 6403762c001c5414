"""Class reminders armed as asyncio timers.

ReminderScheduler turns a weekly timetable into one timer per class that
fires `lead_minutes` before the class starts. Each arming cycle:

  1. fetches the timetable,
  2. compares it with the last persisted snapshot and announces a change,
  3. arms a timer per class not yet reminded about.

Classes whose reminder time has already passed (the class starts within the
lead window) are announced immediately instead of being dropped. A separate
timer rearms everything at Friday 00:00 and then every seven days.

Timers are asyncio TimerHandles kept in a dict keyed by reminder key, so
cancelling is a loop over that dict. The fetch itself blocks (requests), so
the arming cycle awaits it in a worker thread and runs as a task the
scheduler owns; everything else happens on the event loop thread.

States:

    IDLE --enable--> ARMED --timer--> FIRING --> ARMED
                       |  --Friday--> REARMING --> ARMED
                       +--disable/cancel--> IDLE
"""

import asyncio
import json
from collections.abc import Callable, Coroutine
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Protocol

from src.timetable.logging import get_logger
from src.timetable.models import (
    DAYS,
    Profile,
    TimetableEntry,
    TimetableResult,
    WeeklySchedule,
)
from src.timetable.notifier import Notifier
from src.timetable.store import ReminderStore

logger = get_logger(__name__)

WEEK = timedelta(days=7)
FRIDAY = 4  # datetime.weekday()


class TimetableSource(Protocol):
    def fetch(self, degree: str, year: str, batch: str) -> TimetableResult: ...


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"
    REARMING = "rearming"


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------
def next_class_start(day: str, start: time, now: datetime) -> datetime | None:
    """Next start of a weekly class, in the Monday-anchored week of `now`.

    If this week's occurrence has already started, the one a week later.
    Returns None for days outside DAYS.
    """
    if day not in DAYS:
        return None
    monday = now.date() - timedelta(days=now.weekday())
    start_at = datetime.combine(monday + timedelta(days=DAYS.index(day)), start)
    if start_at < now:
        start_at += WEEK
    return start_at


def next_weekly_boundary(now: datetime) -> datetime:
    """Next Friday 00:00; a week ahead when today is already Friday."""
    days_ahead = (FRIDAY - now.weekday()) % 7 or 7
    return datetime.combine(now.date() + timedelta(days=days_ahead), time(0, 0))


def reminder_key(entry: TimetableEntry, class_date: date) -> str:
    """Class identity plus the date of this particular occurrence."""
    return "|".join((*entry.identity, class_date.isoformat()))


def serialize_schedule(classes: WeeklySchedule) -> str:
    """Canonical JSON used to detect week-to-week changes."""
    payload = {
        day: [entry.model_dump(mode="json") for entry in entries]
        for day, entries in classes.items()
    }
    return json.dumps(payload, sort_keys=True, ensure_ascii=False)


def reminder_message(profile: Profile, entry: TimetableEntry) -> tuple[str, str]:
    title = f"Hey {profile.first_name}!!" if profile.first_name else f"Next: {entry.subject}"
    body = (
        f"{entry.subject} ({entry.type.value}) • {entry.room} • "
        f"{entry.faculty} • Starts at {entry.time}"
    )
    return title, body


def changed_message(profile: Profile) -> tuple[str, str]:
    title = f"Hey {profile.first_name}!!" if profile.first_name else "Timetable updated"
    body = (
        f"Your timetable for {profile.degree} {profile.year} {profile.batch} "
        "got updated."
    )
    return title, body


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------
class ReminderScheduler:
    """Owns every reminder timer for one profile.

    Must be created on the thread running `loop` (or inside a running loop
    when `loop` is omitted).
    """

    def __init__(
        self,
        profile: Profile,
        *,
        source: TimetableSource,
        store: ReminderStore,
        notifier: Notifier,
        lead_minutes: int = 10,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.profile = profile
        self.source = source
        self.store = store
        self.notifier = notifier
        self.lead = timedelta(minutes=lead_minutes)
        self.loop = loop if loop is not None else asyncio.get_running_loop()
        self.clock = clock

        self.state = SchedulerState.IDLE
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._weekly: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        # Bumped by cancel(); a fetch started under an older value is dropped
        self._generation = 0

    @property
    def profile_key(self) -> str:
        return self.profile.storage_key

    @property
    def armed_keys(self) -> set[str]:
        return set(self._timers)

    # ------------------------------------------------------------------
    # Timer primitives
    # ------------------------------------------------------------------
    def arm(self, key: str, fire_at: datetime, action: Callable[[], None]) -> bool:
        """Arm a one-shot timer for key. Returns False if key is already armed."""
        if key in self._timers:
            return False
        delay = max(0.0, (fire_at - self.clock()).total_seconds())
        self._timers[key] = self.loop.call_later(delay, self._run_timer, key, action)
        return True

    def cancel_all(self) -> int:
        """Cancel every reminder timer. Returns how many were cancelled."""
        handles = list(self._timers.values())
        self._timers.clear()
        for handle in handles:
            handle.cancel()
        return len(handles)

    def is_notified(self, key: str) -> bool:
        return self.store.is_notified(self.profile_key, key)

    def mark_notified(self, key: str, class_date: date) -> None:
        self.store.mark_notified(self.profile_key, key, class_date)

    def _run_timer(self, key: str, action: Callable[[], None]) -> None:
        if self._timers.pop(key, None) is None or self.state is SchedulerState.IDLE:
            return
        action()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.enable()
        else:
            self.disable()

    def enable(self) -> None:
        """Start the weekly rearm timer and an arming cycle in the background."""
        if self.state is not SchedulerState.IDLE:
            return
        if not self.profile.is_complete:
            logger.info("reminders_skipped", reason="incomplete_profile")
            return

        self.store.set_enabled(self.profile_key, True)
        self.state = SchedulerState.ARMED
        self._schedule_weekly(next_weekly_boundary(self.clock()))
        self._spawn(self._sync())
        logger.info(
            "reminders_enabled",
            profile=self.profile_key,
            lead_minutes=int(self.lead.total_seconds() // 60),
        )

    def cancel(self) -> None:
        """Cancel every timer and any fetch in flight, return to IDLE.

        Keeps the persisted flag.
        """
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
        cancelled = self.cancel_all()
        if self._weekly is not None:
            self._weekly.cancel()
            self._weekly = None
        was = self.state
        self.state = SchedulerState.IDLE
        if was is not SchedulerState.IDLE:
            logger.info("reminders_cancelled", profile=self.profile_key, timers=cancelled)

    def disable(self) -> None:
        """cancel(), then persist the disabled flag."""
        self.cancel()
        if self.profile.is_complete:
            self.store.set_enabled(self.profile_key, False)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = self.loop.create_task(coro)

    # ------------------------------------------------------------------
    # Arming cycle
    # ------------------------------------------------------------------
    async def _sync(self) -> None:
        generation = self._generation
        # requests blocks; keep the loop free to fire timers meanwhile
        result = await asyncio.to_thread(
            self.source.fetch, self.profile.degree, self.profile.year, self.profile.batch
        )
        if generation != self._generation or self.state is SchedulerState.IDLE:
            logger.debug("reminders_fetch_discarded", profile=self.profile_key)
            return
        if not result.has_data:
            logger.info("reminders_no_schedule", source=result.source)
            return
        self._check_for_changes(result.classes)
        self._arm_schedule(result.classes)

    def _check_for_changes(self, classes: WeeklySchedule) -> None:
        snapshot = serialize_schedule(classes)
        previous = self.store.load_snapshot(self.profile_key)
        if previous == snapshot:
            return
        if previous is not None:
            title, body = changed_message(self.profile)
            self.notifier.show(title, body)
            logger.info("schedule_changed", profile=self.profile_key)
        self.store.save_snapshot(self.profile_key, snapshot)

    def _arm_schedule(self, classes: WeeklySchedule) -> None:
        now = self.clock()
        notified = self.store.notified_keys(self.profile_key)
        late = 0

        for day, entries in classes.items():
            for entry in entries:
                start_at = next_class_start(day, entry.start, now)
                if start_at is None:
                    continue
                key = reminder_key(entry, start_at.date())
                if key in notified or key in self._timers:
                    continue

                fire_at = start_at - self.lead
                if fire_at <= now:
                    self._fire(key, entry, start_at.date())
                    notified.add(key)
                    late += 1
                    continue

                self.arm(
                    key,
                    fire_at,
                    lambda key=key, entry=entry, d=start_at.date(): self._fire(key, entry, d),
                )

        logger.info("reminders_armed", armed=len(self._timers), fired_late=late)

    def _fire(self, key: str, entry: TimetableEntry, class_date: date) -> None:
        previous = self.state
        self.state = SchedulerState.FIRING
        try:
            title, body = reminder_message(self.profile, entry)
            self.notifier.show(title, body)
            self.mark_notified(key, class_date)
            logger.info("reminder_fired", key=key)
        finally:
            self.state = previous

    # ------------------------------------------------------------------
    # Weekly rollover
    # ------------------------------------------------------------------
    def _schedule_weekly(self, at: datetime) -> None:
        delay = max(0.0, (at - self.clock()).total_seconds())
        self._weekly = self.loop.call_later(delay, self._on_weekly_boundary)
        logger.debug("weekly_rearm_scheduled", at=at.isoformat())

    def _on_weekly_boundary(self) -> None:
        if self.state is SchedulerState.IDLE:
            return
        self.state = SchedulerState.REARMING
        self.cancel_all()
        self._weekly = self.loop.call_later(WEEK.total_seconds(), self._on_weekly_boundary)
        self._spawn(self._rearm())

    async def _rearm(self) -> None:
        await self._sync()
        if self.state is SchedulerState.REARMING:
            self.state = SchedulerState.ARMED
            logger.info("reminders_rearmed", profile=self.profile_key, armed=len(self._timers))


def resolve_enabled(
    store: ReminderStore, profile: Profile, requested: bool | None = None
) -> bool:
    """Whether reminders should run for profile.

    An explicit request is persisted and wins. Otherwise the stored flag is
    used, and a cohort that never set one starts enabled.
    """
    if requested is not None:
        store.set_enabled(profile.storage_key, requested)
        return requested
    return store.is_enabled(profile.storage_key, default=True)


def schedule_reminders(
    profile: Profile,
    enabled: bool,
    lead_minutes: int = 10,
    *,
    source: TimetableSource,
    store: ReminderStore,
    notifier: Notifier,
    loop: asyncio.AbstractEventLoop | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> ReminderScheduler:
    """Create a scheduler for profile and arm it when enabled.

    The first fetch runs as a task on the loop; call .cancel() on the
    result to tear everything down, including a fetch still in flight.
    """
    scheduler = ReminderScheduler(
        profile,
        source=source,
        store=store,
        notifier=notifier,
        lead_minutes=lead_minutes,
        loop=loop,
        clock=clock,
    )
    if enabled:
        scheduler.enable()
    return scheduler
