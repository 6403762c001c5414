import asyncio
import time as systime
from datetime import date, datetime, time

import pytest

from src.timetable.models import ClassType, Profile, TimetableEntry, TimetableResult
from src.timetable.scheduler import (
    ReminderScheduler,
    SchedulerState,
    next_class_start,
    next_weekly_boundary,
    reminder_key,
    resolve_enabled,
    schedule_reminders,
)

PROFILE = Profile(degree="BTECH-CSE", year="Second", batch="A1", full_name="Asha Rao")


def entry(day, slot, subject="OS", room="LH-101", faculty="Dr. Rao"):
    return TimetableEntry(
        day=day, time=slot, subject=subject, faculty=faculty, room=room, type=ClassType.LECTURE
    )


class StubSource:
    def __init__(self, classes=None, source="live"):
        self.result = TimetableResult(classes=classes or {}, source=source)
        self.calls = []

    def set(self, classes, source="live"):
        self.result = TimetableResult(classes=classes, source=source)

    def fetch(self, degree, year, batch):
        self.calls.append((degree, year, batch))
        return self.result


def make(source, store, notifier, loop, clock, profile=PROFILE, lead=10):
    return ReminderScheduler(
        profile,
        source=source,
        store=store,
        notifier=notifier,
        lead_minutes=lead,
        loop=loop,
        clock=clock,
    )


def start(scheduler, loop):
    scheduler.enable()
    loop.run_tasks()


def reminder_handles(loop, scheduler):
    return [h for h in loop.pending() if h.callback == scheduler._run_timer]


def weekly_handles(loop, scheduler):
    return [h for h in loop.pending() if h.callback == scheduler._on_weekly_boundary]


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------
def test_next_class_start_this_week_or_next():
    now = datetime(2026, 10, 21, 12, 0)  # Wednesday
    assert next_class_start("Thursday", time(9, 0), now) == datetime(2026, 10, 22, 9, 0)
    assert next_class_start("Wednesday", time(13, 0), now) == datetime(2026, 10, 21, 13, 0)
    assert next_class_start("Monday", time(9, 0), now) == datetime(2026, 10, 26, 9, 0)
    assert next_class_start("Sunday", time(9, 0), now) is None


def test_next_class_start_on_sunday_anchors_to_previous_monday():
    now = datetime(2026, 10, 25, 10, 0)  # Sunday
    assert next_class_start("Saturday", time(9, 0), now) == datetime(2026, 10, 31, 9, 0)


@pytest.mark.parametrize(
    "now, expected",
    [
        (datetime(2026, 10, 19, 8, 0), datetime(2026, 10, 23, 0, 0)),  # Monday
        (datetime(2026, 10, 22, 23, 59), datetime(2026, 10, 23, 0, 0)),  # Thursday
        (datetime(2026, 10, 23, 0, 0), datetime(2026, 10, 30, 0, 0)),  # Friday
        (datetime(2026, 10, 24, 9, 0), datetime(2026, 10, 30, 0, 0)),  # Saturday
    ],
)
def test_next_weekly_boundary(now, expected):
    assert next_weekly_boundary(now) == expected


# ---------------------------------------------------------------------------
# Arming
# ---------------------------------------------------------------------------
def test_enable_arms_one_timer_per_future_class(store, notifier, loop, clock):
    source = StubSource({
        "Monday": [entry("Monday", "09:00-09:50")],
        "Tuesday": [entry("Tuesday", "14:20-15:10", subject="CN")],
    })
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)

    assert scheduler.state is SchedulerState.ARMED
    assert sorted(h.delay for h in reminder_handles(loop, scheduler)) == [
        50 * 60,  # Monday 08:50
        30 * 3600 + 10 * 60,  # Tuesday 14:10
    ]
    assert [h.delay for h in weekly_handles(loop, scheduler)] == [3 * 86400 + 16 * 3600]
    assert notifier.shown == []
    assert store.is_enabled(PROFILE.storage_key)
    assert source.calls == [("BTECH-CSE", "Second", "A1")]


def test_class_already_started_rolls_to_next_week(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "07:00-07:50")]})
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)

    (handle,) = reminder_handles(loop, scheduler)
    assert handle.delay == 7 * 86400 - 70 * 60
    assert scheduler.armed_keys == {"Monday|07:00-07:50|OS|LH-101|2026-10-26"}


def test_timer_fires_reminder_and_marks_notified(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50", subject="DBMS", room="Lab-3")]})
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)

    reminder_handles(loop, scheduler)[0].run()

    assert notifier.shown == [
        ("Hey Asha!!", "DBMS (lecture) • Lab-3 • Dr. Rao • Starts at 09:00-09:50")
    ]
    assert scheduler.state is SchedulerState.ARMED
    assert scheduler.armed_keys == set()
    assert store.is_notified(PROFILE.storage_key, "Monday|09:00-09:50|DBMS|Lab-3|2026-10-19")


def test_reminder_title_without_name(store, notifier, loop, clock):
    profile = Profile(degree="D", year="Y", batch="B")
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50", subject="Maths")]})
    scheduler = make(source, store, notifier, loop, clock, profile=profile)
    start(scheduler, loop)
    loop.run_all()
    assert notifier.shown[0][0] == "Next: Maths"


def test_duplicate_class_armed_once(store, notifier, loop, clock):
    twice = entry("Monday", "09:00-09:50")
    source = StubSource({"Monday": [twice, twice]})
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)

    assert len(reminder_handles(loop, scheduler)) == 1
    loop.run_all()
    assert len(notifier.shown) == 1


def test_arm_rejects_key_already_armed(store, notifier, loop, clock):
    scheduler = make(StubSource(), store, notifier, loop, clock)
    at = datetime(2026, 10, 19, 9, 0)
    assert scheduler.arm("k", at, lambda: None) is True
    assert scheduler.arm("k", at, lambda: None) is False
    assert len(loop.pending()) == 1


def test_past_due_fires_once_immediately(store, notifier, loop, clock):
    # Starts in 5 minutes, inside the 10 minute lead window
    source = StubSource({"Monday": [entry("Monday", "08:05-08:55", subject="Physics")]})
    first = make(source, store, notifier, loop, clock)
    start(first, loop)

    assert len(notifier.shown) == 1
    assert notifier.shown[0][1].startswith("Physics (lecture)")
    assert reminder_handles(loop, first) == []
    first.cancel()

    # Same week, new arming cycle: already notified, nothing fires
    second = make(source, store, notifier, loop, clock)
    start(second, loop)
    assert len(notifier.shown) == 1
    assert reminder_handles(loop, second) == []


def test_previously_notified_class_not_rearmed(store, notifier, loop, clock):
    e = entry("Monday", "09:00-09:50")
    store.mark_notified(PROFILE.storage_key, reminder_key(e, date(2026, 10, 19)), date(2026, 10, 19))
    scheduler = make(StubSource({"Monday": [e]}), store, notifier, loop, clock)
    start(scheduler, loop)
    assert reminder_handles(loop, scheduler) == []


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------
def test_schedule_change_notifies_once(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50", room="LH-101")]})

    start(make(source, store, notifier, loop, clock), loop)  # first sighting
    assert notifier.shown == []

    start(make(source, store, notifier, loop, clock), loop)  # unchanged
    assert notifier.shown == []

    source.set({"Monday": [entry("Monday", "09:00-09:50", room="LH-205")]})
    start(make(source, store, notifier, loop, clock), loop)
    assert notifier.shown == [
        ("Hey Asha!!", "Your timetable for BTECH-CSE Second A1 got updated.")
    ]

    start(make(source, store, notifier, loop, clock), loop)  # snapshot now updated
    assert len(notifier.shown) == 1


def test_unavailable_schedule_leaves_snapshot_alone(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    start(make(source, store, notifier, loop, clock), loop)
    snapshot = store.load_snapshot(PROFILE.storage_key)

    source.set({}, source="unavailable")
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)

    assert store.load_snapshot(PROFILE.storage_key) == snapshot
    assert notifier.shown == []
    assert reminder_handles(loop, scheduler) == []
    assert len(weekly_handles(loop, scheduler)) == 1


# ---------------------------------------------------------------------------
# Weekly rollover
# ---------------------------------------------------------------------------
def test_weekly_boundary_rearms(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)
    (old,) = reminder_handles(loop, scheduler)
    (boundary,) = weekly_handles(loop, scheduler)

    clock.now = datetime(2026, 10, 23, 0, 0)
    boundary.run()
    assert old.cancelled
    assert scheduler.state is SchedulerState.REARMING

    loop.run_tasks()
    assert len(source.calls) == 2
    assert scheduler.state is SchedulerState.ARMED
    assert scheduler.armed_keys == {"Monday|09:00-09:50|OS|LH-101|2026-10-26"}
    assert [h.delay for h in weekly_handles(loop, scheduler)] == [7 * 86400]
    assert notifier.shown == []


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("n", [0, 1, 5])
def test_disable_prevents_all_notifications(store, notifier, loop, clock, n):
    classes = {"Tuesday": [entry("Tuesday", f"{9 + i:02d}:00-{9 + i:02d}:50", subject=f"S{i}") for i in range(n)]}
    scheduler = make(StubSource(classes), store, notifier, loop, clock)
    start(scheduler, loop)
    assert len(reminder_handles(loop, scheduler)) == n

    scheduler.disable()
    loop.run_all()

    assert notifier.shown == []
    assert loop.pending() == []
    assert scheduler.state is SchedulerState.IDLE
    assert not store.is_enabled(PROFILE.storage_key)


def test_callback_queued_before_cancel_is_ignored(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    scheduler = make(source, store, notifier, loop, clock)
    start(scheduler, loop)
    (handle,) = reminder_handles(loop, scheduler)

    scheduler.cancel()
    handle.callback(*handle.args)  # as if the loop had already dequeued it

    assert notifier.shown == []
    assert store.is_enabled(PROFILE.storage_key)  # teardown keeps the preference


def test_incomplete_profile_stays_idle(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    scheduler = make(source, store, notifier, loop, clock, profile=Profile(degree="D", year="Y"))
    start(scheduler, loop)

    assert scheduler.state is SchedulerState.IDLE
    assert source.calls == []
    assert loop.pending() == []


def test_schedule_reminders_disabled_does_nothing(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    scheduler = schedule_reminders(
        PROFILE, False, source=source, store=store, notifier=notifier, loop=loop, clock=clock
    )
    assert scheduler.state is SchedulerState.IDLE
    assert source.calls == []

    scheduler.set_enabled(True)
    assert scheduler.state is SchedulerState.ARMED
    scheduler.set_enabled(False)
    loop.run_tasks()
    assert loop.pending() == []
    assert source.calls == []


def test_disable_before_first_fetch_arms_nothing(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    scheduler = make(source, store, notifier, loop, clock)
    scheduler.enable()
    scheduler.disable()
    loop.run_tasks()

    assert source.calls == []
    assert loop.pending() == []
    assert store.load_snapshot(PROFILE.storage_key) is None


# ---------------------------------------------------------------------------
# Slow portal on a real event loop
# ---------------------------------------------------------------------------
class SlowSource(StubSource):
    def __init__(self, classes, delay):
        super().__init__(classes)
        self.delay = delay

    def fetch(self, degree, year, batch):
        systime.sleep(self.delay)
        return super().fetch(degree, year, batch)


def test_slow_fetch_keeps_event_loop_running(store, notifier, clock):
    source = SlowSource({"Monday": [entry("Monday", "09:00-09:50")]}, delay=0.5)

    async def scenario():
        loop = asyncio.get_running_loop()
        gaps = []

        async def ticker():
            last = loop.time()
            while True:
                await asyncio.sleep(0.02)
                now = loop.time()
                gaps.append(now - last)
                last = now

        ticks = asyncio.create_task(ticker())
        scheduler = make(source, store, notifier, loop, clock)
        scheduler.enable()
        await scheduler._task
        ticks.cancel()
        armed = scheduler.armed_keys
        scheduler.cancel()
        return gaps, armed

    gaps, armed = asyncio.run(scenario())

    assert len(gaps) >= 10
    assert max(gaps) < 0.3
    assert armed == {"Monday|09:00-09:50|OS|LH-101|2026-10-19"}


def test_disable_during_fetch_arms_nothing(store, notifier, clock):
    source = SlowSource({"Monday": [entry("Monday", "08:05-08:55")]}, delay=0.3)

    async def scenario():
        loop = asyncio.get_running_loop()
        scheduler = make(source, store, notifier, loop, clock)
        scheduler.enable()
        task = scheduler._task
        await asyncio.sleep(0.05)  # fetch now running in its thread
        scheduler.disable()
        await asyncio.sleep(0.4)  # fetch has returned
        return scheduler, task

    scheduler, task = asyncio.run(scenario())

    assert task.cancelled()
    assert len(source.calls) == 1
    assert scheduler.armed_keys == set()
    assert notifier.shown == []
    assert store.load_snapshot(PROFILE.storage_key) is None
    assert not store.is_enabled(PROFILE.storage_key)


# ---------------------------------------------------------------------------
# Persisted preference
# ---------------------------------------------------------------------------
def test_new_cohort_defaults_to_enabled(store):
    assert resolve_enabled(store, PROFILE) is True


def test_disabled_cohort_stays_idle_until_enabled(store, notifier, loop, clock):
    source = StubSource({"Monday": [entry("Monday", "09:00-09:50")]})
    assert resolve_enabled(store, PROFILE, False) is False

    enabled = resolve_enabled(store, PROFILE)
    scheduler = schedule_reminders(
        PROFILE, enabled, source=source, store=store, notifier=notifier, loop=loop, clock=clock
    )
    loop.run_tasks()
    assert enabled is False
    assert scheduler.state is SchedulerState.IDLE
    assert source.calls == []
    assert loop.pending() == []

    assert resolve_enabled(store, PROFILE, True) is True
    assert resolve_enabled(store, PROFILE) is True
