import asyncio
import json
from datetime import date, datetime
from urllib.parse import urlsplit

import pytest
import requests

from src.timetable.config import TimetableConfig
from src.timetable.portal import PortalClient
from src.timetable.store import ReminderStore

PORTAL = "https://portal.test"
PAGE_HTML = '<html><head><meta name="csrf-token" content="tok-123"></head></html>'


class FakeRawHeaders:
    def __init__(self, set_cookies):
        self._set_cookies = list(set_cookies)

    def getlist(self, name):
        return list(self._set_cookies) if name.lower() == "set-cookie" else []


class FakeRaw:
    def __init__(self, set_cookies):
        self.headers = FakeRawHeaders(set_cookies)


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None, set_cookies=()):
        self.status_code = status_code
        if text is None:
            text = "" if body is None else json.dumps(body)
        self.text = text
        self.raw = FakeRaw(set_cookies)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return json.loads(self.text)


class FakeHttp:
    """Stands in for the requests module: scripted get/post by method+path.

    A route holds a list of responses (or exceptions) served in order; the
    last one repeats. Unrouted requests get a 404.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)
        return self

    def _dispatch(self, method, url, kwargs):
        path = urlsplit(url).path
        self.calls.append((method, path, kwargs))
        queue = self.routes.get((method, path))
        if not queue:
            return FakeResponse(404, text="not found")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, kwargs)

    def paths(self, method=None):
        return [p for m, p, _ in self.calls if method is None or m == method]


class FakeHandle:
    def __init__(self, delay, callback, args):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.ran = False

    def cancel(self):
        self.cancelled = True

    def run(self):
        if not self.cancelled and not self.ran:
            self.ran = True
            self.callback(*self.args)


class FakeTask:
    def __init__(self, coro):
        self.coro = coro
        self.started = False
        self.cancelled = False

    def cancel(self):
        if not self.started and not self.cancelled:
            self.coro.close()
        self.cancelled = True


class FakeLoop:
    """Records call_later timers and created tasks; tests drive both by hand.

    Tasks run under a real asyncio loop (run_tasks) so the worker-thread
    fetch inside them still works.
    """

    def __init__(self):
        self.handles = []
        self.tasks = []

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(delay, callback, args)
        self.handles.append(handle)
        return handle

    def create_task(self, coro):
        task = FakeTask(coro)
        self.tasks.append(task)
        return task

    def pending(self):
        return [h for h in self.handles if not h.cancelled and not h.ran]

    def run_tasks(self):
        async def drain():
            while True:
                ready = [t for t in self.tasks if not t.started and not t.cancelled]
                if not ready:
                    return
                for task in ready:
                    task.started = True
                    await task.coro

        asyncio.run(drain())

    def run_all(self):
        # Earliest first, as a real loop would
        for handle in sorted(self.pending(), key=lambda h: h.delay):
            handle.run()
        self.run_tasks()


class RecordingNotifier:
    def __init__(self):
        self.shown = []

    def show(self, title, body):
        self.shown.append((title, body))


@pytest.fixture
def config(tmp_path):
    return TimetableConfig(
        portal_url=PORTAL,
        session_retry_attempts=2,
        session_retry_wait_seconds=0,
        state_dir=str(tmp_path / "state"),
    )


@pytest.fixture
def http():
    fake = FakeHttp()
    fake.add(
        "GET",
        "/batchReport",
        FakeResponse(
            text=PAGE_HTML,
            set_cookies=[
                "XSRF-TOKEN=abc; path=/; secure",
                "laravel_session=xyz; path=/; httponly",
            ],
        ),
    )
    return fake


@pytest.fixture
def client(config, http):
    return PortalClient(config, http)


@pytest.fixture
def unreachable_http():
    fake = FakeHttp()
    fake.add("GET", "/batchReport", requests.ConnectionError("connection refused"))
    return fake


@pytest.fixture
def store(tmp_path):
    return ReminderStore(tmp_path / "state", retention_days=7, today=lambda: date(2026, 10, 19))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def loop():
    return FakeLoop()


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    # Monday 2026-10-19 08:00 local
    return Clock(datetime(2026, 10, 19, 8, 0))
