"""Notification display port.

The scheduler only needs "show a notification with this title and body".
Whatever actually draws it (desktop toast, browser, push relay) implements
Notifier.
"""

import sys
from typing import Protocol

from src.timetable.logging import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    def show(self, title: str, body: str) -> None: ...


class LogNotifier:
    """Emits each notification as a structured log event."""

    def show(self, title: str, body: str) -> None:
        logger.info("notification_shown", title=title, body=body)


class ConsoleNotifier:
    """Prints notifications to stdout, one per line."""

    def __init__(self, stream=None) -> None:
        self.stream = stream or sys.stdout

    def show(self, title: str, body: str) -> None:
        print(f"[{title}] {body}", file=self.stream, flush=True)
