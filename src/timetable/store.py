"""Local reminder state, one JSON file per profile.

State files (data/state/{profile}.json) hold everything the reminder side
needs to survive a restart:

    {
      "profile": "BTECH-CSE|2|A1",
      "enabled": true,
      "notified": {"Monday|09:00-09:50|DBMS|LH-101|2026-10-19": "2026-10-19"},
      "snapshot": "<canonical JSON of the last seen schedule>",
      "cached": {<last live TimetableResult>},
      "updated_at": "2026-10-19T08:50:00+00:00"
    }

Every write rewrites the whole file. Two processes sharing a state dir are
not coordinated; whichever writes last wins.
"""

import json
import re
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from src.timetable.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _filename(profile_key: str) -> str:
    return _UNSAFE_CHARS.sub("_", profile_key).strip("_") or "default"


class ReminderStore:
    """Persisted enabled flag, notified markers, snapshot and cache per profile."""

    def __init__(
        self,
        state_dir: str | Path = "data/state",
        retention_days: int = 7,
        today=date.today,
    ) -> None:
        """Initialize ReminderStore.

        Args:
            state_dir: Directory holding one state file per profile.
            retention_days: Notified markers for class dates older than this
                many days are dropped when read.
            today: Callable returning the current local date.
        """
        self.state_dir = Path(state_dir)
        self.retention_days = retention_days
        self._today = today

    def path_for(self, profile_key: str) -> Path:
        return self.state_dir / f"{_filename(profile_key)}.json"

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------
    def _load(self, profile_key: str) -> dict[str, Any]:
        path = self.path_for(profile_key)
        if not path.exists():
            return {"profile": profile_key}
        try:
            with open(path, encoding="utf-8") as f:
                state = json.load(f)
        except json.JSONDecodeError:
            logger.warning("state_file_corrupt", path=str(path))
            return {"profile": profile_key}
        if not isinstance(state, dict):
            logger.warning("state_file_corrupt", path=str(path))
            return {"profile": profile_key}
        return state

    def _save(self, profile_key: str, state: dict[str, Any]) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        state["profile"] = profile_key
        state["updated_at"] = datetime.now(timezone.utc).isoformat()
        path = self.path_for(profile_key)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, ensure_ascii=False)

    # ------------------------------------------------------------------
    # Enabled flag
    # ------------------------------------------------------------------
    def is_enabled(self, profile_key: str, default: bool = False) -> bool:
        """Persisted reminder preference; `default` when never set."""
        return bool(self._load(profile_key).get("enabled", default))

    def set_enabled(self, profile_key: str, enabled: bool) -> None:
        state = self._load(profile_key)
        state["enabled"] = enabled
        self._save(profile_key, state)
        logger.debug("reminders_flag_saved", profile=profile_key, enabled=enabled)

    # ------------------------------------------------------------------
    # Notified markers
    # ------------------------------------------------------------------
    def _pruned(self, notified: dict[str, str]) -> dict[str, str]:
        cutoff = self._today() - timedelta(days=self.retention_days)
        kept = {}
        for key, class_date in notified.items():
            try:
                if date.fromisoformat(class_date) >= cutoff:
                    kept[key] = class_date
            except (TypeError, ValueError):
                continue
        return kept

    def notified_keys(self, profile_key: str) -> set[str]:
        notified = self._load(profile_key).get("notified") or {}
        return set(self._pruned(notified))

    def is_notified(self, profile_key: str, reminder_key: str) -> bool:
        return reminder_key in self.notified_keys(profile_key)

    def mark_notified(self, profile_key: str, reminder_key: str, class_date: date) -> None:
        state = self._load(profile_key)
        notified = self._pruned(state.get("notified") or {})
        notified[reminder_key] = class_date.isoformat()
        state["notified"] = notified
        self._save(profile_key, state)

    def clear_notified(self, profile_key: str) -> None:
        state = self._load(profile_key)
        state["notified"] = {}
        self._save(profile_key, state)
        logger.info("notified_cleared", profile=profile_key)

    # ------------------------------------------------------------------
    # Schedule snapshot and cache
    # ------------------------------------------------------------------
    def load_snapshot(self, profile_key: str) -> str | None:
        return self._load(profile_key).get("snapshot")

    def save_snapshot(self, profile_key: str, snapshot: str) -> None:
        state = self._load(profile_key)
        state["snapshot"] = snapshot
        self._save(profile_key, state)

    def load_cached(self, profile_key: str) -> dict | None:
        return self._load(profile_key).get("cached")

    def save_cached(self, profile_key: str, payload: dict) -> None:
        state = self._load(profile_key)
        state["cached"] = payload
        self._save(profile_key, state)
