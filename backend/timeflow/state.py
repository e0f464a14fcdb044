from __future__ import annotations

from threading import RLock
from typing import Any, Dict, Iterable, List, Tuple

from .config import Settings
from .models import TimeEntry


class RuntimeState:
    """Raw entries and settings the HTTP layer hands to each fresh engine."""

    def __init__(self, base_settings: Settings, entries: Iterable[Any] = ()):
        self._lock = RLock()
        self._settings = base_settings
        self._entries: List[TimeEntry] = [TimeEntry.from_raw(entry) for entry in entries]

    @property
    def settings(self) -> Settings:
        with self._lock:
            return self._settings

    @property
    def entries(self) -> List[TimeEntry]:
        with self._lock:
            return list(self._entries)

    def snapshot(self) -> Tuple[List[TimeEntry], Settings]:
        """Entries and settings read under one lock acquisition."""
        with self._lock:
            return list(self._entries), self._settings

    def replace_entries(self, entries: Iterable[Any]) -> List[TimeEntry]:
        normalized = [TimeEntry.from_raw(entry) for entry in entries]
        with self._lock:
            self._entries = normalized
            return list(normalized)

    def apply(self, updates: Dict[str, Any]) -> Settings:
        """Merge ``updates`` into the current settings.

        The merged values are validated as a whole, so a rejected update
        leaves the previous settings in place.
        """
        with self._lock:
            merged = self._settings.model_dump()
            merged.update({key: value for key, value in updates.items() if value is not None})
            self._settings = Settings(**merged)
            return self._settings
