"""In-memory records the balance engine works on."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional


@dataclass(slots=True)
class TimeEntry:
    """A single logged activity as handed over by the ingestion layer.

    ``duration``, ``flextime`` and ``date`` are filled in by the engine; the
    parsed timestamps are kept alongside so later passes do not reparse.
    """

    name: str
    start_time: Optional[str]
    end_time: Optional[str] = None
    duration: Optional[float] = None
    flextime: Optional[float] = None
    date: Optional[dt.date] = None
    started_at: Optional[dt.datetime] = field(default=None, repr=False, compare=False)
    ended_at: Optional[dt.datetime] = field(default=None, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return not self.end_time

    @property
    def category(self) -> str:
        return (self.name or "").strip().lower()

    @classmethod
    def from_raw(cls, raw: Any) -> "TimeEntry":
        if isinstance(raw, TimeEntry):
            if raw.name is None:
                return replace(raw, name="")
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported entry record: {type(raw).__name__}")
        return cls(
            name=raw.get("name") or "",
            start_time=raw.get("start_time", raw.get("startTime")),
            end_time=raw.get("end_time", raw.get("endTime")),
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
        }


@dataclass(slots=True)
class HolidayInfo:
    """A declared special day from the holiday file."""

    type: str
    description: str
    half_day: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    template_id: Optional[str] = None

    @property
    def has_time_range(self) -> bool:
        return bool(self.start_time and self.end_time)


__all__ = ["TimeEntry", "HolidayInfo"]
