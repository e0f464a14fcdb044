from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import HolidayInfo

logger = logging.getLogger(__name__)

_TIME_RANGE = r"\d{2}:\d{2}-\d{2}:\d{2}"

# - YYYY-MM-DD: type: description
# - YYYY-MM-DD: type:half: description
# - YYYY-MM-DD: type:HH:MM-HH:MM: description
_DECLARATION_RE = re.compile(
    rf"^-\s*(\d{{4}}-\d{{2}}-\d{{2}}):\s*(\w+)(?::(half|{_TIME_RANGE})?)?:\s*(.+)$"
)
# - YYYY-MM-DD: annet[:template][:HH:MM-HH:MM]: description
_ANNET_RE = re.compile(
    rf"^-\s*(\d{{4}}-\d{{2}}-\d{{2}}):\s*annet(?::(?!\d{{2}}:\d{{2}}-)([\w-]+))?(?::({_TIME_RANGE}))?:\s*(.+)$"
)
_DATED_LINE_RE = re.compile(r"^-\s*\d{4}-")


@dataclass
class HolidayParseResult:
    holidays: Dict[str, HolidayInfo] = field(default_factory=dict)
    parse_errors: int = 0
    duplicates: List[str] = field(default_factory=list)
    invalid_time_ranges: List[str] = field(default_factory=list)


def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _split_range(value: str) -> Tuple[str, str]:
    start, end = value.split("-")
    return start, end


def _valid_range(start: str, end: str) -> bool:
    return _minutes(end) > _minutes(start)


def _parse_annet(match: re.Match) -> Tuple[str, HolidayInfo]:
    day, template, time_range, description = match.groups()
    template_id = template.strip().lower() if template else None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    if time_range:
        start_time, end_time = _split_range(time_range)
    info = HolidayInfo(
        type="annet",
        description=description.strip(),
        start_time=start_time,
        end_time=end_time,
        template_id=template_id,
    )
    return day, info


def _parse_declaration(match: re.Match) -> Tuple[str, HolidayInfo]:
    day, kind, modifier, description = match.groups()
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    if modifier and modifier != "half":
        start_time, end_time = _split_range(modifier)
    info = HolidayInfo(
        type=kind.strip().lower(),
        description=description.strip(),
        half_day=modifier == "half",
        start_time=start_time,
        end_time=end_time,
    )
    return day, info


def parse_holiday_lines(content: str) -> HolidayParseResult:
    """Parse the line-oriented declaration file into a map keyed by ISO date."""
    result = HolidayParseResult()
    if not content or not content.strip():
        return result
    for raw_line in content.replace("\r\n", "\n").split("\n"):
        line = raw_line.strip()
        if not line or line.startswith("#") or not line.startswith("-"):
            continue
        annet = _ANNET_RE.match(line)
        declaration = None if annet else _DECLARATION_RE.match(line)
        if annet:
            day, info = _parse_annet(annet)
        elif declaration:
            day, info = _parse_declaration(declaration)
        else:
            if _DATED_LINE_RE.match(line):
                result.parse_errors += 1
            continue
        try:
            dt.date.fromisoformat(day)
        except ValueError:
            result.parse_errors += 1
            continue
        if info.has_time_range and not _valid_range(info.start_time, info.end_time):
            result.invalid_time_ranges.append(day)
        if day in result.holidays:
            result.duplicates.append(day)
        result.holidays[day] = info
    if result.parse_errors:
        logger.debug("Skipped %d malformed holiday lines", result.parse_errors)
    return result


__all__ = ["HolidayParseResult", "parse_holiday_lines"]
