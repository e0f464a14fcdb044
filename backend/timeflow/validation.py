from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from .models import TimeEntry
from .schemas import (
    EntrySnapshot,
    ValidationIssue,
    ValidationIssues,
    ValidationResults,
    ValidationStats,
)
from .utils import day_key, hours_between, iter_days, local_date, parse_day, parse_timestamp

if TYPE_CHECKING:  # pragma: no cover - import cycle
    from .engine import BalanceEngine

logger = logging.getLogger(__name__)

UNKNOWN_TYPES_SHOWN = 3

_REJECTION_MESSAGES = {
    "invalid_start": "Start time could not be parsed ({value})",
    "invalid_end": "End time could not be parsed ({value})",
}


def _snapshot(entry: TimeEntry, duration: Optional[float] = None) -> EntrySnapshot:
    return EntrySnapshot(
        name=entry.name,
        start_time=entry.start_time,
        end_time=entry.end_time,
        duration=entry.duration if duration is None else duration,
    )


class _Collector:
    def __init__(self) -> None:
        self.errors: List[ValidationIssue] = []
        self.warnings: List[ValidationIssue] = []
        self.info: List[ValidationIssue] = []
        self.flagged: Set[int] = set()

    def add(
        self,
        severity: str,
        kind: str,
        description: str,
        date: str,
        entry: Optional[TimeEntry] = None,
        snapshot: Optional[EntrySnapshot] = None,
    ) -> None:
        if entry is not None:
            self.flagged.add(id(entry))
            if snapshot is None:
                snapshot = _snapshot(entry)
        issue = ValidationIssue(severity=severity, type=kind, description=description, date=date, entry=snapshot)
        {"error": self.errors, "warning": self.warnings, "info": self.info}[severity].append(issue)


def _check_closed_entry(engine: "BalanceEngine", issues: _Collector, entry: TimeEntry, key: str, today_key: str) -> None:
    thresholds = engine.settings.validation_thresholds
    duration = entry.duration or 0.0

    if not (entry.name or "").strip():
        issues.add("error", "Missing Entry Name", "Entry has no name/type", key, entry)
    if duration < 0:
        issues.add("error", "Negative Duration", f"End time is before start time ({duration:.1f}h)", key, entry)
    if duration > thresholds.max_duration_hours:
        issues.add(
            "error",
            "Excessive Duration",
            f"Entry spans more than {thresholds.max_duration_hours:g} hours ({duration:.1f}h)",
            key,
            entry,
        )
    elif duration > thresholds.very_long_session_hours:
        issues.add(
            "warning",
            "Very Long Session",
            f"Entry duration exceeds {thresholds.very_long_session_hours:g} hours ({duration:.1f}h)",
            key,
            entry,
        )
    if duration == 0:
        issues.add("info", "Zero Duration", "Entry has zero duration (0.0h)", key, entry)
    if key > today_key:
        issues.add("info", "Future Date", f"Entry is dated in the future ({key})", key, entry)


def _check_overlaps(issues: _Collector, entries: List[TimeEntry], key: str) -> None:
    ordered = sorted(entries, key=lambda entry: entry.started_at)
    for current, following in zip(ordered, ordered[1:]):
        if current.ended_at > following.started_at:
            minutes = round((current.ended_at - following.started_at).total_seconds() / 60)
            snapshot = EntrySnapshot(
                name=f"{current.name} -> {following.name}",
                start_time=current.start_time,
                end_time=following.end_time,
            )
            issues.flagged.add(id(following))
            issues.add("error", "Overlapping Entries", f"Entries overlap by {minutes} minutes", key, current, snapshot)


def _check_missing_days(engine: "BalanceEngine", issues: _Collector, today: dt.date) -> None:
    if not engine.daily:
        return
    first = parse_day(min(engine.daily))
    for day in iter_days(first, today - dt.timedelta(days=1)):
        if not engine.is_work_day(day) or engine.entries_for(day):
            continue
        info = engine.holiday(day)
        if info is not None:
            policy = engine.resolver.policy_for_holiday(info)
            if policy.no_hours_required or policy.reduces_goal:
                continue
        issues.add("warning", "Missing Entry", "No work entries registered for this workday", day_key(day))


def _check_active_entries(engine: "BalanceEngine", issues: _Collector, now: dt.datetime) -> None:
    threshold = engine.settings.validation_thresholds.long_running_timer_hours
    for entry in engine.active_entries:
        start = parse_timestamp(entry.start_time, engine.tz)
        key = day_key(local_date(start, engine.tz))
        if not (entry.name or "").strip():
            issues.add("error", "Missing Entry Name", "Entry has no name/type", key, entry)
        running = hours_between(start, now)
        if running > threshold:
            issues.add(
                "warning",
                "Long-Running Timer",
                f"Active timer has been running for {running:.1f} hours (threshold: {threshold:g}h)",
                key,
                entry,
                _snapshot(entry, duration=running),
            )


def _check_rejected_entries(engine: "BalanceEngine", issues: _Collector, today_key: str) -> None:
    for rejected in engine.rejected_entries:
        entry = rejected.entry
        if rejected.reason == "missing_start":
            issues.add("error", "Missing Start Time", "Entry has no start time", today_key, entry)
            continue
        value = entry.start_time if rejected.reason == "invalid_start" else entry.end_time
        message = _REJECTION_MESSAGES.get(rejected.reason, "Entry could not be read ({value})")
        issues.add("error", "Invalid Timestamp", message.format(value=value), today_key, entry)


def _check_unknown_types(engine: "BalanceEngine", issues: _Collector, today_key: str) -> None:
    unknown: Dict[str, int] = {}
    for key in sorted(engine.daily):
        for entry in engine.daily[key]:
            if entry.name and not engine.policies.is_known(entry.name):
                unknown[entry.name] = unknown.get(entry.name, 0) + 1
    if not unknown:
        return
    names = ", ".join(list(unknown)[:UNKNOWN_TYPES_SHOWN])
    if len(unknown) > UNKNOWN_TYPES_SHOWN:
        names += f" +{len(unknown) - UNKNOWN_TYPES_SHOWN}"
    total = sum(unknown.values())
    issues.add("info", "Unknown Entry Types", f"{total} entries with unknown types: {names}", today_key)


def validate_engine(engine: "BalanceEngine", now: dt.datetime) -> ValidationResults:
    """Single pass over closed, active and unreadable entries.

    Problems in the data are reported as issues; nothing here raises for
    bad input.
    """
    today = now.astimezone(engine.tz).date()
    today_key = day_key(today)
    thresholds = engine.settings.validation_thresholds
    issues = _Collector()
    checked = 0

    for key in sorted(engine.daily):
        entries = engine.daily[key]
        for entry in entries:
            checked += 1
            _check_closed_entry(engine, issues, entry, key, today_key)
        if len(entries) > 1:
            _check_overlaps(issues, entries, key)

    _check_rejected_entries(engine, issues, today_key)
    _check_missing_days(engine, issues, today)

    checked += len(engine.active_entries)
    _check_active_entries(engine, issues, now)

    week_total = engine.current_week_hours(now)
    if week_total > thresholds.high_weekly_total_hours:
        issues.add(
            "info",
            "High Weekly Total",
            f"Current week total exceeds {thresholds.high_weekly_total_hours:g} hours ({week_total:.1f}h)",
            today_key,
        )

    _check_unknown_types(engine, issues, today_key)

    if engine.daily:
        first_key = min(engine.daily)
        start_key = day_key(engine.settings.balance_start_date)
        if start_key > first_key:
            issues.add(
                "info",
                "Balance Start After First Entry",
                f"Balance is tracked from {start_key} but the first entry is dated {first_key}",
                start_key,
            )

    total = sum(len(entries) for entries in engine.daily.values())
    total += len(engine.active_entries) + len(engine.rejected_entries)
    stats = ValidationStats(
        total_entries=total,
        entries_checked=checked,
        entries_with_issues=len(issues.flagged),
    )
    logger.debug(
        "Validation: %d errors, %d warnings, %d info", len(issues.errors), len(issues.warnings), len(issues.info)
    )
    return ValidationResults(
        has_errors=bool(issues.errors),
        has_warnings=bool(issues.warnings),
        has_info=bool(issues.info),
        issues=ValidationIssues(errors=issues.errors, warnings=issues.warnings, info=issues.info, stats=stats),
        generated_at=now,
    )


__all__ = ["validate_engine"]
