from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from .policies import DayTypePolicy
from .schemas import AveragesData, DayTypeStats, TimeStatistics
from .utils import parse_day

if TYPE_CHECKING:  # pragma: no cover - import cycle
    from .engine import BalanceEngine

logger = logging.getLogger(__name__)

TIMEFRAMES = ("total", "year", "month")


def _timeframe_filter(
    timeframe: str, today: dt.date, year: Optional[int], month: Optional[int]
) -> Callable[[dt.date], bool]:
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe: {timeframe}")
    target_year = year if year is not None else today.year
    if timeframe == "year":
        return lambda day: day.year == target_year
    if timeframe == "month":
        target_month = month if month is not None else today.month
        return lambda day: day.year == target_year and day.month == target_month
    return lambda day: True


def _stats_bucket(engine: "BalanceEngine", category: str, buckets: Dict[str, DayTypePolicy]) -> Optional[str]:
    """The single statistics bucket an entry belongs to, if any."""
    if not engine.policies.is_known(category):
        return engine.policies.work_type.id
    policy = engine.policy(category)
    if policy.is_work_type:
        return engine.policies.work_type.id
    if policy.id in buckets:
        return policy.id
    return None


def build_statistics(
    engine: "BalanceEngine",
    timeframe: str = "total",
    *,
    year: Optional[int] = None,
    month: Optional[int] = None,
    today: dt.date,
) -> TimeStatistics:
    in_period = _timeframe_filter(timeframe, today, year, month)
    buckets = {policy.id: policy for policy in engine.policies.stats_categories()}
    work_id = engine.policies.work_type.id

    days_by_type: Dict[str, set] = {type_id: set() for type_id in buckets}
    hours_by_type: Dict[str, float] = {type_id: 0.0 for type_id in buckets}
    planned_by_type: Dict[str, int] = {type_id: 0 for type_id in buckets}

    filtered: List[str] = sorted(key for key in engine.daily if in_period(parse_day(key)))
    total_hours = 0.0
    total_flextime = 0.0
    weekend_hours = 0.0
    weekend_days = 0
    work_days = 0

    for key in filtered:
        is_weekend = not engine.is_work_day(key)
        if is_weekend:
            weekend_days += 1
        else:
            work_days += 1
        for entry in engine.daily[key]:
            hours = entry.duration or 0.0
            total_hours += hours
            total_flextime += entry.flextime or 0.0
            if is_weekend:
                weekend_hours += hours
            bucket = _stats_bucket(engine, entry.name, buckets)
            if bucket is None:
                continue
            hours_by_type[bucket] += hours
            # Partial reduce-goal entries (went to work sick) are not sick days.
            if buckets[bucket].reduces_goal and hours:
                continue
            days_by_type[bucket].add(key)

    for key, info in engine.holidays.items():
        day = parse_day(key)
        if day <= today or not in_period(day):
            continue
        if info.type in planned_by_type and info.type != work_id:
            planned_by_type[info.type] += 1

    workload_percent = 0.0
    if timeframe in ("year", "month"):
        expected_days = (
            engine.settings.workdays_per_year if timeframe == "year" else engine.settings.workdays_per_month
        )
        declared_free = 0
        for key in filtered:
            info = engine.holiday(key)
            if info is not None and engine.resolver.policy_for_holiday(info).no_hours_required:
                declared_free += 1
        expected_hours = max(0, expected_days - declared_free) * engine.settings.workday_hours
        workload_percent = total_hours / expected_hours * 100 if expected_hours > 0 else 0.0

    by_type = {
        type_id: DayTypeStats(
            count=len(days_by_type[type_id]),
            hours=hours_by_type[type_id],
            planned=planned_by_type[type_id],
            max=policy.max_days_per_year,
        )
        for type_id, policy in buckets.items()
    }
    return TimeStatistics(
        timeframe=timeframe,
        total_hours=total_hours,
        total_flextime=total_flextime,
        by_type=by_type,
        work_days=work_days,
        weekend_days=weekend_days,
        weekend_hours=weekend_hours,
        avg_daily_hours=total_hours / len(filtered) if filtered else 0.0,
        workload_percent=workload_percent,
    )


def build_averages(engine: "BalanceEngine", today: dt.date) -> AveragesData:
    """Average hours per worked weekday and per week, up to yesterday."""
    today_key = today.isoformat()
    total_hours = 0.0
    worked_days = 0
    for key, entries in engine.daily.items():
        if key >= today_key or not engine.is_work_day(key):
            continue
        work_hours = [
            entry.duration or 0.0 for entry in entries if engine.policy(entry.name).is_work_type
        ]
        if not any(hours > 0 for hours in work_hours):
            continue
        worked_days += 1
        total_hours += sum(work_hours)

    per_week = engine.settings.workdays_per_week
    weeks = worked_days / per_week if per_week > 0 else 0
    logger.debug("Averages over %d worked days", worked_days)
    return AveragesData(
        avg_daily=total_hours / worked_days if worked_days else 0.0,
        avg_weekly=total_hours / weeks if weeks > 0 else 0.0,
        total_days_worked=worked_days,
        total_hours_worked=total_hours,
    )


__all__ = ["build_statistics", "build_averages", "TIMEFRAMES"]
