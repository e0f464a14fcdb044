from __future__ import annotations

import datetime as dt
from typing import Dict, List, Mapping, Optional

from .config import Settings, WorkSchedulePeriod
from .models import HolidayInfo
from .policies import DayTypePolicy, PolicyTable
from .utils import day_key, parse_day


class GoalResolver:
    """Required work hours per calendar date.

    The resolver only reads its configuration and the holiday map, both of
    which are treated as immutable for its lifetime, so results are memoised
    per date.
    """

    def __init__(self, settings: Settings, holidays: Mapping[str, HolidayInfo], policies: PolicyTable):
        self.settings = settings
        self.holidays = holidays
        self.policies = policies
        self._history: List[WorkSchedulePeriod] = sorted(
            settings.work_schedule_history, key=lambda period: period.effective_from
        )
        self._goals: Dict[dt.date, float] = {}

    def schedule_for(self, day: dt.date) -> WorkSchedulePeriod:
        if not self._history:
            return WorkSchedulePeriod(
                effective_from=self.settings.balance_start_date,
                work_percent=self.settings.work_percent,
                base_workday=self.settings.base_workday,
                base_workweek=self.settings.base_workweek,
                work_days=self.settings.work_days,
                half_day_hours=self.settings.half_day_hours,
            )
        active: Optional[WorkSchedulePeriod] = None
        for period in self._history:
            if period.effective_from <= day:
                active = period
            else:
                break
        # Dates before every period fall back to the earliest one.
        return active or self._history[0]

    def is_work_day(self, day: dt.date) -> bool:
        return day.weekday() in self.schedule_for(day).work_days

    def holiday(self, day: dt.date) -> Optional[HolidayInfo]:
        return self.holidays.get(day_key(day))

    def policy_for_holiday(self, info: HolidayInfo) -> DayTypePolicy:
        policy = self.policies.lookup(info.type)
        if info.has_time_range:
            return policy.for_time_range()
        return policy

    def half_day_hours(self, day: dt.date) -> float:
        schedule = self.schedule_for(day)
        if self.settings.half_day_mode == "percentage":
            return schedule.base_workday / 2
        return schedule.half_day_hours

    def standard_hours(self, day: dt.date) -> float:
        schedule = self.schedule_for(day)
        return schedule.base_workday * schedule.work_percent

    def goal(self, day) -> float:
        day = parse_day(day)
        cached = self._goals.get(day)
        if cached is not None:
            return cached
        value = self._resolve(day)
        self._goals[day] = value
        return value

    def _resolve(self, day: dt.date) -> float:
        if not self.is_work_day(day):
            return 0.0
        info = self.holiday(day)
        if info is not None:
            if self.policy_for_holiday(info).no_hours_required:
                return 0.0
            if info.half_day:
                return self.half_day_hours(day)
        return self.standard_hours(day)


__all__ = ["GoalResolver"]
