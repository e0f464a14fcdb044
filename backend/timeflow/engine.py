from __future__ import annotations

import datetime as dt
import hashlib
import json
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import Settings
from .errors import EngineStateError
from .goals import GoalResolver
from .holidays import parse_holiday_lines
from .models import HolidayInfo, TimeEntry
from .policies import DayTypePolicy, PolicyTable
from .schemas import (
    AveragesData,
    BalanceOverview,
    BarChartRow,
    CommentRequirement,
    ContextualData,
    DaySummary,
    HolidayLoadStatus,
    HoursBreakdown,
    RestPeriodCheck,
    SpecialDayCount,
    SpecialDayHours,
    TimeStatistics,
    ValidationResults,
)
from .statistics import build_averages, build_statistics
from .utils import (
    day_key,
    hours_between,
    iso_week,
    iter_days,
    local_date,
    month_bounds,
    parse_day,
    parse_timestamp,
    resolve_zone,
    week_start,
)
from .validation import validate_engine

logger = logging.getLogger(__name__)

HolidayReader = Callable[[], Awaitable[Optional[str]]]

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
WEEKS_PER_MONTH = 4.33


@dataclass
class RejectedEntry:
    """A raw entry the normalizer could not bucket."""

    entry: TimeEntry
    reason: str


@dataclass
class _DayTotals:
    worked: float = 0.0
    accumulated: float = 0.0
    withdrawn: float = 0.0
    has_regular: bool = False


class BalanceEngine:
    """Turns raw timer entries and declared days into flextime balances.

    The engine references the caller's entry list and settings without
    copying them. Any change to either requires a fresh ``process_entries``
    call (or a new engine).
    """

    def __init__(
        self,
        entries: Sequence[Any],
        settings: Settings,
        *,
        holidays: Optional[Dict[str, HolidayInfo]] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self.raw_entries = entries
        self.settings = settings
        self.tz = resolve_zone(settings.timezone)
        self.policies = PolicyTable(settings.special_day_behaviors)
        self.holidays: Dict[str, HolidayInfo] = dict(holidays or {})
        self._clock = clock or (lambda: dt.datetime.now(self.tz))

        self.daily: Dict[str, List[TimeEntry]] = {}
        self.months: Dict[str, Dict[int, List[TimeEntry]]] = {}
        self.active_entries: List[TimeEntry] = []
        self.active_entries_by_date: Dict[str, List[TimeEntry]] = {}
        self.rejected_entries: List[RejectedEntry] = []
        self.resolver = GoalResolver(settings, self.holidays, self.policies)
        self.cache_token: Optional[str] = None
        self._memo: Dict[Tuple[Any, ...], Any] = {}
        self._processed = False

    # -- clock -----------------------------------------------------------

    def now(self, now: Optional[dt.datetime] = None) -> dt.datetime:
        value = now if now is not None else self._clock()
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def today(self, now: Optional[dt.datetime] = None) -> dt.date:
        return self.now(now).date()

    # -- holidays --------------------------------------------------------

    async def load_holidays(self, reader: HolidayReader) -> HolidayLoadStatus:
        """Populate the holiday map from an asynchronous source.

        ``reader`` returns the declaration text, or ``None`` when the source
        does not exist. Failures are reported in the returned status and
        leave the map empty.
        """
        self.holidays.clear()
        try:
            content = await reader()
        except Exception as exc:
            warning = f"Error loading holidays: {exc}"
            logger.warning(warning)
            self._holidays_changed()
            return HolidayLoadStatus(success=False, warning=warning)
        if content is None:
            warning = f"Holiday file not found: {self.settings.holidays_file_path}"
            logger.warning(warning)
            self._holidays_changed()
            return HolidayLoadStatus(success=False, warning=warning)
        return self.load_holidays_text(content)

    def load_holidays_text(self, content: str) -> HolidayLoadStatus:
        parsed = parse_holiday_lines(content)
        self.holidays.clear()
        self.holidays.update(parsed.holidays)
        self._holidays_changed()
        count = len(self.holidays)
        logger.info("Loaded %d planned days", count)
        return HolidayLoadStatus(
            success=True,
            message=f"Loaded {count} planned days",
            count=count,
            parse_errors=parsed.parse_errors,
            duplicates=parsed.duplicates,
            invalid_time_ranges=parsed.invalid_time_ranges,
        )

    def _holidays_changed(self) -> None:
        self.resolver = GoalResolver(self.settings, self.holidays, self.policies)
        if self._processed:
            self.process_entries()

    def holiday(self, day) -> Optional[HolidayInfo]:
        return self.holidays.get(day_key(parse_day(day)))

    # -- lookups ---------------------------------------------------------

    def policy(self, category: Optional[str]) -> DayTypePolicy:
        return self.policies.lookup(category)

    def goal(self, day) -> float:
        return self.resolver.goal(day)

    def is_work_day(self, day) -> bool:
        return self.resolver.is_work_day(parse_day(day))

    def entries_for(self, day) -> List[TimeEntry]:
        return self.daily.get(day_key(parse_day(day)), [])

    def _require_processed(self) -> None:
        if not self._processed:
            raise EngineStateError("process_entries() must run before querying balances")

    # -- normalizer ------------------------------------------------------

    def process_entries(self) -> None:
        self.daily = {}
        self.months = {}
        self.active_entries = []
        self.active_entries_by_date = {}
        self.rejected_entries = []
        self._memo = {}

        for raw in self.raw_entries:
            entry = TimeEntry.from_raw(raw)
            if not entry.start_time:
                self.rejected_entries.append(RejectedEntry(entry, "missing_start"))
                continue
            start = parse_timestamp(entry.start_time, self.tz)
            if start is None:
                self.rejected_entries.append(RejectedEntry(entry, "invalid_start"))
                continue
            bucket = day_key(local_date(start, self.tz))
            if not entry.end_time:
                self.active_entries.append(entry)
                self.active_entries_by_date.setdefault(bucket, []).append(entry)
                continue
            end = parse_timestamp(entry.end_time, self.tz)
            if end is None:
                self.rejected_entries.append(RejectedEntry(entry, "invalid_end"))
                continue
            duration = self._net_duration(entry, hours_between(start, end))
            self.daily.setdefault(bucket, []).append(
                replace(
                    entry,
                    duration=duration,
                    date=local_date(start, self.tz),
                    started_at=start,
                    ended_at=end,
                )
            )

        self._calculate_flextime()
        self._group_by_months()
        self.cache_token = self._snapshot_token()
        self._processed = True
        logger.debug(
            "Processed %d days, %d active and %d rejected entries",
            len(self.daily),
            len(self.active_entries),
            len(self.rejected_entries),
        )

    def _net_duration(self, entry: TimeEntry, duration: float) -> float:
        lunch_minutes = self.settings.lunch_break_minutes
        # Negative spans stay negative so the validator can flag them.
        if lunch_minutes > 0 and duration >= 0 and self.policy(entry.name).is_work_type:
            return max(0.0, duration - lunch_minutes / 60)
        return duration

    def _group_by_months(self) -> None:
        for key in sorted(self.daily):
            day = parse_day(key)
            month_key = f"{day.year:04d}-{day.month:02d}"
            weeks = self.months.setdefault(month_key, {})
            weeks.setdefault(iso_week(day), []).extend(self.daily[key])

    def _snapshot_token(self) -> str:
        payload = {
            "entries": [TimeEntry.from_raw(raw).snapshot() for raw in self.raw_entries],
            "settings": self.settings.model_dump(mode="json"),
            "holidays": {key: asdict(info) for key, info in sorted(self.holidays.items())},
        }
        encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def memoized(self, name: str, day: dt.date, compute: Callable[[], Any]) -> Any:
        key = (self.cache_token, name, day)
        if key not in self._memo:
            self._memo[key] = compute()
        return self._memo[key]

    # -- flextime --------------------------------------------------------

    def effective_goal(self, day) -> float:
        """Goal of a day after absence entries took their share.

        A logged entry of a no-hours type (e.g. a full-day ``ferie`` marker)
        releases the whole goal, like a declaration would.
        """
        day = parse_day(day)
        goal = self.goal(day)
        entries = self.entries_for(day)
        if any(self.policy(entry.name).releases_goal for entry in entries):
            return 0.0
        reduction = 0.0
        for entry in entries:
            if self.policy(entry.name).reduces_goal:
                # Zero-duration entries stand for a full day.
                reduction += entry.duration if entry.duration and entry.duration > 0 else goal
        return max(0.0, goal - reduction)

    def _calculate_flextime(self) -> None:
        for key, entries in self.daily.items():
            goal = self.effective_goal(key)
            for entry in entries:
                entry.flextime = self.entry_flextime(entry, goal)

    def entry_flextime(self, entry: TimeEntry, goal: float) -> float:
        duration = entry.duration or 0.0
        policy = self.policy(entry.name)
        if policy.is_withdraw:
            return -duration
        if policy.reduces_goal:
            return 0.0
        if goal == 0:
            return duration
        # Shortfall shows up in the day balance, never per entry.
        return max(0.0, duration - goal)

    def _day_totals(self, entries: Iterable[TimeEntry]) -> _DayTotals:
        totals = _DayTotals()
        for entry in entries:
            policy = self.policy(entry.name)
            duration = entry.duration or 0.0
            if policy.reduces_goal:
                continue
            if policy.is_withdraw:
                totals.withdrawn += duration
            elif policy.accumulates and not policy.is_work_type:
                totals.accumulated += duration
            else:
                totals.worked += duration
                totals.has_regular = True
        return totals

    def day_balance(self, day) -> float:
        """Signed balance contribution of a single bucketed day."""
        entries = self.entries_for(day)
        if not entries:
            return 0.0
        goal = self.effective_goal(day)
        totals = self._day_totals(entries)
        if totals.accumulated and not totals.has_regular:
            # Course/study-only days never go negative.
            delta = totals.accumulated if goal == 0 else max(0.0, totals.accumulated - goal)
        else:
            worked = totals.worked + totals.accumulated
            delta = worked if goal == 0 else worked - goal
        return delta - totals.withdrawn

    def running_balance(self, start, end) -> float:
        self._require_processed()
        start_key = day_key(parse_day(start))
        end_key = day_key(parse_day(end))
        balance = 0.0
        for key in sorted(self.daily):
            if start_key <= key <= end_key:
                balance += self.day_balance(key)
        return balance

    def balance_up_to(self, end) -> float:
        self._require_processed()
        return self.settings.starting_flextime_balance + self.running_balance(
            self.settings.balance_start_date, end
        )

    def current_balance(self, now: Optional[dt.datetime] = None) -> float:
        return self.balance_up_to(self.today(now))

    # -- period sums -----------------------------------------------------

    def ongoing_hours(self, now: Optional[dt.datetime] = None) -> float:
        self._require_processed()
        current = self.now(now)
        total = 0.0
        for entry in self.active_entries:
            start = parse_timestamp(entry.start_time, self.tz)
            if start is not None:
                total += hours_between(start, current)
        return total

    def today_hours(self, now: Optional[dt.datetime] = None) -> float:
        self._require_processed()
        today = self.today(now)
        closed = sum(
            entry.duration or 0.0
            for entry in self.entries_for(today)
            if self.policy(entry.name).counts_as_work
        )
        return closed + self.ongoing_hours(now)

    def _counted_hours(self, days: Iterable[dt.date]) -> float:
        total = 0.0
        for day in days:
            for entry in self.entries_for(day):
                if not self.policy(entry.name).excluded_from_hour_totals:
                    total += entry.duration or 0.0
        return total

    def week_hours(self, start) -> float:
        self._require_processed()
        first = parse_day(start)
        return self._counted_hours(iter_days(first, first + dt.timedelta(days=6)))

    def current_week_hours(self, now: Optional[dt.datetime] = None) -> float:
        return self.week_hours(week_start(self.today(now))) + self.ongoing_hours(now)

    def month_hours(self, year: int, month: int) -> float:
        self._require_processed()
        return self._counted_hours(iter_days(*month_bounds(year, month)))

    def year_hours(self, year: int) -> float:
        return sum(self.month_hours(year, month) for month in range(1, 13))

    def _breakdown(self, days: Iterable[dt.date]) -> HoursBreakdown:
        work_hours = 0.0
        special: Dict[str, float] = defaultdict(float)
        for day in days:
            for entry in self.entries_for(day):
                policy = self.policy(entry.name)
                hours = entry.duration or 0.0
                if policy.reduces_goal or policy.no_hours_required:
                    special[entry.category] += hours
                elif not policy.is_withdraw:
                    work_hours += hours
        return HoursBreakdown(
            work_hours=work_hours,
            special_days=[
                SpecialDayHours(type=kind, hours=hours) for kind, hours in special.items() if hours > 0
            ],
        )

    def week_breakdown(self, start) -> HoursBreakdown:
        self._require_processed()
        first = parse_day(start)
        return self._breakdown(iter_days(first, first + dt.timedelta(days=6)))

    def month_breakdown(self, year: int, month: int) -> HoursBreakdown:
        self._require_processed()
        return self._breakdown(iter_days(*month_bounds(year, month)))

    def week_totals(self, num_weeks: int = 8, now: Optional[dt.datetime] = None) -> List[float]:
        self._require_processed()
        current_week = week_start(self.today(now))
        totals: List[float] = []
        for offset in range(num_weeks - 1, -1, -1):
            first = current_week - dt.timedelta(weeks=offset)
            total = 0.0
            for day in iter_days(first, first + dt.timedelta(days=6)):
                total += sum(
                    entry.duration or 0.0
                    for entry in self.entries_for(day)
                    if self.policy(entry.name).counts_as_work
                )
            totals.append(total)
        return totals

    def historical_hours(
        self,
        timeframe: str = "month",
        year: Optional[int] = None,
        now: Optional[dt.datetime] = None,
    ) -> List[BarChartRow]:
        self._require_processed()
        today = self.today(now)
        weekly_target = self.settings.workweek_hours
        rows: List[BarChartRow] = []
        if timeframe == "month":
            current_week = week_start(today)
            for offset in range(5, -1, -1):
                first = current_week - dt.timedelta(weeks=offset)
                breakdown = self.week_breakdown(first)
                rows.append(
                    BarChartRow(
                        label=f"W{iso_week(first)}",
                        hours=breakdown.work_hours,
                        target=weekly_target,
                        special_days=breakdown.special_days,
                    )
                )
        elif timeframe == "year":
            target_year = year or today.year
            for month in range(1, 13):
                breakdown = self.month_breakdown(target_year, month)
                rows.append(
                    BarChartRow(
                        label=MONTH_LABELS[month - 1],
                        hours=breakdown.work_hours,
                        target=weekly_target * WEEKS_PER_MONTH,
                        special_days=breakdown.special_days,
                    )
                )
        else:
            for offset in range(5, -1, -1):
                target_year = today.year - offset
                rows.append(BarChartRow(label=str(target_year), hours=self.year_hours(target_year)))
        return rows

    def available_years(self) -> List[int]:
        return sorted({parse_day(key).year for key in self.daily}, reverse=True)

    def available_months(self, year: int) -> List[int]:
        return sorted({parse_day(key).month for key in self.daily if parse_day(key).year == year})

    # -- day views -------------------------------------------------------

    def day_summaries(self, start, end) -> List[DaySummary]:
        self._require_processed()
        summaries: List[DaySummary] = []
        for day in iter_days(parse_day(start), parse_day(end)):
            entries = self.entries_for(day)
            totals = self._day_totals(entries)
            info = self.holiday(day)
            summaries.append(
                DaySummary(
                    day=day,
                    goal=self.effective_goal(day),
                    worked_hours=totals.worked + totals.accumulated,
                    withdrawn_hours=totals.withdrawn,
                    flextime=sum(entry.flextime or 0.0 for entry in entries),
                    balance_delta=self.day_balance(day),
                    is_weekend=not self.is_work_day(day),
                    holiday_type=info.type if info else None,
                    holiday_description=info.description if info else None,
                    half_day=bool(info and info.half_day),
                    entry_count=len(entries),
                )
            )
        return summaries

    def overview(self, now: Optional[dt.datetime] = None) -> BalanceOverview:
        current = self.now(now)
        return BalanceOverview(
            as_of=current,
            balance_start_date=self.settings.balance_start_date,
            current_balance=self.current_balance(current),
            today_hours=self.today_hours(current),
            week_hours=self.current_week_hours(current),
            ongoing_hours=self.ongoing_hours(current),
            active_entries=len(self.active_entries),
        )

    def contextual_data(self, now: Optional[dt.datetime] = None) -> ContextualData:
        self._require_processed()
        today = self.today(now)
        return self.memoized("contextual", today, lambda: self._contextual_data(today))

    def _contextual_data(self, today: dt.date) -> ContextualData:
        today_key = day_key(today)
        consecutive = 0
        for key in sorted(self.daily, reverse=True):
            if key >= today_key:
                continue
            if sum(entry.flextime or 0.0 for entry in self.daily[key]) > 0:
                consecutive += 1
            else:
                break

        same_weekday = [
            key for key in self.daily if key < today_key and parse_day(key).weekday() == today.weekday()
        ]
        same_day_total = sum(entry.duration or 0.0 for key in same_weekday for entry in self.daily[key])
        same_day_avg = same_day_total / len(same_weekday) if same_weekday else 0.0

        last_week = week_start(today) - dt.timedelta(weeks=1)
        last_week_hours = sum(
            entry.duration or 0.0
            for day in iter_days(last_week, last_week + dt.timedelta(days=6))
            for entry in self.entries_for(day)
        )
        return ContextualData(
            consecutive_flextime_days=consecutive,
            same_day_avg=same_day_avg,
            last_week_hours=last_week_hours,
        )

    def special_day_stats(
        self,
        type_id: str,
        year: Optional[int] = None,
        now: Optional[dt.datetime] = None,
    ) -> SpecialDayCount:
        """Days of one type within a calendar year or the last 365 days."""
        self._require_processed()
        policy = self.policy(type_id)
        today = self.today(now)
        target_year = year or today.year
        rolling = target_year == today.year and policy.counting_period == "rolling365"
        if rolling:
            window_start, window_end = today - dt.timedelta(days=365), today
        else:
            window_start, window_end = dt.date(target_year, 1, 1), dt.date(target_year, 12, 31)

        seen = set()
        for key, entries in self.daily.items():
            day = parse_day(key)
            if not window_start <= day <= window_end:
                continue
            for entry in entries:
                if entry.category != policy.id:
                    continue
                # Partial sick days mean work happened; only full days count.
                if policy.reduces_goal and entry.duration:
                    continue
                seen.add(key)
        for key, info in self.holidays.items():
            if info.type == policy.id and window_start <= parse_day(key) <= window_end:
                seen.add(key)
        return SpecialDayCount(
            type=policy.id,
            count=len(seen),
            max=policy.max_days_per_year,
            is_rolling=rolling,
            period_label="365d" if rolling else str(target_year),
        )

    def check_rest_period_violation(self, day) -> RestPeriodCheck:
        self._require_processed()
        day = parse_day(day)
        previous = self.entries_for(day - dt.timedelta(days=1))
        current = self.entries_for(day)
        if not previous or not current:
            return RestPeriodCheck(violated=False)
        last_end = max(entry.ended_at for entry in previous)
        first_start = min(entry.started_at for entry in current)
        rest_hours = hours_between(last_end, first_start)
        return RestPeriodCheck(
            violated=rest_hours < self.settings.minimum_rest_hours,
            rest_hours=rest_hours,
            previous_day_end=last_end,
            current_day_start=first_start,
        )

    def check_comment_required(self, day, category: str, additional_hours: float) -> CommentRequirement:
        """Whether stopping a timer now pushes the day past goal + threshold."""
        self._require_processed()
        day = parse_day(day)
        if not self.settings.enable_overtime_comments:
            return CommentRequirement(required=False)
        if day < self.settings.overtime_comment_effective_date:
            return CommentRequirement(required=False)
        if not self.policy(category).counts_as_work:
            return CommentRequirement(required=False)
        goal = self.goal(day)
        worked = sum(
            entry.duration or 0.0 for entry in self.entries_for(day) if self.policy(entry.name).counts_as_work
        )
        over = worked + additional_hours - (goal + self.settings.overtime_comment_threshold)
        return CommentRequirement(required=over > 0, hours_over_threshold=max(0.0, over), daily_goal=goal)

    # -- aggregation and validation ---------------------------------------

    def statistics(
        self,
        timeframe: str = "total",
        year: Optional[int] = None,
        month: Optional[int] = None,
        now: Optional[dt.datetime] = None,
    ) -> TimeStatistics:
        self._require_processed()
        return build_statistics(self, timeframe, year=year, month=month, today=self.today(now))

    def averages(self, now: Optional[dt.datetime] = None) -> AveragesData:
        self._require_processed()
        today = self.today(now)
        return self.memoized("averages", today, lambda: build_averages(self, today))

    def validate(self, now: Optional[dt.datetime] = None) -> ValidationResults:
        self._require_processed()
        return validate_engine(self, self.now(now))


__all__ = ["BalanceEngine", "RejectedEntry", "HolidayReader"]
