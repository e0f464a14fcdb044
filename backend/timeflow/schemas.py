from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from typing_extensions import Literal

from pydantic import BaseModel, ConfigDict, Field, model_serializer

Severity = Literal["error", "warning", "info"]
Timeframe = Literal["total", "year", "month"]


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class EntrySnapshot(_Snapshot):
    name: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[float] = None


class ValidationIssue(_Snapshot):
    severity: Severity
    type: str
    description: str
    date: str
    entry: Optional[EntrySnapshot] = None


class ValidationStats(_Snapshot):
    total_entries: int = 0
    entries_checked: int = 0
    entries_with_issues: int = 0


class ValidationIssues(_Snapshot):
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    info: List[ValidationIssue] = Field(default_factory=list)
    stats: ValidationStats = Field(default_factory=ValidationStats)


class ValidationResults(_Snapshot):
    has_errors: bool
    has_warnings: bool
    has_info: bool
    issues: ValidationIssues
    generated_at: dt.datetime

    @model_serializer(mode="wrap", when_used="json")
    def _serialize(self, handler) -> dict[str, Any]:
        data = handler(self)
        data["generated_at"] = _serialize_datetime(self.generated_at)
        return data


class HolidayLoadStatus(_Snapshot):
    success: bool = False
    message: str = ""
    count: int = 0
    warning: Optional[str] = None
    parse_errors: int = 0
    duplicates: List[str] = Field(default_factory=list)
    invalid_time_ranges: List[str] = Field(default_factory=list)


class DayTypeStats(_Snapshot):
    count: int = 0
    hours: float = 0.0
    planned: int = 0
    max: Optional[int] = None


class TimeStatistics(_Snapshot):
    timeframe: Timeframe
    total_hours: float
    total_flextime: float
    by_type: Dict[str, DayTypeStats]
    work_days: int
    weekend_days: int
    weekend_hours: float
    avg_daily_hours: float
    workload_percent: float


class AveragesData(_Snapshot):
    avg_daily: float
    avg_weekly: float
    total_days_worked: int
    total_hours_worked: float


class ContextualData(_Snapshot):
    consecutive_flextime_days: int
    same_day_avg: float
    last_week_hours: float


class SpecialDayHours(_Snapshot):
    type: str
    hours: float


class HoursBreakdown(_Snapshot):
    work_hours: float
    special_days: List[SpecialDayHours] = Field(default_factory=list)


class BarChartRow(_Snapshot):
    label: str
    hours: float
    target: Optional[float] = None
    special_days: List[SpecialDayHours] = Field(default_factory=list)


class SpecialDayCount(_Snapshot):
    type: str
    count: int
    max: Optional[int]
    is_rolling: bool
    period_label: str


class RestPeriodCheck(_Snapshot):
    violated: bool
    rest_hours: Optional[float] = None
    previous_day_end: Optional[dt.datetime] = None
    current_day_start: Optional[dt.datetime] = None


class CommentRequirement(_Snapshot):
    required: bool
    hours_over_threshold: float = 0.0
    daily_goal: float = 0.0


class DaySummary(_Snapshot):
    day: dt.date
    goal: float
    worked_hours: float
    withdrawn_hours: float
    flextime: float
    balance_delta: float
    is_weekend: bool
    holiday_type: Optional[str] = None
    holiday_description: Optional[str] = None
    half_day: bool = False
    entry_count: int = 0


class BalanceOverview(_Snapshot):
    as_of: dt.datetime
    balance_start_date: dt.date
    current_balance: float
    today_hours: float
    week_hours: float
    ongoing_hours: float
    active_entries: int

    @model_serializer(mode="wrap", when_used="json")
    def _serialize(self, handler) -> dict[str, Any]:
        data = handler(self)
        data["as_of"] = _serialize_datetime(self.as_of)
        return data


class TimeEntryPayload(BaseModel):
    name: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class EntriesReplacedResponse(BaseModel):
    count: int
    active: int


class SettingsUpdateRequest(BaseModel):
    base_workday: Optional[float] = None
    base_workweek: Optional[float] = None
    work_percent: Optional[float] = Field(default=None, gt=0, le=1)
    lunch_break_minutes: Optional[float] = Field(default=None, ge=0)
    work_days: Optional[List[int]] = None
    half_day_hours: Optional[float] = None
    half_day_mode: Optional[Literal["fixed", "percentage"]] = None
    balance_start_date: Optional[dt.date] = None
    starting_flextime_balance: Optional[float] = None
    holidays_file_path: Optional[str] = None
