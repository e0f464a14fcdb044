from __future__ import annotations

import datetime as dt
import os
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Literal

from .policies import DEFAULT_SPECIAL_DAY_BEHAVIORS, DayTypePolicy

DEFAULT_WORK_DAYS = [0, 1, 2, 3, 4]


def _parse_weekdays(value):
    if isinstance(value, str):
        return [int(part) for part in value.split(",") if part.strip()]
    return value


def _check_weekdays(value: List[int]) -> List[int]:
    for day in value:
        if day < 0 or day > 6:
            raise ValueError(f"Weekday out of range (0=Monday ... 6=Sunday): {day}")
    return sorted(set(value))


class ValidationThresholds(BaseModel):
    long_running_timer_hours: float = 12.0
    very_long_session_hours: float = 16.0
    max_duration_hours: float = 24.0
    high_weekly_total_hours: float = 60.0


class WorkSchedulePeriod(BaseModel):
    """A work schedule that applies from ``effective_from`` until the next period."""

    effective_from: dt.date
    work_percent: float = 1.0
    base_workday: float = 7.5
    base_workweek: float = 37.5
    work_days: List[int] = Field(default_factory=lambda: list(DEFAULT_WORK_DAYS))
    half_day_hours: float = 4.0

    @field_validator("work_days", mode="before")
    @classmethod
    def _split_work_days(cls, value):
        return _parse_weekdays(value)

    @field_validator("work_days")
    @classmethod
    def _validate_work_days(cls, value: List[int]) -> List[int]:
        return _check_weekdays(value)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="TF_", case_sensitive=False, extra="ignore")
    """Work schedule, day-type policies and thresholds for the balance engine."""

    app_name: str = "TimeFlow"
    host: str = "127.0.0.1"
    port: int = 8080
    timezone: str = os.getenv("TZ", "Europe/Oslo")
    holidays_file_path: Optional[str] = None

    base_workday: float = 7.5
    base_workweek: float = 37.5
    work_percent: float = Field(default=1.0, gt=0, le=1)
    lunch_break_minutes: float = Field(default=0, ge=0)
    work_days: List[int] = Field(default_factory=lambda: list(DEFAULT_WORK_DAYS))
    half_day_hours: float = 4.0
    half_day_mode: Literal["fixed", "percentage"] = "fixed"

    balance_start_date: dt.date = dt.date(2025, 1, 1)
    starting_flextime_balance: float = 0.0

    workdays_per_week: int = 5
    workdays_per_month: int = 21
    workdays_per_year: int = 260

    special_day_behaviors: List[DayTypePolicy] = Field(
        default_factory=lambda: list(DEFAULT_SPECIAL_DAY_BEHAVIORS)
    )
    work_schedule_history: List[WorkSchedulePeriod] = Field(default_factory=list)
    validation_thresholds: ValidationThresholds = Field(default_factory=ValidationThresholds)

    minimum_rest_hours: float = 11.0
    enable_overtime_comments: bool = False
    overtime_comment_threshold: float = 0.5
    overtime_comment_effective_date: dt.date = dt.date(2025, 1, 1)

    @field_validator("work_days", mode="before")
    @classmethod
    def _split_work_days(cls, value):
        return _parse_weekdays(value)

    @field_validator("work_days")
    @classmethod
    def _validate_work_days(cls, value: List[int]) -> List[int]:
        return _check_weekdays(value)

    @property
    def workday_hours(self) -> float:
        return self.base_workday * self.work_percent

    @property
    def workweek_hours(self) -> float:
        return self.base_workweek * self.work_percent


settings = Settings()
