from __future__ import annotations

import datetime as dt

import pytest

from timeflow.config import WorkSchedulePeriod
from timeflow.goals import GoalResolver
from timeflow.holidays import parse_holiday_lines
from timeflow.models import HolidayInfo
from timeflow.policies import DayTypePolicy, PolicyTable


def _resolver(settings, holidays: str = "") -> GoalResolver:
    parsed = parse_holiday_lines(holidays)
    return GoalResolver(settings, parsed.holidays, PolicyTable(settings.special_day_behaviors))


def test_regular_work_day_uses_base_workday(settings_factory):
    resolver = _resolver(settings_factory())
    assert resolver.goal(dt.date(2025, 6, 2)) == pytest.approx(7.5)


def test_work_percent_scales_goal(settings_factory):
    resolver = _resolver(settings_factory(work_percent=0.8))
    assert resolver.goal("2025-06-02") == pytest.approx(6.0)


def test_weekend_is_zero_even_with_declarations(settings_factory):
    holidays = "- 2025-06-07: ferie:half: Saturday trip\n- 2025-06-08: sykemelding: Sick\n"
    resolver = _resolver(settings_factory(), holidays)
    for day in (dt.date(2025, 6, 7), dt.date(2025, 6, 8)):
        assert resolver.goal(day) == 0


def test_custom_work_days(settings_factory):
    resolver = _resolver(settings_factory(work_days="0,1,2,3"))
    assert resolver.goal(dt.date(2025, 6, 5)) == pytest.approx(7.5)
    assert resolver.goal(dt.date(2025, 6, 6)) == 0


@pytest.mark.parametrize("kind", ["ferie", "velferdspermisjon", "helligdag", "egenmelding"])
def test_zero_requirement_declarations(settings_factory, kind):
    resolver = _resolver(settings_factory(), f"- 2025-06-10: {kind}: Away\n")
    assert resolver.goal(dt.date(2025, 6, 10)) == 0
    assert resolver.goal(dt.date(2025, 6, 11)) == pytest.approx(7.5)


def test_half_day_fixed_and_percentage(settings_factory):
    holidays = "- 2025-12-24: jobb:half: Christmas Eve\n"
    fixed = _resolver(settings_factory(half_day_hours=4.0), holidays)
    assert fixed.goal(dt.date(2025, 12, 24)) == pytest.approx(4.0)

    percentage = _resolver(settings_factory(half_day_mode="percentage"), holidays)
    assert percentage.goal(dt.date(2025, 12, 24)) == pytest.approx(3.75)


def test_half_day_of_zero_requirement_type_is_still_zero(settings_factory):
    resolver = _resolver(settings_factory(), "- 2025-06-10: ferie:half: Long weekend\n")
    assert resolver.goal(dt.date(2025, 6, 10)) == 0


def test_reduce_goal_declaration_keeps_standard_goal(settings_factory):
    resolver = _resolver(settings_factory(), "- 2025-06-10: sykemelding: Doctor\n")
    assert resolver.goal(dt.date(2025, 6, 10)) == pytest.approx(7.5)


def test_partial_annet_keeps_goal(settings_factory):
    holidays = (
        "- 2025-06-10: annet: Moving day\n"
        "- 2025-06-11: annet:09:00-11:00: Dentist\n"
    )
    resolver = _resolver(settings_factory(), holidays)
    assert resolver.goal(dt.date(2025, 6, 10)) == 0
    assert resolver.goal(dt.date(2025, 6, 11)) == pytest.approx(7.5)


def test_time_ranged_declaration_follows_partial_effect(settings_factory):
    seminar = DayTypePolicy(id="seminar", label="Seminar", no_hours_required=True, partial_effect="reduce_goal")
    vacation = DayTypePolicy(id="ferie", label="Ferie", no_hours_required=True)
    settings = settings_factory(special_day_behaviors=[seminar, vacation])
    holidays = {
        "2025-06-10": HolidayInfo(type="seminar", description="All day"),
        "2025-06-11": HolidayInfo(type="seminar", description="Morning", start_time="09:00", end_time="11:00"),
        "2025-06-12": HolidayInfo(type="ferie", description="Trip", start_time="09:00", end_time="11:00"),
    }
    resolver = GoalResolver(settings, holidays, PolicyTable(settings.special_day_behaviors))

    assert resolver.goal(dt.date(2025, 6, 10)) == 0
    assert resolver.goal(dt.date(2025, 6, 11)) == pytest.approx(7.5)
    assert resolver.policy_for_holiday(holidays["2025-06-11"]).reduces_goal is True
    # Without a partial effect the range does not matter.
    assert resolver.goal(dt.date(2025, 6, 12)) == 0


def test_schedule_history_picks_active_period(settings_factory):
    history = [
        WorkSchedulePeriod(effective_from=dt.date(2025, 3, 1), work_percent=0.5, work_days=[0, 1, 2]),
        WorkSchedulePeriod(effective_from=dt.date(2025, 1, 1), work_percent=1.0),
    ]
    resolver = _resolver(settings_factory(work_schedule_history=history))

    assert resolver.goal(dt.date(2025, 2, 7)) == pytest.approx(7.5)  # Friday, full time
    assert resolver.goal(dt.date(2025, 3, 5)) == pytest.approx(3.75)  # Wednesday, 50 %
    assert resolver.goal(dt.date(2025, 3, 6)) == 0  # Thursday is off
    # Before every period the earliest one applies.
    assert resolver.goal(dt.date(2024, 12, 31)) == pytest.approx(7.5)


def test_goal_is_stable_across_calls(settings_factory):
    resolver = _resolver(settings_factory(), "- 2025-06-10: ferie: Trip\n")
    first = [resolver.goal(dt.date(2025, 6, day)) for day in range(1, 15)]
    second = [resolver.goal(dt.date(2025, 6, day)) for day in range(1, 15)]
    assert first == second
