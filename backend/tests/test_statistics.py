from __future__ import annotations

import pytest

from timeflow.policies import DEFAULT_SPECIAL_DAY_BEHAVIORS, DayTypePolicy


HOLIDAYS = """
- 2025-05-17: helligdag: Grunnlovsdag
- 2025-06-20: ferie: Summer
- 2025-06-23: ferie: Summer
"""


def _entry(name: str, start: str, end: str) -> dict:
    return {"name": name, "start_time": start, "end_time": end}


@pytest.fixture()
def engine(engine_factory):
    entries = [
        _entry("sykemelding", "2025-05-20T08:00:00", "2025-05-20T08:00:00"),
        _entry("jobb", "2025-05-31T10:00:00", "2025-05-31T12:00:00"),
        _entry("jobb", "2025-06-02T08:00:00", "2025-06-02T16:00:00"),
        _entry("jobb", "2025-06-02T16:30:00", "2025-06-02T17:30:00"),
        _entry("kurs", "2025-06-03T09:00:00", "2025-06-03T15:00:00"),
        _entry("Block 1", "2025-06-04T08:00:00", "2025-06-04T10:00:00"),
    ]
    return engine_factory(entries, holidays=HOLIDAYS)


def test_total_statistics(engine):
    stats = engine.statistics("total")

    assert stats.timeframe == "total"
    assert stats.total_hours == pytest.approx(19.0)
    assert stats.work_days == 4
    assert stats.weekend_days == 1
    assert stats.weekend_hours == pytest.approx(2.0)
    assert stats.avg_daily_hours == pytest.approx(19.0 / 5)
    assert stats.workload_percent == 0

    jobb = stats.by_type["jobb"]
    # Unknown "Block 1" hours land in the work bucket.
    assert (jobb.count, jobb.hours) == (3, pytest.approx(13.0))
    assert (stats.by_type["kurs"].count, stats.by_type["kurs"].hours) == (1, pytest.approx(6.0))
    assert stats.by_type["sykemelding"].count == 1
    assert stats.by_type["ferie"].count == 0
    assert stats.by_type["ferie"].planned == 2
    assert stats.by_type["ferie"].max == 25
    assert "helligdag" not in stats.by_type


def test_total_flextime_matches_entries(engine):
    stats = engine.statistics("total")
    expected = sum(item.flextime for entries in engine.daily.values() for item in entries)
    assert stats.total_flextime == pytest.approx(expected)


def test_month_statistics_and_workload(engine):
    stats = engine.statistics("month")

    assert stats.total_hours == pytest.approx(17.0)
    assert stats.work_days == 3
    assert stats.by_type["sykemelding"].count == 0
    assert stats.workload_percent == pytest.approx(17.0 / (21 * 7.5) * 100)

    may = engine.statistics("month", month=5)
    assert may.total_hours == pytest.approx(2.0)
    assert may.by_type["ferie"].planned == 0


def test_year_workload_discounts_declared_days(engine_factory):
    entries = [_entry("jobb", "2025-06-02T08:00:00", "2025-06-02T16:00:00")]
    engine = engine_factory(entries, holidays="- 2025-06-02: ferie: Worked anyway\n", workdays_per_year=100)

    stats = engine.statistics("year")
    assert stats.workload_percent == pytest.approx(8.0 / (99 * 7.5) * 100)


def test_unknown_timeframe_is_rejected(engine):
    with pytest.raises(ValueError):
        engine.statistics("fortnight")


def test_user_defined_absence_type_gets_own_bucket(engine_factory):
    policies = [*DEFAULT_SPECIAL_DAY_BEHAVIORS, DayTypePolicy(id="Foreldrepermisjon", no_hours_required=True)]
    entries = [_entry("foreldrepermisjon", "2025-06-02T08:00:00", "2025-06-02T12:00:00")]
    engine = engine_factory(entries, special_day_behaviors=policies)

    stats = engine.statistics("total")
    assert stats.by_type["foreldrepermisjon"].count == 1
    assert stats.by_type["jobb"].count == 0


def test_averages(engine):
    averages = engine.averages()

    # Only 2025-06-02 is a past weekday with work-type hours.
    assert averages.total_days_worked == 1
    assert averages.total_hours_worked == pytest.approx(9.0)
    assert averages.avg_daily == pytest.approx(9.0)
    assert averages.avg_weekly == pytest.approx(45.0)


def test_averages_without_history(engine_factory):
    averages = engine_factory([]).averages()
    assert averages.avg_daily == 0
    assert averages.avg_weekly == 0
