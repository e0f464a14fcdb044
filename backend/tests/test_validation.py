from __future__ import annotations

from typing import List, Optional

from timeflow.models import TimeEntry
from timeflow.schemas import ValidationIssue


def _entry(name: str, start: Optional[str], end: Optional[str] = None) -> dict:
    return {"name": name, "start_time": start, "end_time": end}


def _types(issues: List[ValidationIssue]) -> List[str]:
    return [issue.type for issue in issues]


def test_clean_data_has_no_issues(engine_factory):
    engine = engine_factory([_entry("jobb", "2025-06-04T08:00:00", "2025-06-04T11:00:00")])
    result = engine.validate()

    assert result.has_errors is False
    assert result.has_warnings is False
    assert result.has_info is False
    assert result.issues.stats.total_entries == 1
    assert result.issues.stats.entries_checked == 1
    assert result.issues.stats.entries_with_issues == 0


def test_duration_checks(engine_factory):
    engine = engine_factory(
        [
            _entry("jobb", "2025-06-01T00:00:00", "2025-06-02T02:00:00"),
            _entry("jobb", "2025-06-02T05:00:00", "2025-06-02T22:00:00"),
            _entry("jobb", "2025-06-03T09:00:00", "2025-06-03T09:00:00"),
        ]
    )
    issues = engine.validate().issues

    assert "Excessive Duration" in _types(issues.errors)
    excessive = [issue for issue in issues.errors if issue.type == "Excessive Duration"][0]
    assert excessive.date == "2025-06-01"
    assert "26.0h" in excessive.description

    assert _types(issues.warnings) == ["Very Long Session"]
    assert "17.0h" in issues.warnings[0].description
    assert _types(issues.info) == ["Zero Duration"]


def test_overlapping_entries(engine_factory):
    engine = engine_factory(
        [
            _entry("jobb", "2025-06-04T08:00:00", "2025-06-04T10:00:00"),
            _entry("kurs", "2025-06-04T09:30:00", "2025-06-04T11:00:00"),
        ]
    )
    result = engine.validate()

    [overlap] = result.issues.errors
    assert overlap.type == "Overlapping Entries"
    assert overlap.description == "Entries overlap by 30 minutes"
    assert overlap.entry.name == "jobb -> kurs"
    assert result.issues.stats.entries_with_issues == 2


def test_missing_fields(engine_factory):
    engine = engine_factory(
        [
            _entry("", "2025-06-04T08:00:00", "2025-06-04T09:00:00"),
            _entry("jobb", None, "2025-06-04T10:00:00"),
            _entry("jobb", "2025-06-04T10:00:00", "not-a-time"),
        ]
    )
    issues = engine.validate().issues

    assert _types(issues.errors) == ["Missing Entry Name", "Missing Start Time", "Invalid Timestamp"]
    assert "not-a-time" in issues.errors[2].description
    assert issues.stats.total_entries == 3


def test_entry_record_without_name_is_reported(engine_factory):
    entry = TimeEntry(name=None, start_time="2025-06-02T08:00:00", end_time="2025-06-02T09:00:00")
    engine = engine_factory([entry])
    errors = engine.validate().issues.errors

    assert _types(errors) == ["Missing Entry Name"]
    assert errors[0].entry.name == ""


def test_future_entries_are_informational(engine_factory):
    engine = engine_factory([_entry("jobb", "2025-06-10T08:00:00", "2025-06-10T12:00:00")])
    issues = engine.validate().issues

    assert _types(issues.info) == ["Future Date"]
    assert issues.info[0].date == "2025-06-10"
    assert issues.errors == []


def test_missing_workday_entries(engine_factory):
    entries = [_entry("jobb", "2025-05-29T08:00:00", "2025-05-29T16:00:00")]
    engine = engine_factory(entries, holidays="- 2025-06-02: ferie: Long weekend\n")
    warnings = engine.validate().issues.warnings

    # Friday and Tuesday are missing; the weekend, the declared Monday and today are not.
    assert _types(warnings) == ["Missing Entry", "Missing Entry"]
    assert [issue.date for issue in warnings] == ["2025-05-30", "2025-06-03"]


def test_sick_declaration_covers_missing_day(engine_factory):
    entries = [_entry("jobb", "2025-06-02T08:00:00", "2025-06-02T16:00:00")]
    engine = engine_factory(entries, holidays="- 2025-06-03: sykemelding: Flu\n")
    assert engine.validate().issues.warnings == []


def test_high_weekly_total(engine_factory):
    entries = [
        _entry("jobb", "2025-06-02T08:00:00", "2025-06-02T16:00:00"),
        _entry("jobb", "2025-06-03T08:00:00", "2025-06-03T16:00:00"),
    ]
    engine = engine_factory(entries, validation_thresholds={"high_weekly_total_hours": 10})
    info = engine.validate().issues.info

    assert _types(info) == ["High Weekly Total"]
    assert "(16.0h)" in info[0].description
    assert info[0].date == "2025-06-04"


def test_unknown_types_and_balance_start(engine_factory):
    entries = [
        _entry("Block 1", "2025-06-02T08:00:00", "2025-06-02T16:00:00"),
        _entry("Block 2", "2025-06-03T08:00:00", "2025-06-03T16:00:00"),
    ]
    engine = engine_factory(entries, balance_start_date="2025-06-03")
    info = engine.validate().issues.info

    assert _types(info) == ["Unknown Entry Types", "Balance Start After First Entry"]
    assert "Block 1, Block 2" in info[0].description
    assert "2025-06-02" in info[1].description


def test_validation_does_not_change_results(engine_factory):
    engine = engine_factory([_entry("jobb", "2025-06-02T16:00:00", "2025-06-02T08:00:00")])
    before = engine.running_balance("2025-06-02", "2025-06-02")
    engine.validate()
    assert engine.running_balance("2025-06-02", "2025-06-02") == before
    assert len(engine.entries_for("2025-06-02")) == 1


def test_generated_at_serializes_as_utc(engine_factory):
    engine = engine_factory([])
    payload = engine.validate().model_dump(mode="json")
    assert payload["generated_at"] == "2025-06-04T10:00:00+00:00"
