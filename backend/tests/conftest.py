from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Generator, List, Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from timeflow.config import Settings
from timeflow.engine import BalanceEngine
from timeflow.main import app
from timeflow.state import RuntimeState

OSLO = ZoneInfo("Europe/Oslo")

# Wednesday, noon local time.
FIXED_NOW = dt.datetime(2025, 6, 4, 12, 0, tzinfo=OSLO)


@pytest.fixture()
def now() -> dt.datetime:
    return FIXED_NOW


@pytest.fixture()
def settings_factory() -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        overrides.setdefault("timezone", "Europe/Oslo")
        overrides.setdefault("holidays_file_path", None)
        return Settings(**overrides)

    return factory


@pytest.fixture()
def engine_factory(settings_factory) -> Callable[..., BalanceEngine]:
    def factory(
        entries: List[Any],
        holidays: Optional[str] = None,
        now: dt.datetime = FIXED_NOW,
        **overrides: Any,
    ) -> BalanceEngine:
        engine = BalanceEngine(entries, settings_factory(**overrides), clock=lambda: now)
        if holidays:
            engine.load_holidays_text(holidays)
        engine.process_entries()
        return engine

    return factory


@pytest.fixture(scope="function")
def client(settings_factory) -> Generator[TestClient, None, None]:
    original_state = app.state.runtime_state
    original_clock = app.state.clock
    app.state.runtime_state = RuntimeState(settings_factory())
    app.state.clock = lambda: FIXED_NOW
    with TestClient(app) as c:
        yield c
    app.state.runtime_state = original_state
    app.state.clock = original_clock
