from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .engine import BalanceEngine
from .errors import EngineStateError
from .schemas import (
    AveragesData,
    BalanceOverview,
    DaySummary,
    EntriesReplacedResponse,
    HolidayLoadStatus,
    SettingsUpdateRequest,
    TimeEntryPayload,
    TimeStatistics,
    Timeframe,
    ValidationResults,
)
from .services import check_range, engine_for_state, replace_entries, update_runtime_settings
from .state import RuntimeState

runtime_state = RuntimeState(settings)

app = FastAPI(title=settings.app_name)
app.state.runtime_state = runtime_state
app.state.clock = None
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://127.0.0.1:5173", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineStateError)
async def engine_state_error(request: Request, exc: EngineStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def get_engine(request: Request) -> BalanceEngine:
    state: RuntimeState = request.app.state.runtime_state
    engine, _ = await engine_for_state(state, request.app.state.clock)
    return engine


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/entries", response_model=list[TimeEntryPayload])
def read_entries(request: Request) -> list[TimeEntryPayload]:
    state: RuntimeState = request.app.state.runtime_state
    return [
        TimeEntryPayload(name=entry.name, start_time=entry.start_time, end_time=entry.end_time)
        for entry in state.entries
    ]


@app.put("/entries", response_model=EntriesReplacedResponse)
def write_entries(payload: list[TimeEntryPayload], request: Request) -> EntriesReplacedResponse:
    state: RuntimeState = request.app.state.runtime_state
    return EntriesReplacedResponse(**replace_entries(state, payload))


@app.get("/settings")
def read_settings(request: Request) -> dict[str, Any]:
    state: RuntimeState = request.app.state.runtime_state
    return state.settings.model_dump(mode="json")


@app.put("/settings")
def write_settings(payload: SettingsUpdateRequest, request: Request) -> dict[str, Any]:
    state: RuntimeState = request.app.state.runtime_state
    updates = payload.model_dump(exclude_unset=True)
    return update_runtime_settings(state, updates).model_dump(mode="json")


@app.get("/balance", response_model=BalanceOverview)
def balance(engine: BalanceEngine = Depends(get_engine)) -> BalanceOverview:
    return engine.overview()


@app.get("/days", response_model=list[DaySummary])
def day_range(
    from_date: dt.date,
    to_date: dt.date,
    engine: BalanceEngine = Depends(get_engine),
) -> list[DaySummary]:
    check_range(from_date, to_date)
    return engine.day_summaries(from_date, to_date)


@app.get("/statistics", response_model=TimeStatistics)
def statistics(
    timeframe: Timeframe = "total",
    year: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    engine: BalanceEngine = Depends(get_engine),
) -> TimeStatistics:
    return engine.statistics(timeframe, year=year, month=month)


@app.get("/averages", response_model=AveragesData)
def averages(engine: BalanceEngine = Depends(get_engine)) -> AveragesData:
    return engine.averages()


@app.get("/validation", response_model=ValidationResults)
def validation(engine: BalanceEngine = Depends(get_engine)) -> ValidationResults:
    return engine.validate()


@app.get("/holidays/status", response_model=HolidayLoadStatus)
async def holidays_status(request: Request) -> HolidayLoadStatus:
    state: RuntimeState = request.app.state.runtime_state
    _, load_status = await engine_for_state(state, request.app.state.clock)
    return load_status
