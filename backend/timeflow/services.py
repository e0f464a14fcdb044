from __future__ import annotations

import asyncio
import datetime as dt
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from pydantic import ValidationError

from .config import Settings
from .engine import BalanceEngine
from .schemas import HolidayLoadStatus, TimeEntryPayload
from .state import RuntimeState

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]


def _read_text(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def holiday_reader(path: str):
    """Awaitable reader for the declaration file; ``None`` when it is absent."""

    async def read() -> Optional[str]:
        return await asyncio.to_thread(_read_text, Path(path).expanduser())

    return read


async def build_engine(
    entries: List[Any],
    config: Settings,
    clock: Optional[Clock] = None,
) -> Tuple[BalanceEngine, HolidayLoadStatus]:
    engine = BalanceEngine(entries, config, clock=clock)
    if config.holidays_file_path:
        load_status = await engine.load_holidays(holiday_reader(config.holidays_file_path))
    else:
        load_status = HolidayLoadStatus(success=True, message="No holiday file configured")
    engine.process_entries()
    return engine, load_status


async def engine_for_state(state: RuntimeState, clock: Optional[Clock] = None) -> Tuple[BalanceEngine, HolidayLoadStatus]:
    entries, config = state.snapshot()
    return await build_engine(entries, config, clock)


def replace_entries(state: RuntimeState, payload: List[TimeEntryPayload]) -> Dict[str, int]:
    entries = state.replace_entries(item.model_dump() for item in payload)
    active = sum(1 for entry in entries if entry.start_time and entry.is_active)
    logger.info("Replaced entry list with %d entries (%d active)", len(entries), active)
    return {"count": len(entries), "active": active}


def update_runtime_settings(state: RuntimeState, updates: Dict[str, Any]) -> Settings:
    try:
        updated = state.apply(updates)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    logger.info("Settings updated: %s", ", ".join(sorted(updates)))
    return updated


def check_range(from_date: dt.date, to_date: dt.date) -> None:
    if to_date < from_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid range")
