from __future__ import annotations


class TimeflowError(Exception):
    """Base class for errors raised by the balance engine."""


class EngineStateError(TimeflowError, RuntimeError):
    """A query ran before the engine processed its entries."""


__all__ = ["TimeflowError", "EngineStateError"]
