from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from typing_extensions import Literal

FlextimeEffect = Literal["none", "withdraw", "accumulate", "reduce_goal"]
CountingPeriod = Literal["calendar", "rolling365"]


class DayTypePolicy(BaseModel):
    """How a category of entries or declared days affects goals and balances."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    no_hours_required: bool = False
    flextime_effect: FlextimeEffect = "none"
    is_work_type: bool = False
    include_in_stats: bool = True
    max_days_per_year: Optional[int] = None
    counting_period: CountingPeriod = "calendar"
    # Effect used instead when a declaration carries a time range.
    partial_effect: Optional[FlextimeEffect] = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        return str(value).strip().lower()

    @property
    def is_withdraw(self) -> bool:
        return self.flextime_effect == "withdraw"

    @property
    def reduces_goal(self) -> bool:
        return self.flextime_effect == "reduce_goal"

    @property
    def accumulates(self) -> bool:
        return self.flextime_effect == "accumulate"

    @property
    def counts_as_work(self) -> bool:
        return self.is_work_type or self.accumulates

    @property
    def releases_goal(self) -> bool:
        return self.flextime_effect == "none" and self.no_hours_required

    @property
    def excluded_from_hour_totals(self) -> bool:
        return self.is_withdraw or self.reduces_goal or self.releases_goal

    def for_time_range(self) -> "DayTypePolicy":
        """Policy of a declaration limited to part of the day."""
        if self.partial_effect is None:
            return self
        return self.model_copy(update={"no_hours_required": False, "flextime_effect": self.partial_effect})


DEFAULT_SPECIAL_DAY_BEHAVIORS: List[DayTypePolicy] = [
    DayTypePolicy(id="jobb", label="Jobb", is_work_type=True),
    DayTypePolicy(id="avspasering", label="Avspasering", flextime_effect="withdraw"),
    DayTypePolicy(id="ferie", label="Ferie", no_hours_required=True, max_days_per_year=25),
    DayTypePolicy(id="velferdspermisjon", label="Velferdspermisjon", no_hours_required=True),
    DayTypePolicy(
        id="egenmelding",
        label="Egenmelding",
        no_hours_required=True,
        max_days_per_year=24,
        counting_period="rolling365",
    ),
    DayTypePolicy(id="sykemelding", label="Sykemelding", flextime_effect="reduce_goal"),
    DayTypePolicy(id="helligdag", label="Helligdag", no_hours_required=True, include_in_stats=False),
    DayTypePolicy(id="studie", label="Studie", flextime_effect="accumulate"),
    DayTypePolicy(id="kurs", label="Kurs", flextime_effect="accumulate"),
    DayTypePolicy(
        id="annet",
        label="Annet",
        no_hours_required=True,
        include_in_stats=False,
        partial_effect="reduce_goal",
    ),
]


class PolicyTable:
    """Case-insensitive lookup over the configured day-type policies."""

    def __init__(self, policies: Iterable[DayTypePolicy]):
        self._policies: Dict[str, DayTypePolicy] = {}
        for policy in policies:
            self._policies[policy.id] = policy
        self._work_type = next(
            (policy for policy in self._policies.values() if policy.is_work_type),
            DayTypePolicy(id="jobb", label="Jobb", is_work_type=True),
        )

    @property
    def work_type(self) -> DayTypePolicy:
        return self._work_type

    def is_known(self, category: Optional[str]) -> bool:
        return _key(category) in self._policies

    def lookup(self, category: Optional[str]) -> DayTypePolicy:
        key = _key(category)
        policy = self._policies.get(key)
        if policy is not None:
            return policy
        # Unknown names (e.g. imported "Block 1") behave like regular work.
        return DayTypePolicy(id=key, label=category or key, is_work_type=True)

    def stats_categories(self) -> List[DayTypePolicy]:
        """Policies that get their own statistics bucket, work type first."""
        absence = [
            policy
            for policy in self._policies.values()
            if policy.include_in_stats and not policy.is_work_type
        ]
        return [self._work_type, *absence]


def _key(category: Optional[str]) -> str:
    return (category or "").strip().lower()


__all__ = ["DayTypePolicy", "DEFAULT_SPECIAL_DAY_BEHAVIORS", "PolicyTable", "FlextimeEffect"]
