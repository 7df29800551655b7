"""Area median income (AMI) lookups used to derive ami50/ami60/ami80 context fields."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from pydantic import BaseModel

from eligibility_engine.config import load_settings

logger = logging.getLogger(__name__)


class AMIData(BaseModel):
    """Annual dollar limits for one household size in one area."""

    income_limit_50: float
    income_limit_60: float
    income_limit_80: float


class AMIService(Protocol):
    def get_ami_for_household(self, state_code: str, county: str, household_size: int) -> AMIData:
        ...


class AMILookupError(LookupError):
    pass


# monthly dollars used when no AMI service answer is available
FALLBACK_MONTHLY_AMI = {
    "areaMedianIncome": 2000,
    "ami50": 1000,
    "ami60": 1200,
    "ami80": 1600,
}


class StaticAMIService:
    """
    AMI limits from the ``ami`` section of the engine config.

    Area figures are for a four-person household and are scaled by the
    household-size adjustment factors.
    """

    def __init__(self, ami_config: Optional[Mapping[str, Any]] = None):
        self.config = dict(ami_config if ami_config is not None else load_settings().ami)

    def _adjustment(self, household_size: int) -> float:
        adjustments: Dict[Any, float] = self.config.get("household_adjustments") or {}
        for key in (household_size, str(household_size)):
            if key in adjustments:
                return float(adjustments[key])
        largest = max((int(key) for key in adjustments), default=8)
        base = float(adjustments.get(largest, adjustments.get(str(largest), 1.32)))
        extra = float(self.config.get("additional_person_adjustment", 0.08))
        return base + extra * (household_size - largest)

    def get_ami_for_household(self, state_code: str, county: str, household_size: int) -> AMIData:
        if household_size < 1:
            raise ValueError(f"Household size must be at least 1, got {household_size}")
        areas = self.config.get("areas") or {}
        state = areas.get(state_code)
        if not state:
            raise AMILookupError(f"No AMI data for state {state_code}")
        area = state.get(county) or state.get("default")
        if not area:
            raise AMILookupError(f"No AMI data for {county} county, {state_code}")

        factor = self._adjustment(household_size)
        return AMIData(
            income_limit_50=round(float(area["income_limit_50"]) * factor),
            income_limit_60=round(float(area["income_limit_60"]) * factor),
            income_limit_80=round(float(area["income_limit_80"]) * factor),
        )
