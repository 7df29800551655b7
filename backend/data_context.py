"""Turn a stored profile into the data context handed to rule evaluation."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

from backend.ami import FALLBACK_MONTHLY_AMI, AMIService, StaticAMIService
from eligibility_engine.operators import age_from_dob

logger = logging.getLogger(__name__)

STATE_NAME_TO_CODE = {
    "Alabama": "AL", "Alaska": "AK", "Arizona": "AZ", "Arkansas": "AR",
    "California": "CA", "Colorado": "CO", "Connecticut": "CT", "Delaware": "DE",
    "Florida": "FL", "Georgia": "GA", "Hawaii": "HI", "Idaho": "ID",
    "Illinois": "IL", "Indiana": "IN", "Iowa": "IA", "Kansas": "KS",
    "Kentucky": "KY", "Louisiana": "LA", "Maine": "ME", "Maryland": "MD",
    "Massachusetts": "MA", "Michigan": "MI", "Minnesota": "MN", "Mississippi": "MS",
    "Missouri": "MO", "Montana": "MT", "Nebraska": "NE", "Nevada": "NV",
    "New Hampshire": "NH", "New Jersey": "NJ", "New Mexico": "NM", "New York": "NY",
    "North Carolina": "NC", "North Dakota": "ND", "Ohio": "OH", "Oklahoma": "OK",
    "Oregon": "OR", "Pennsylvania": "PA", "Rhode Island": "RI", "South Carolina": "SC",
    "South Dakota": "SD", "Tennessee": "TN", "Texas": "TX", "Utah": "UT",
    "Vermont": "VT", "Virginia": "VA", "Washington": "WA", "West Virginia": "WV",
    "Wisconsin": "WI", "Wyoming": "WY", "District of Columbia": "DC",
}

# ACA Medicaid expansion states (2024)
MEDICAID_EXPANSION_STATE_CODES = frozenset(
    {
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "HI", "ID", "IL", "IN", "IA",
        "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MO", "MT", "NV", "NH", "NJ", "NM", "NY",
        "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SD", "UT", "VT", "VA", "WA", "WV",
    }
)


def normalize_state_to_code(state: str) -> str:
    """Two-letter codes are upper-cased; full names are looked up; anything else passes through."""
    if len(state) == 2:
        return state.upper()
    code = STATE_NAME_TO_CODE.get(state.strip())
    if code:
        return code
    logger.warning("Unknown state value: %s", state)
    return state


def is_medicaid_expansion_state(state_code: str) -> bool:
    return state_code in MEDICAID_EXPANSION_STATE_CODES


def check_missing_fields(data: Mapping[str, Any], required_fields: Iterable[str]) -> List[str]:
    missing = []
    for field in required_fields:
        value = data[field] if field in data else None
        if value is None or value == "":
            missing.append(field)
    return missing


def ami_context(ami_service: AMIService, state_code: str, county: str, household_size: int) -> Dict[str, int]:
    """Monthly AMI bands; the conservative fallback is used when the lookup fails."""
    try:
        ami = ami_service.get_ami_for_household(state_code, county, household_size)
    except Exception as exc:
        logger.warning("AMI lookup failed for %s/%s (size %s), using fallback: %s", state_code, county, household_size, exc)
        return dict(FALLBACK_MONTHLY_AMI)
    return {
        "areaMedianIncome": math.floor(ami.income_limit_50 / 12),
        "ami50": math.floor(ami.income_limit_50 / 12),
        "ami60": math.floor(ami.income_limit_60 / 12),
        "ami80": math.floor(ami.income_limit_80 / 12),
    }


def prepare_data_context(profile: Mapping[str, Any], ami_service: Optional[AMIService] = None) -> Dict[str, Any]:
    """
    Copy ``profile`` and add the derived fields rules rely on.

    * ``_timestamp`` (epoch ms) and ``age`` from ``dateOfBirth``
    * ``householdIncome`` converted to monthly when ``incomePeriod == "annual"``
    * state flags (``stateHasExpanded``, ``livesInState``, ``livesIn<State>``)
    * monthly AMI bands when both ``state`` and ``householdSize`` are known
    """
    data: Dict[str, Any] = dict(profile)
    data["_timestamp"] = int(time.time() * 1000)

    dob = data.get("dateOfBirth")
    if dob:
        try:
            data["age"] = age_from_dob(dob)
        except ValueError:
            logger.warning("Could not parse dateOfBirth %r for profile %s", dob, data.get("id"))

    income = data.get("householdIncome")
    if isinstance(income, (int, float)) and not isinstance(income, bool) and income:
        if data.get("incomePeriod") == "annual":
            data["householdIncome"] = round(income / 12)
            logger.debug("Converted annual income %s to monthly %s", income, data["householdIncome"])

    state = data.get("state")
    if isinstance(state, str) and state:
        code = normalize_state_to_code(state)
        data["stateHasExpanded"] = is_medicaid_expansion_state(code)
        data["livesInState"] = True
        data["livesInGeorgia"] = code == "GA"
        data["livesInCalifornia"] = code == "CA"
        data["livesInTexas"] = code == "TX"
        data["livesInFlorida"] = code == "FL"

        size = data.get("householdSize")
        if size:
            county = data.get("county") or "default"
            service = ami_service or StaticAMIService()
            data.update(ami_context(service, code, county, int(size)))

    return data
