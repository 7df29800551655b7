"""
Income threshold calculator for federal benefit programs.

All functions take a household size and return monthly dollar limits as
integers, derived from the 2024 federal poverty guidelines.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict


FPL_2024_MONTHLY: Dict[int, int] = {
    1: 1255,
    2: 1702,
    3: 2148,
    4: 2594,
    5: 3040,
    6: 3486,
    7: 3932,
    8: 4378,
}
FPL_ADDITIONAL_PERSON = 446

# Published SNAP gross limits (130% FPL). Pre-rounded by USDA, so they are
# used directly instead of recomputing from the base table.
SNAP_GROSS_MONTHLY: Dict[int, int] = {
    1: 1696,
    2: 2292,
    3: 2888,
    4: 3483,
    5: 4079,
    6: 4675,
    7: 5271,
    8: 5867,
}
SNAP_GROSS_ADDITIONAL_PERSON = 596

MEDICAID_EXPANSION_PER_PERSON = 2040
MEDICAID_CHILDREN_PREGNANT_PER_PERSON = 2960
MEDICAID_DISABILITY_PER_PERSON = 1133

THRESHOLD_PERCENTAGES: Dict[str, int] = {
    "snap_gross": 130,
    "snap_net": 100,
    "snap_bbce": 200,
    "medicaid_expansion": 138,
    "medicaid_children": 200,
    "medicaid_disability": 74,
    "wic": 185,
}


def _round(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _check_size(household_size: int) -> None:
    if household_size < 1:
        raise ValueError(f"Household size must be at least 1, got {household_size}")


def calculate_fpl(household_size: int) -> int:
    """Monthly federal poverty level for a household."""
    _check_size(household_size)
    if household_size <= 8:
        return FPL_2024_MONTHLY[household_size]
    return FPL_2024_MONTHLY[8] + FPL_ADDITIONAL_PERSON * (household_size - 8)


def calculate_fpl_percentage(household_size: int, percentage: float) -> int:
    """Monthly limit at ``percentage`` percent of the poverty level."""
    return _round(calculate_fpl(household_size) * percentage / 100)


def snap_gross_income_limit(household_size: int) -> int:
    _check_size(household_size)
    if household_size <= 8:
        return SNAP_GROSS_MONTHLY[household_size]
    return SNAP_GROSS_MONTHLY[8] + SNAP_GROSS_ADDITIONAL_PERSON * (household_size - 8)


def snap_net_income_limit(household_size: int) -> int:
    return calculate_fpl(household_size)


def snap_bbce_limit(household_size: int) -> int:
    """Broad-based categorical eligibility limit (200% FPL)."""
    return calculate_fpl_percentage(household_size, THRESHOLD_PERCENTAGES["snap_bbce"])


def medicaid_expansion_limit(household_size: int) -> int:
    _check_size(household_size)
    return MEDICAID_EXPANSION_PER_PERSON * household_size


def medicaid_children_pregnant_limit(household_size: int) -> int:
    _check_size(household_size)
    return MEDICAID_CHILDREN_PREGNANT_PER_PERSON * household_size


def medicaid_disability_limit(household_size: int) -> int:
    _check_size(household_size)
    return MEDICAID_DISABILITY_PER_PERSON * household_size


def wic_income_limit(household_size: int) -> int:
    return calculate_fpl_percentage(household_size, THRESHOLD_PERCENTAGES["wic"])


FPL_PERCENTAGE_DESCRIPTIONS: Dict[int, str] = {
    100: "Federal Poverty Level",
    130: "SNAP Gross Income Limit",
    138: "Medicaid Expansion Limit",
    185: "WIC Income Limit",
    200: "Medicaid Children/Pregnant Minimum",
}


def describe_fpl_percentage(percentage: float) -> str:
    if percentage in FPL_PERCENTAGE_DESCRIPTIONS:
        return FPL_PERCENTAGE_DESCRIPTIONS[int(percentage)]
    return f"{percentage:g}% of Federal Poverty Level"


def annual_to_monthly(annual: float) -> int:
    return _round(annual / 12)


def monthly_to_annual(monthly: float) -> float:
    return monthly * 12


def format_income_threshold(amount: float, frequency: str = "monthly") -> str:
    period = "month" if frequency == "monthly" else "year"
    return f"${_round(amount):,}/{period}"


def is_snap_gross_eligible(monthly_income: float, household_size: int) -> bool:
    return monthly_income <= snap_gross_income_limit(household_size)


def is_medicaid_expansion_eligible(monthly_income: float, household_size: int) -> bool:
    return monthly_income <= medicaid_expansion_limit(household_size)


def is_wic_eligible(monthly_income: float, household_size: int) -> bool:
    return monthly_income <= wic_income_limit(household_size)
