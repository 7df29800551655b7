import pytest

from eligibility_engine import thresholds


def test_snap_gross_limits_use_published_table():
    assert thresholds.snap_gross_income_limit(1) == 1696
    assert thresholds.snap_gross_income_limit(4) == 3483
    assert thresholds.snap_gross_income_limit(8) == 5867


def test_snap_gross_limit_grows_per_additional_person():
    assert thresholds.snap_gross_income_limit(9) == 5867 + 596
    assert thresholds.snap_gross_income_limit(10) == 5867 + 2 * 596


def test_fpl_base_table_and_extension():
    assert thresholds.calculate_fpl(1) == 1255
    assert thresholds.calculate_fpl(8) == 4378
    assert thresholds.calculate_fpl(9) == 4378 + 446
    assert thresholds.snap_net_income_limit(3) == thresholds.calculate_fpl(3)


def test_percentage_limits_round_half_up():
    # 1255 * 1.85 = 2321.75
    assert thresholds.wic_income_limit(1) == 2322
    assert thresholds.snap_bbce_limit(1) == 2510
    assert thresholds.calculate_fpl_percentage(2, 100) == 1702


def test_medicaid_limits_are_per_person():
    assert thresholds.medicaid_expansion_limit(1) == 2040
    assert thresholds.medicaid_expansion_limit(3) == 6120
    assert thresholds.medicaid_children_pregnant_limit(2) == 5920
    assert thresholds.medicaid_disability_limit(1) == 1133


@pytest.mark.parametrize(
    "func",
    [
        thresholds.calculate_fpl,
        thresholds.snap_gross_income_limit,
        thresholds.medicaid_expansion_limit,
        thresholds.wic_income_limit,
    ],
)
def test_household_size_below_one_is_rejected(func):
    with pytest.raises(ValueError):
        func(0)


def test_eligibility_shortcuts_are_inclusive():
    assert thresholds.is_snap_gross_eligible(1696, 1)
    assert not thresholds.is_snap_gross_eligible(1697, 1)
    assert thresholds.is_medicaid_expansion_eligible(2040, 1)
    assert thresholds.is_wic_eligible(2322, 1)


def test_formatting_helpers():
    assert thresholds.annual_to_monthly(30000) == 2500
    assert thresholds.monthly_to_annual(2500) == 30000
    assert thresholds.format_income_threshold(1696) == "$1,696/month"
    assert thresholds.format_income_threshold(20352, "annual") == "$20,352/year"
    assert thresholds.describe_fpl_percentage(130) == "SNAP Gross Income Limit"
    assert thresholds.describe_fpl_percentage(150) == "150% of Federal Poverty Level"
