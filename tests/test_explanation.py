from datetime import datetime

import pytest

from eligibility_engine.explanation import (
    ExplanationOptions,
    explain_difference,
    explain_result,
    explain_rule,
    explain_what_would_pass,
    format_field_name,
    format_rule_explanation,
    format_value,
    generate_rule_description,
)
from eligibility_engine.models import CriterionComparison, EligibilityResult


INCOME_RULE = {"<=": [{"var": "householdIncome"}, 2000]}


def make_result(**overrides):
    fields = dict(
        profile_id="p1",
        program_id="snap-federal",
        rule_id="snap-federal-gross-income",
        eligible=False,
        confidence=95,
        reason="You do not meet the eligibility criteria for this program",
        evaluated_at=datetime(2024, 1, 1),
    )
    fields.update(overrides)
    return EligibilityResult(**fields)


def test_field_names_use_mapping_or_title_case():
    assert format_field_name("householdIncome") == "your household's monthly income"
    assert format_field_name("monthlyRentAmount") == "Monthly Rent Amount"
    assert format_field_name("has_car") == "Has Car"


def test_format_value():
    assert format_value() == "not provided"
    assert format_value(None) == "empty"
    assert format_value(True) == "yes"
    assert format_value(1500) == "$1,500"
    assert format_value(42) == "42"
    assert format_value("GA") == '"GA"'
    assert format_value([1, 2]) == "[2 items]"
    assert format_value({"var": "age"}) == "your age"


def test_rule_description_by_language_level():
    assert generate_rule_description(INCOME_RULE) == (
        "your household's monthly income is less than or equal to $2,000"
    )
    assert generate_rule_description(INCOME_RULE, "simple") == (
        "Your value must be no more than the required amount"
    )
    assert generate_rule_description(INCOME_RULE, "technical").startswith("Rule: {")
    assert generate_rule_description({"custom_op": [1]}) == "Must meet custom_op condition"


def test_explain_rule_builds_tree_and_criteria():
    rule = {"and": [INCOME_RULE, {"==": [{"var": "isCitizen"}, True]}]}
    explanation = explain_rule(rule)
    assert explanation.description == "All of the following are true: 2 conditions"
    assert explanation.variables == ["householdIncome", "isCitizen"]
    assert explanation.criteria_checked == ["your household's monthly income", "citizenship status"]
    root = explanation.breakdown[0]
    assert root.operator == "and"
    assert root.children[0].operator == "<="

    text = format_rule_explanation(explanation)
    assert "This rule checks:" in text
    assert "• citizenship status" in text


def test_explain_ineligible_result_lists_failures_and_suggestions():
    result = make_result(
        criteria=[
            CriterionComparison(criterion="householdIncome", met=False, value=2500, threshold=2000),
            CriterionComparison(criterion="isCitizen", met=True, value=True, threshold=True),
        ]
    )
    explanation = explain_result(result, INCOME_RULE)
    assert explanation.summary == result.reason
    assert explanation.criteria_passed == ["✓ We verified citizenship status and you meet this requirement"]
    assert explanation.criteria_failed == [
        "✗ your household's monthly income does not meet the program requirements"
    ]
    assert explanation.what_would_change == [
        "If your household's monthly income changes from $2,500 to $2,000 or below, you may qualify"
    ]
    assert explanation.plain_language.startswith("Based on the information provided")


def test_explain_incomplete_result_asks_for_missing_fields():
    result = make_result(incomplete=True, missing_fields=["householdSize"], confidence=50)
    explanation = explain_result(result, INCOME_RULE, options=ExplanationOptions(language_level="simple"))
    assert explanation.missing_information == ["householdSize"]
    assert "We need to know:" in explanation.plain_language
    assert "• your household size" in explanation.plain_language
    assert explanation.what_would_change == ["Complete your profile by providing the missing information"]


def test_eligible_result_has_no_suggestions():
    result = make_result(eligible=True, reason="You meet the eligibility criteria for this program")
    explanation = explain_result(result, INCOME_RULE)
    assert explanation.what_would_change is None
    assert explanation.criteria_passed == [
        "✓ We verified your household's monthly income and you meet this requirement"
    ]


def test_unknown_language_level_is_rejected():
    with pytest.raises(ValueError):
        explain_result(make_result(), INCOME_RULE, options=ExplanationOptions(language_level="legalese"))


def test_what_would_pass_suggestions():
    rule = {"and": [INCOME_RULE, {">=": [{"var": "age"}, 19]}]}
    suggestions = explain_what_would_pass(rule, {"householdIncome": 2500, "age": 17})
    assert suggestions == [
        "Reduce your household's monthly income from $2,500 to $2,000 or below",
        "Increase your age from 17 to at least 19",
    ]
    assert explain_what_would_pass({"var": "x"}, {}) == [
        "Eligibility criteria cannot be easily modified. Please consult program guidelines."
    ]


def test_explain_difference_reports_changed_fields():
    before = make_result(eligible=False)
    after = make_result(eligible=True)
    diff = explain_difference(before, after, {"householdIncome": 2500}, {"householdIncome": 1500, "age": 30})
    assert diff.differences[0] == "Eligibility status changed: ineligible → eligible"
    assert [item.field for item in diff.changed_fields] == ["your household's monthly income", "your age"]
    assert diff.summary == "2 field(s) changed between evaluations"


def test_minimum_income_suggestion_asks_for_at_least_the_threshold():
    result = make_result(
        criteria=[
            CriterionComparison(criterion="householdIncome", met=False, value=500, threshold=1000, operator=">="),
        ]
    )
    explanation = explain_result(result, {">=": [{"var": "householdIncome"}, 1000]})
    assert explanation.what_would_change == [
        "If your household's monthly income changes from $500 to at least $1,000, you may qualify"
    ]


def test_income_ceiling_suggestion_uses_operator_direction():
    result = make_result(
        criteria=[
            CriterionComparison(criterion="householdIncome", met=False, value=2500, threshold=2000, operator="<"),
        ]
    )
    explanation = explain_result(result, {"<": [{"var": "householdIncome"}, 2000]})
    assert explanation.what_would_change == [
        "If your household's monthly income changes from $2,500 to $2,000 or below, you may qualify"
    ]
