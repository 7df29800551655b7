from datetime import date

import pytest

from eligibility_engine.evaluator import evaluate
from eligibility_engine.operators import OperatorRegistry, age_from_dob, compare, to_number


def value_of(rule, data=None):
    result = evaluate(rule, data or {})
    assert result.succeeded, result.error_message
    return result.value


def test_loose_and_strict_equality():
    assert value_of({"==": [1, "1"]}) is True
    assert value_of({"===": [1, "1"]}) is False
    assert value_of({"===": [True, 1]}) is False
    assert value_of({"===": [2, 2.0]}) is True
    assert value_of({"!=": [None, 0]}) is True


def test_strings_compare_lexicographically():
    assert value_of({"<": ["apple", "banana"]}) is True
    assert value_of({">": ["10", "9"]}) is False
    assert value_of({">": ["10", 9]}) is True


def test_three_argument_less_than_is_a_range_check():
    assert value_of({"<": [1, 5, 10]}) is True
    assert value_of({"<=": [1, 1, 3]}) is True
    assert value_of({"<": [1, 10, 5]}) is False


def test_logic_short_circuits_and_returns_operands():
    assert value_of({"and": [True, 0, {"/": [1, 0]}]}) == 0
    assert value_of({"or": [0, "", "yes", {"/": [1, 0]}]}) == "yes"
    assert value_of({"if": [False, "a", True, "b", "c"]}) == "b"
    assert value_of({"if": [False, "a", "fallback"]}) == "fallback"


def test_arithmetic():
    assert value_of({"+": [1, "2", 3.5]}) == 6.5
    assert value_of({"-": [5]}) == -5
    assert value_of({"*": [{"var": "size"}, 2040]}, {"size": 3}) == 6120
    assert value_of({"%": [7, 3]}) == 1
    assert value_of({"max": [1, 9, 4]}) == 9
    assert value_of({"min": []}) is None


def test_array_operators():
    data = {"members": [{"age": 40}, {"age": 5}, {"age": 70}]}
    assert value_of({"map": [{"var": "members"}, {"var": "age"}]}, data) == [40, 5, 70]
    assert value_of({"filter": [{"var": "members"}, {">=": [{"var": "age"}, 18]}]}, data) == [{"age": 40}, {"age": 70}]
    assert value_of(
        {"reduce": [[1, 2, 3], {"+": [{"var": "current"}, {"var": "accumulator"}]}, 0]}
    ) == 6
    assert value_of({"some": [{"var": "members"}, {"<": [{"var": "age"}, 6]}]}, data) is True
    assert value_of({"all": [[], {"var": ""}]}) is False
    assert value_of({"none": [[0, False], {"var": ""}]}) is True
    assert value_of({"merge": [[1, 2], 3, [4]]}) == [1, 2, 3, 4]
    assert value_of({"in": ["GA", ["GA", "CA"]]}) is True


def test_missing_and_missing_some():
    assert value_of({"missing": ["a", "b", "c"]}, {"a": 1, "c": ""}) == ["b", "c"]
    assert value_of({"missing_some": [1, ["a", "b"]]}, {"a": 1}) == []
    assert value_of({"missing_some": [2, ["a", "b"]]}, {"a": 1}) == ["b"]


def test_string_operators():
    assert value_of({"cat": ["I love ", 3.0, " pies"]}) == "I love 3 pies"
    assert value_of({"substr": ["jsonlogic", -5]}) == "logic"
    assert value_of({"substr": ["jsonlogic", 1, 3]}) == "son"
    assert value_of({"in": ["Spring", "Springfield"]}) is True


def test_benefit_range_operators():
    assert value_of({"between": [{"var": "age"}, 19, 64]}, {"age": 64}) is True
    assert value_of({"between": [{"var": "age"}, 19, 64]}, {"age": 65}) is False
    assert value_of({"within_percent": [105, 100, 5]}) is True
    assert value_of({"within_percent": [106, 100, 5]}) is False


def test_benefit_list_operators():
    assert value_of({"matches_any": [{"var": "state"}, ["GA", "CA"]]}, {"state": "ga"}) is True
    assert value_of({"matches_any": [None, ["GA"]]}) is False
    assert value_of({"count_true": [[True, False, 1]]}) == 2
    assert value_of({"all_true": [[True, 1]]}) is True
    assert value_of({"any_true": [[False, 0]]}) is False


def test_benefit_date_operators():
    assert value_of({"date_in_past": ["2000-01-01"]}) is True
    assert value_of({"date_in_future": ["2999-01-01T00:00:00Z"]}) is True
    assert isinstance(value_of({"age_from_dob": ["1990-06-15"]}), int)


def test_age_from_dob_counts_whole_years():
    assert age_from_dob("2000-06-15", today=date(2024, 6, 14)) == 23
    assert age_from_dob("2000-06-15", today=date(2024, 6, 15)) == 24
    with pytest.raises(ValueError):
        age_from_dob("June 2000")


def test_snap_operators_use_gross_income_table():
    assert value_of({"snap_income_threshold_130_fpl": [1]}) == 1696
    assert value_of({"snap_income_eligible": [1696, 1]}) is True
    assert value_of({"snap_income_eligible": [1697, 1]}) is False
    assert value_of({"snap_income_eligible": [{"var": "income"}, {"var": "size"}]}, {"income": 3400, "size": 4}) is True


def test_switch_matches_cases_then_default():
    rule = {"switch": [{"var": "x"}, {"case": 1, "do": "one"}, {"case": 2, "do": "two"}, {"default": "other"}]}
    assert value_of(rule, {"x": 2}) == "two"
    assert value_of(rule, {"x": 9}) == "other"


def test_to_number_and_compare_helpers():
    assert to_number("42") == 42
    assert to_number("4.5") == 4.5
    assert to_number("") == 0
    assert to_number(True) == 1
    assert compare("<=", 1500, 1696) is True
    assert compare("in", "b", ["a", "b"]) is True
    assert compare("unknown", 1, 1) is False


def test_registry_scoped_restores_shadowed_entries():
    registry = OperatorRegistry({"answer": lambda: 1})
    with registry.scoped({"answer": lambda: 2, "extra": lambda: 3}) as table:
        assert table["answer"]() == 2
        assert registry.has_operation("extra")
    assert registry.snapshot()["answer"]() == 1
    assert not registry.has_operation("extra")
    assert registry.names() == ["answer"]


def test_registry_add_and_remove():
    registry = OperatorRegistry()
    registry.add_operation("noop", lambda: None)
    assert registry.has_operation("noop")
    registry.remove_operation("noop")
    registry.remove_operation("noop")
    assert not registry.has_operation("noop")
