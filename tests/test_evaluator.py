import math
import threading
import time

import pytest

from eligibility_engine.errors import EvaluationError
from eligibility_engine.evaluator import (
    EVAL_INVALID_DATA,
    EVAL_INVALID_RULE,
    EVAL_MAX_DEPTH,
    EVAL_OPERATOR_ERROR,
    EVAL_TIMEOUT,
    EvaluationOptions,
    calculate_depth,
    evaluate,
    evaluate_many,
    evaluate_pairs,
)
from eligibility_engine.operators import operator_registry


def test_simple_comparison_against_data():
    result = evaluate({"<=": [{"var": "householdIncome"}, 2000]}, {"householdIncome": 1500})
    assert result.succeeded
    assert result.value is True
    assert result.error_code is None
    assert result.elapsed_ms is not None


def test_nested_var_paths_and_defaults():
    data = {"household": {"members": [{"age": 34}, {"age": 6}]}}
    assert evaluate({"var": "household.members.1.age"}, data).value == 6
    assert evaluate({"var": ["household.pets", "none"]}, data).value == "none"
    assert evaluate({"var": "household.missing"}, data).value is None


def test_multi_key_mapping_is_a_literal():
    literal = {"a": 1, "b": 2}
    assert evaluate(literal, {}).value == literal


def test_unknown_operator_is_reported_not_raised():
    result = evaluate({"no_such_op": [1, 2]}, {})
    assert not result.succeeded
    assert result.value is False
    assert result.error_code == EVAL_INVALID_RULE
    assert "no_such_op" in result.error_message


def test_null_rule_and_non_mapping_data():
    assert evaluate(None, {}).error_code == EVAL_INVALID_RULE
    assert evaluate({"var": "a"}, [1, 2, 3]).error_code == EVAL_INVALID_DATA


def test_division_by_zero_is_an_operator_error():
    result = evaluate({"/": [10, 0]}, {})
    assert not result.succeeded
    assert result.error_code == EVAL_OPERATOR_ERROR


def test_strict_mode_raises_evaluation_error():
    with pytest.raises(EvaluationError) as excinfo:
        evaluate({"/": [10, 0]}, {}, EvaluationOptions(strict=True))
    assert excinfo.value.code == EVAL_OPERATOR_ERROR


def test_max_depth_is_enforced_before_evaluation():
    rule = {"!": {"!": {"!": {"!": {"var": "x"}}}}}
    assert calculate_depth(rule) == 5
    result = evaluate(rule, {"x": True}, EvaluationOptions(max_depth=4))
    assert result.error_code == EVAL_MAX_DEPTH
    assert evaluate(rule, {"x": True}, EvaluationOptions(max_depth=5)).succeeded


def test_very_deep_rule_stops_at_the_depth_limit():
    rule = {"var": "x"}
    for _ in range(600):
        rule = {"!": rule}
    assert calculate_depth(rule) == 601
    assert calculate_depth(rule, limit=20) == 21
    result = evaluate(rule, {"x": True})
    assert result.error_code == EVAL_MAX_DEPTH


def test_timeout_abandons_slow_evaluation():
    def slow(value=None):
        time.sleep(0.5)
        return value

    options = EvaluationOptions(custom_operators={"slow": slow}, timeout_ms=50)
    result = evaluate({"slow": [1]}, {}, options)
    assert not result.succeeded
    assert result.error_code == EVAL_TIMEOUT


def test_custom_operators_are_scoped_to_the_call():
    options = EvaluationOptions(custom_operators={"double": lambda value: value * 2})
    assert evaluate({"double": [{"var": "n"}]}, {"n": 21}, options).value == 42
    assert not operator_registry.has_operation("double")
    assert evaluate({"double": [1]}, {}).error_code == EVAL_INVALID_RULE


def test_custom_operator_overrides_are_not_visible_to_other_threads():
    results = {}

    def worker(index):
        options = EvaluationOptions(custom_operators={"tag": lambda i=index: i})
        outcomes = [evaluate({"tag": []}, {}, options).value for _ in range(20)]
        results[index] = outcomes

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for index, outcomes in results.items():
        assert outcomes == [index] * 20
    assert not operator_registry.has_operation("tag")


def test_benefit_operators_can_be_excluded():
    rule = {"between": [5, 1, 10]}
    assert evaluate(rule, {}).value is True
    result = evaluate(rule, {}, EvaluationOptions(include_benefit_operators=False))
    assert result.error_code == EVAL_INVALID_RULE


def test_capture_context_returns_a_copy():
    data = {"profile": {"state": "GA"}}
    result = evaluate({"var": "profile.state"}, data, EvaluationOptions(capture_context=True))
    assert result.context == data
    result.context["profile"]["state"] = "CA"
    assert data["profile"]["state"] == "GA"


def test_unparseable_numbers_become_nan():
    value = evaluate({"+": ["abc", 1]}, {}).value
    assert math.isnan(value)
    assert evaluate({"!!": [{"+": ["abc", 1]}]}, {}).value is False


def test_batch_helpers_keep_input_order():
    rules = [{">": [{"var": "a"}, 1]}, {"<": [{"var": "a"}, 1]}]
    assert [result.value for result in evaluate_many(rules, {"a": 2})] == [True, False]
    pairs = [({"var": "a"}, {"a": 1}), ({"var": "a"}, {"a": 2})]
    assert [result.value for result in evaluate_pairs(pairs)] == [1, 2]
