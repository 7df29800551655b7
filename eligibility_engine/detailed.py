"""
Detailed evaluation: evaluates a rule and reconstructs the comparisons it made.

The analysis walks the expression independently of the interpreter and
re-derives each comparison's operands, so results can be explained as
"$2,400 exceeds the limit of $1,696" instead of a bare ``False``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field

from .evaluator import EvaluationOptions, evaluate
from .models import CriterionComparison
from .operators import compare, get_path, is_truthy
from .thresholds import snap_gross_income_limit

logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = ("<", ">", "<=", ">=", "==", "!=", "in")

_NOT_FOUND = object()


class DetailedEvaluationResult(BaseModel):
    value: Any = False
    succeeded: bool = True
    criteria: List[CriterionComparison] = Field(default_factory=list)
    explanation: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    elapsed_ms: Optional[float] = None


def format_currency(value: float) -> str:
    rounded = int(round(value))
    if rounded < 0:
        return f"-${abs(rounded):,}"
    return f"${rounded:,}"


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_currency(value)
    if value is None:
        return "null"
    return str(value)


def format_comparison(operator: str, value: Any, threshold: Any, passed: bool) -> str:
    actual, limit = _display(value), _display(threshold)
    if operator == "<=":
        verb = "is within the limit of" if passed else "exceeds the limit of"
    elif operator == "<":
        verb = "is below the threshold of" if passed else "is not below the threshold of"
    elif operator == ">=":
        verb = "meets the minimum of" if passed else "is below the minimum of"
    elif operator == ">":
        verb = "exceeds the minimum of" if passed else "does not exceed the minimum of"
    elif operator == "==":
        verb = "matches the required value of" if passed else "does not match the required value of"
    elif operator == "!=":
        if passed:
            return f"{actual} is different from {limit} (as required)"
        return f"{actual} incorrectly matches {limit}"
    else:
        verb = "compared to"
    return f"{actual} {verb} {limit}"


def _is_var(operand: Any) -> bool:
    return isinstance(operand, Mapping) and "var" in operand


def _var_path(operand: Mapping[str, Any]) -> Any:
    path = operand["var"]
    if isinstance(path, list):
        return path[0] if path else ""
    return path


class _Analyzer:
    def __init__(self, data: Mapping[str, Any], options: EvaluationOptions):
        self.data = data
        self.options = options
        self.criteria: List[CriterionComparison] = []

    def resolve(self, operand: Any) -> Any:
        if _is_var(operand):
            return get_path(self.data, _var_path(operand), _NOT_FOUND)
        if isinstance(operand, (Mapping, list)):
            return evaluate(operand, self.data, self.options).value
        return operand

    def walk(self, rule: Any) -> None:
        if not isinstance(rule, Mapping):
            return
        for operator, operands in rule.items():
            if not isinstance(operands, list):
                continue
            if operator in COMPARISON_OPERATORS:
                self.record_comparison(operator, operands)
            elif operator == "snap_income_eligible":
                self.record_snap(operands)
            for operand in operands:
                if isinstance(operand, Mapping):
                    self.walk(operand)

    def record_comparison(self, operator: str, operands: List[Any]) -> None:
        if len(operands) < 2:
            return
        left, right = operands[0], operands[1]
        if _is_var(left):
            variable, other = left, right
        elif _is_var(right):
            variable, other = right, left
        else:
            return
        criterion = str(_var_path(variable))
        value = self.resolve(variable)
        threshold = self.resolve(other)
        if not criterion or value is _NOT_FOUND or threshold is _NOT_FOUND:
            return

        # operand order is preserved so the verdict matches the interpreter
        if variable is left:
            met = compare(operator, value, threshold)
        else:
            met = compare(operator, threshold, value)
        self.criteria.append(
            CriterionComparison(
                criterion=criterion,
                met=met,
                value=value,
                threshold=threshold,
                comparison=format_comparison(operator, value, threshold, met),
                operator=operator,
            )
        )

    def record_snap(self, operands: List[Any]) -> None:
        if len(operands) < 2:
            return
        income = self.resolve(operands[0])
        size = self.resolve(operands[1])
        if not _is_plain_number(income) or not _is_plain_number(size):
            logger.debug("snap_income_eligible operands are not numeric: %r, %r", income, size)
            return

        limit = snap_gross_income_limit(int(size))
        eligible = income <= limit
        verb = "is within" if eligible else "exceeds"
        self.criteria.append(
            CriterionComparison(
                criterion="householdIncome",
                met=eligible,
                value=income,
                threshold=limit,
                comparison=f"{format_currency(income)} {verb} the limit of {format_currency(limit)}",
                operator="snap_income_eligible",
            )
        )
        noun = "person" if size == 1 else "people"
        self.criteria.append(
            CriterionComparison(
                criterion="householdSize",
                met=True,
                value=size,
                threshold=size,
                comparison=f"{size} {noun} (determines income limit)",
                operator="household_size",
            )
        )


def _is_plain_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def generate_explanation(criteria: List[CriterionComparison], eligible: bool) -> str:
    if not criteria:
        return "Eligibility confirmed" if eligible else "Eligibility requirements not met"
    if eligible:
        return "All eligibility requirements have been met"
    failed = [item for item in criteria if not item.met]
    if failed:
        reasons = [item.comparison or f"{item.criterion} requirement not met" for item in failed]
        return "Eligibility requirements not met: " + ", ".join(reasons)
    return "Eligibility requirements not met due to program rules"


def evaluate_with_details(
    rule: Any,
    data: Optional[Mapping[str, Any]] = None,
    options: Optional[EvaluationOptions] = None,
) -> DetailedEvaluationResult:
    """Evaluate ``rule`` and collect one criterion per recognizable comparison."""
    start = time.perf_counter()
    base = options or EvaluationOptions()
    strict_options = EvaluationOptions(
        custom_operators=dict(base.custom_operators),
        include_benefit_operators=base.include_benefit_operators,
        max_depth=base.max_depth,
        timeout_ms=base.timeout_ms,
        strict=True,
    )
    analyzer = _Analyzer(data or {}, strict_options)

    try:
        analyzer.walk(rule)
        result = evaluate(rule, data, strict_options)
    except Exception as exc:
        logger.warning("Detailed evaluation failed: %s", exc)
        return DetailedEvaluationResult(
            value=False,
            succeeded=False,
            criteria=analyzer.criteria,
            error_message=str(exc),
            error_code=getattr(exc, "code", None),
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )

    return DetailedEvaluationResult(
        value=result.value,
        succeeded=True,
        criteria=analyzer.criteria,
        explanation=generate_explanation(analyzer.criteria, is_truthy(result.value)),
        elapsed_ms=(time.perf_counter() - start) * 1000,
    )
