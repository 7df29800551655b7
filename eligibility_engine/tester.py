"""Test-case runner, generators and coverage report for authored rules."""

from __future__ import annotations

import itertools
import json
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .evaluator import EvaluationOptions, evaluate
from .operators import strict_equals
from .validator import validate_rule

logger = logging.getLogger(__name__)


class RuleTestCase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str
    input: Dict[str, Any] = Field(default_factory=dict)
    expected: Any = None
    should_pass: Optional[bool] = Field(None, alias="shouldPass")
    tags: List[str] = Field(default_factory=list)


class RuleTestResult(BaseModel):
    description: str
    passed: bool
    expected: Any = None
    actual: Any = None
    error: Optional[str] = None
    elapsed_ms: Optional[float] = None


class RuleTestSuite(BaseModel):
    name: str
    description: Optional[str] = None
    rule: Any
    test_cases: List[RuleTestCase] = Field(default_factory=list)
    setup: Optional[Callable[[], Any]] = None
    teardown: Optional[Callable[[], Any]] = None


class RuleTestSuiteResult(BaseModel):
    name: str
    total: int
    passed: int
    failed: int
    results: List[RuleTestResult] = Field(default_factory=list)
    elapsed_ms: float = 0.0
    success_rate: float = 0.0


class CoverageReport(BaseModel):
    operators_covered: List[str] = Field(default_factory=list)
    operators_not_covered: List[str] = Field(default_factory=list)
    variables_covered: List[str] = Field(default_factory=list)
    variables_not_covered: List[str] = Field(default_factory=list)
    coverage_percent: float = 0.0


def deep_equal(left: Any, right: Any) -> bool:
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left) != set(right):
            return False
        return all(deep_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(deep_equal(a, b) for a, b in zip(left, right))
    return strict_equals(left, right)


def _coerce_case(case: Any) -> RuleTestCase:
    return case if isinstance(case, RuleTestCase) else RuleTestCase.model_validate(case)


def test_rule(rule: Any, case: Any, options: Optional[EvaluationOptions] = None) -> RuleTestResult:
    """Run a single case; ``should_pass=False`` expects the evaluation to fail."""
    case = _coerce_case(case)
    start = time.perf_counter()
    try:
        outcome = evaluate(rule, case.input, options)
    except Exception as exc:
        return RuleTestResult(
            description=case.description,
            passed=False,
            expected=case.expected,
            actual=None,
            error=str(exc) or exc.__class__.__name__,
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )

    if case.should_pass is False:
        passed = not outcome.succeeded
    else:
        passed = deep_equal(outcome.value, case.expected)
    return RuleTestResult(
        description=case.description,
        passed=passed,
        expected=case.expected,
        actual=outcome.value,
        error=outcome.error_message,
        elapsed_ms=(time.perf_counter() - start) * 1000,
    )


test_rule.__test__ = False  # type: ignore[attr-defined]


def run_test_suite(suite: RuleTestSuite, options: Optional[EvaluationOptions] = None) -> RuleTestSuiteResult:
    start = time.perf_counter()
    if suite.setup:
        suite.setup()
    try:
        results = [test_rule(suite.rule, case, options) for case in suite.test_cases]
    finally:
        if suite.teardown:
            suite.teardown()

    passed = sum(1 for result in results if result.passed)
    total = len(suite.test_cases)
    logger.debug("Test suite %s: %d/%d passed", suite.name, passed, total)
    return RuleTestSuiteResult(
        name=suite.name,
        total=total,
        passed=passed,
        failed=total - passed,
        results=results,
        elapsed_ms=(time.perf_counter() - start) * 1000,
        success_rate=(passed / total * 100) if total else 0.0,
    )


def run_test_suites(
    suites: Sequence[RuleTestSuite], options: Optional[EvaluationOptions] = None
) -> List[RuleTestSuiteResult]:
    return [run_test_suite(suite, options) for suite in suites]


def _fmt(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


def generate_boundary_tests(variables: Mapping[str, Mapping[str, float]]) -> List[RuleTestCase]:
    """
    Build min / boundary-1 / boundary / boundary+1 / max cases per variable.

    Each entry is ``{"min": .., "max": .., "boundary": ..}``; ``boundary``
    defaults to the midpoint. Expected values are left unset.
    """
    cases: List[RuleTestCase] = []
    for name, config in variables.items():
        low, high = config["min"], config["max"]
        boundary = config.get("boundary")
        if boundary is None:
            boundary = _fmt((low + high) / 2)

        cases.append(RuleTestCase(description=f"{name} at minimum ({low})", input={name: low}))
        if boundary > low:
            below = _fmt(boundary - 1)
            cases.append(RuleTestCase(description=f"{name} below boundary ({below})", input={name: below}))
        cases.append(RuleTestCase(description=f"{name} at boundary ({boundary})", input={name: boundary}))
        if boundary < high:
            above = _fmt(boundary + 1)
            cases.append(RuleTestCase(description=f"{name} above boundary ({above})", input={name: above}))
        cases.append(RuleTestCase(description=f"{name} at maximum ({high})", input={name: high}))
    return cases


def generate_combination_tests(variables: Mapping[str, Sequence[Any]]) -> List[RuleTestCase]:
    names = list(variables)
    cases = []
    for combination in itertools.product(*(variables[name] for name in names)):
        data = dict(zip(names, combination))
        cases.append(RuleTestCase(description=f"Combination: {json.dumps(data, separators=(',', ':'))}", input=data))
    return cases


def format_test_suite_result(result: RuleTestSuiteResult, verbose: bool = False) -> str:
    lines = [
        f"Test Suite: {result.name}",
        f"  Total: {result.total}",
        f"  Passed: {result.passed} ({result.success_rate:.1f}%)",
        f"  Failed: {result.failed}",
        f"  Time: {result.elapsed_ms:.2f}ms",
    ]
    if verbose and result.results:
        lines.append("\n  Results:")
        for test in result.results:
            lines.append(f"    {'✓' if test.passed else '✗'} {test.description}")
            if not test.passed:
                lines.append(f"      Expected: {json.dumps(test.expected, default=str)}")
                lines.append(f"      Actual: {json.dumps(test.actual, default=str)}")
                if test.error:
                    lines.append(f"      Error: {test.error}")
    return "\n".join(lines)


def generate_coverage_report(rule: Any, cases: Sequence[Any]) -> CoverageReport:
    validation = validate_rule(rule)
    operators = validation.operators
    variables = validation.variables
    cases = [_coerce_case(case) for case in cases]

    seen = set()
    for case in cases:
        seen.update(case.input)

    variables_covered = [name for name in variables if name in seen]
    # operator coverage is not traced; any case counts as covering all of them
    operators_covered = list(operators) if cases else []
    total = len(operators) + len(variables)
    covered = len(operators_covered) + len(variables_covered)
    return CoverageReport(
        operators_covered=operators_covered,
        operators_not_covered=[] if cases else list(operators),
        variables_covered=variables_covered,
        variables_not_covered=[name for name in variables if name not in seen],
        coverage_percent=(covered / total * 100) if total else 0.0,
    )


class TestSuiteBuilder:
    """Fluent builder for ``RuleTestSuite``."""

    __test__ = False

    def __init__(self) -> None:
        self._name: Optional[str] = None
        self._description: Optional[str] = None
        self._rule: Any = None
        self._cases: List[RuleTestCase] = []
        self._setup: Optional[Callable[[], Any]] = None
        self._teardown: Optional[Callable[[], Any]] = None

    def name(self, name: str) -> "TestSuiteBuilder":
        self._name = name
        return self

    def description(self, description: str) -> "TestSuiteBuilder":
        self._description = description
        return self

    def rule(self, rule: Any) -> "TestSuiteBuilder":
        self._rule = rule
        return self

    def add_test(self, case: Any) -> "TestSuiteBuilder":
        self._cases.append(_coerce_case(case))
        return self

    def add_tests(self, cases: Sequence[Any]) -> "TestSuiteBuilder":
        self._cases.extend(_coerce_case(case) for case in cases)
        return self

    def setup(self, func: Callable[[], Any]) -> "TestSuiteBuilder":
        self._setup = func
        return self

    def teardown(self, func: Callable[[], Any]) -> "TestSuiteBuilder":
        self._teardown = func
        return self

    def build(self) -> RuleTestSuite:
        if not self._name:
            raise ValueError("Test suite name is required")
        if self._rule is None:
            raise ValueError("Test suite rule is required")
        return RuleTestSuite(
            name=self._name,
            description=self._description,
            rule=self._rule,
            test_cases=list(self._cases),
            setup=self._setup,
            teardown=self._teardown,
        )


def create_test_suite() -> TestSuiteBuilder:
    return TestSuiteBuilder()
