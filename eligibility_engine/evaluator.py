"""JSON-Logic expression evaluator with depth and timeout guards."""

from __future__ import annotations

import copy
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import load_settings
from .errors import EvaluationError
from .operators import (
    BENEFIT_OPERATORS,
    OperatorFunc,
    OperatorRegistry,
    is_lazy,
    operator_registry,
)

logger = logging.getLogger(__name__)

EVAL_TIMEOUT = "EVAL_TIMEOUT"
EVAL_INVALID_RULE = "EVAL_INVALID_RULE"
EVAL_INVALID_DATA = "EVAL_INVALID_DATA"
EVAL_MAX_DEPTH = "EVAL_MAX_DEPTH"
EVAL_OPERATOR_ERROR = "EVAL_OPERATOR_ERROR"
EVAL_UNKNOWN = "EVAL_UNKNOWN"

EVALUATION_ERROR_CODES = (
    EVAL_TIMEOUT,
    EVAL_INVALID_RULE,
    EVAL_INVALID_DATA,
    EVAL_MAX_DEPTH,
    EVAL_OPERATOR_ERROR,
    EVAL_UNKNOWN,
)

# Abandoned (timed-out) evaluations keep their worker until they finish.
_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="rule-eval")


@dataclass
class EvaluationOptions:
    """Per-call evaluation options; ``None`` fields fall back to configuration."""

    custom_operators: Dict[str, OperatorFunc] = field(default_factory=dict)
    include_benefit_operators: bool = True
    max_depth: Optional[int] = None
    timeout_ms: Optional[int] = None
    strict: Optional[bool] = None
    capture_context: bool = False

    def resolved(self) -> "EvaluationOptions":
        settings = load_settings().evaluation
        return EvaluationOptions(
            custom_operators=dict(self.custom_operators),
            include_benefit_operators=self.include_benefit_operators,
            max_depth=settings.max_depth if self.max_depth is None else self.max_depth,
            timeout_ms=settings.timeout_ms if self.timeout_ms is None else self.timeout_ms,
            strict=settings.strict if self.strict is None else self.strict,
            capture_context=self.capture_context,
        )


@dataclass
class EvaluationResult:
    value: Any = False
    succeeded: bool = True
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    elapsed_ms: Optional[float] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "succeeded": self.succeeded,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "elapsed_ms": self.elapsed_ms,
            "context": self.context,
        }


class _Interpreter:
    """Walks an expression against a fixed snapshot of the operator table."""

    def __init__(self, operators: Mapping[str, OperatorFunc]):
        self.operators = operators

    def apply(self, expr: Any, data: Any) -> Any:
        if isinstance(expr, list):
            return [self.apply(item, data) for item in expr]
        if not isinstance(expr, Mapping) or len(expr) != 1:
            return expr

        (name, raw_args), = expr.items()
        func = self.operators.get(name)
        if func is None:
            raise EvaluationError(
                f"Unrecognized operation {name}",
                EVAL_INVALID_RULE,
                {"operator": name},
            )
        args = raw_args if isinstance(raw_args, list) else [raw_args]
        try:
            if is_lazy(func):
                return func(self.apply, args, data)
            return func(*[self.apply(arg, data) for arg in args])
        except EvaluationError:
            raise
        except RecursionError:
            raise
        except Exception as exc:
            raise EvaluationError(
                f"Operator '{name}' failed: {exc}",
                EVAL_OPERATOR_ERROR,
                {"operator": name},
            ) from exc


def calculate_depth(expr: Any, limit: Optional[int] = None) -> int:
    """
    Maximum nesting depth; every mapping and list level adds one.

    The walk is iterative so arbitrarily deep rules cannot exhaust the stack.
    With ``limit`` set it stops descending once the depth passes ``limit``
    and returns ``limit + 1``, which also bounds the walk on cyclic input.
    """
    deepest = 0
    stack = [(expr, 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, Mapping):
            children = list(node.values())
        elif isinstance(node, list):
            children = node
        else:
            continue
        depth += 1
        if limit is not None and depth > limit:
            return limit + 1
        deepest = max(deepest, depth)
        stack.extend((child, depth) for child in children)
    return deepest


def _check_inputs(rule: Any, data: Any) -> None:
    if rule is None:
        raise EvaluationError("Rule cannot be null or undefined", EVAL_INVALID_RULE)
    if data is not None and not isinstance(data, Mapping):
        raise EvaluationError("Data must be an object", EVAL_INVALID_DATA)


def _run_with_timeout(interpreter: _Interpreter, rule: Any, data: Any, timeout_ms: Optional[int]) -> Any:
    if not timeout_ms:
        return interpreter.apply(rule, data)
    future = _EXECUTOR.submit(interpreter.apply, rule, data)
    try:
        return future.result(timeout=timeout_ms / 1000)
    except FutureTimeoutError as exc:
        future.cancel()
        raise EvaluationError(
            f"Evaluation timed out after {timeout_ms}ms",
            EVAL_TIMEOUT,
            {"timeout_ms": timeout_ms},
        ) from exc


def _as_evaluation_error(exc: Exception) -> EvaluationError:
    if isinstance(exc, EvaluationError):
        return exc
    if isinstance(exc, RecursionError):
        return EvaluationError("Rule nesting exceeds the interpreter recursion limit", EVAL_MAX_DEPTH)
    return EvaluationError(str(exc) or exc.__class__.__name__, EVAL_UNKNOWN)


def evaluate(
    rule: Any,
    data: Optional[Mapping[str, Any]] = None,
    options: Optional[EvaluationOptions] = None,
    registry: Optional[OperatorRegistry] = None,
) -> EvaluationResult:
    """
    Evaluate ``rule`` against ``data``.

    Benefit operators and ``options.custom_operators`` are registered for the
    duration of the call only. In non-strict mode every failure is captured
    in the result with ``value=False``; strict mode raises ``EvaluationError``.
    """
    opts = (options or EvaluationOptions()).resolved()
    registry = registry or operator_registry
    start = time.perf_counter()
    context = dict(data) if isinstance(data, Mapping) else data

    try:
        _check_inputs(rule, data)
        depth = calculate_depth(rule, limit=opts.max_depth)
        if depth > opts.max_depth:
            raise EvaluationError(
                f"Rule depth exceeds maximum ({opts.max_depth})",
                EVAL_MAX_DEPTH,
                {"depth": depth, "max_depth": opts.max_depth},
            )

        operators: Dict[str, OperatorFunc] = dict(BENEFIT_OPERATORS) if opts.include_benefit_operators else {}
        operators.update(opts.custom_operators)
        with registry.scoped(operators) as table:
            value = _run_with_timeout(_Interpreter(table), rule, context or {}, opts.timeout_ms)
    except Exception as exc:
        error = _as_evaluation_error(exc)
        elapsed = (time.perf_counter() - start) * 1000
        if opts.strict:
            if error is exc:
                raise
            raise error from exc
        logger.warning("Rule evaluation failed (%s): %s", error.code, error.message)
        return EvaluationResult(
            value=False,
            succeeded=False,
            error_message=error.message,
            error_code=error.code,
            elapsed_ms=elapsed,
            context=copy.deepcopy(context) if opts.capture_context else None,
        )

    elapsed = (time.perf_counter() - start) * 1000
    logger.debug("Rule evaluated to %r in %.2fms", value, elapsed)
    return EvaluationResult(
        value=value,
        succeeded=True,
        elapsed_ms=elapsed,
        context=copy.deepcopy(context) if opts.capture_context else None,
    )


def evaluate_many(
    rules: Iterable[Any],
    data: Optional[Mapping[str, Any]] = None,
    options: Optional[EvaluationOptions] = None,
) -> List[EvaluationResult]:
    """Evaluate several rules against the same data context."""
    return [evaluate(rule, data, options) for rule in rules]


def evaluate_pairs(
    pairs: Sequence[Tuple[Any, Optional[Mapping[str, Any]]]],
    options: Optional[EvaluationOptions] = None,
) -> List[EvaluationResult]:
    return [evaluate(rule, data, options) for rule, data in pairs]
