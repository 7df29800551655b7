"""
Operator tables for the JSON-Logic interpreter.

Eager operators receive already-evaluated operands as positional arguments.
Operators decorated with ``lazy_operator`` receive ``(apply, args, data)``
and decide themselves which operands to evaluate.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from .thresholds import snap_gross_income_limit

logger = logging.getLogger(__name__)

OperatorFunc = Callable[..., Any]
ApplyFunc = Callable[[Any, Any], Any]

_NO_ARG = object()


def lazy_operator(func: OperatorFunc) -> OperatorFunc:
    """Mark an operator as receiving unevaluated operands."""
    func.lazy = True  # type: ignore[attr-defined]
    return func


def is_lazy(func: OperatorFunc) -> bool:
    return bool(getattr(func, "lazy", False))


# ---------------------------------------------------------------------------
# Value helpers shared with the detailed evaluator
# ---------------------------------------------------------------------------


def get_path(data: Any, path: Any, default: Any = None) -> Any:
    """Resolve a dotted path (or integer index) against mappings and lists."""
    if path is None or path == "":
        return data
    current: Any = data
    for part in str(path).split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return default
            if index < 0 or index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def is_truthy(value: Any) -> bool:
    if isinstance(value, Mapping):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def to_number(value: Any) -> Any:
    """Coerce to int/float; values with no numeric reading become NaN."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        try:
            number = float(text)
        except ValueError:
            return math.nan
        if number.is_integer() and "." not in text and "e" not in text.lower():
            return int(number)
        return number
    return math.nan


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (list, tuple, Mapping)) or isinstance(right, (list, tuple, Mapping)):
        return left == right
    return to_number(left) == to_number(right)


def strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _ordered(left: Any, right: Any, check: Callable[[Any, Any], bool]) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return check(left, right)
    return check(to_number(left), to_number(right))


def membership(needle: Any, haystack: Any) -> bool:
    if isinstance(haystack, str):
        return str(needle) in haystack
    if isinstance(haystack, (list, tuple)):
        return any(strict_equals(needle, item) for item in haystack)
    return False


def compare(operator: str, left: Any, right: Any) -> bool:
    """Two-operand comparison with the interpreter's own semantics."""
    if operator == "<":
        return _ordered(left, right, lambda a, b: a < b)
    if operator == "<=":
        return _ordered(left, right, lambda a, b: a <= b)
    if operator == ">":
        return _ordered(left, right, lambda a, b: a > b)
    if operator == ">=":
        return _ordered(left, right, lambda a, b: a >= b)
    if operator == "==":
        return loose_equals(left, right)
    if operator == "!=":
        return not loose_equals(left, right)
    if operator == "===":
        return strict_equals(left, right)
    if operator == "!==":
        return not strict_equals(left, right)
    if operator == "in":
        return membership(left, right)
    return False


def _stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _stringify(item) for item in value)
    return str(value)


# ---------------------------------------------------------------------------
# Core operators
# ---------------------------------------------------------------------------


@lazy_operator
def _op_var(apply: ApplyFunc, args: List[Any], data: Any) -> Any:
    values = [apply(arg, data) for arg in args]
    path = values[0] if values else None
    default = values[1] if len(values) > 1 else None
    if isinstance(path, (list, tuple)):
        path = path[0] if path else None
    return get_path(data, path, default)


@lazy_operator
def _op_missing(apply: ApplyFunc, args: List[Any], data: Any) -> List[Any]:
    keys = [apply(arg, data) for arg in args]
    if keys and isinstance(keys[0], list):
        keys = keys[0]
    missing = []
    for key in keys:
        value = get_path(data, key)
        if value is None or value == "":
            missing.append(key)
    return missing


@lazy_operator
def _op_missing_some(apply: ApplyFunc, args: List[Any], data: Any) -> List[Any]:
    need_count = to_number(apply(args[0], data)) if args else 0
    keys = apply(args[1], data) if len(args) > 1 else []
    missing = _op_missing(apply, [keys], data)
    if len(keys) - len(missing) >= need_count:
        return []
    return missing


@lazy_operator
def _op_if(apply: ApplyFunc, args: List[Any], data: Any) -> Any:
    index = 0
    while index < len(args) - 1:
        if is_truthy(apply(args[index], data)):
            return apply(args[index + 1], data)
        index += 2
    if len(args) % 2 == 1:
        return apply(args[-1], data)
    return None


@lazy_operator
def _op_and(apply: ApplyFunc, args: List[Any], data: Any) -> Any:
    current: Any = None
    for arg in args:
        current = apply(arg, data)
        if not is_truthy(current):
            return current
    return current


@lazy_operator
def _op_or(apply: ApplyFunc, args: List[Any], data: Any) -> Any:
    current: Any = None
    for arg in args:
        current = apply(arg, data)
        if is_truthy(current):
            return current
    return current


def _scope_items(apply: ApplyFunc, args: List[Any], data: Any) -> List[Any]:
    items = apply(args[0], data) if args else []
    if not isinstance(items, (list, tuple)):
        return []
    return list(items)


@lazy_operator
def _op_map(apply: ApplyFunc, args: List[Any], data: Any) -> List[Any]:
    logic = args[1] if len(args) > 1 else None
    return [apply(logic, item) for item in _scope_items(apply, args, data)]


@lazy_operator
def _op_filter(apply: ApplyFunc, args: List[Any], data: Any) -> List[Any]:
    logic = args[1] if len(args) > 1 else None
    return [item for item in _scope_items(apply, args, data) if is_truthy(apply(logic, item))]


@lazy_operator
def _op_reduce(apply: ApplyFunc, args: List[Any], data: Any) -> Any:
    logic = args[1] if len(args) > 1 else None
    accumulator = apply(args[2], data) if len(args) > 2 else None
    for item in _scope_items(apply, args, data):
        accumulator = apply(logic, {"current": item, "accumulator": accumulator})
    return accumulator


@lazy_operator
def _op_all(apply: ApplyFunc, args: List[Any], data: Any) -> bool:
    items = _scope_items(apply, args, data)
    if not items:
        return False
    logic = args[1] if len(args) > 1 else None
    return all(is_truthy(apply(logic, item)) for item in items)


@lazy_operator
def _op_none(apply: ApplyFunc, args: List[Any], data: Any) -> bool:
    logic = args[1] if len(args) > 1 else None
    return not any(is_truthy(apply(logic, item)) for item in _scope_items(apply, args, data))


@lazy_operator
def _op_some(apply: ApplyFunc, args: List[Any], data: Any) -> bool:
    logic = args[1] if len(args) > 1 else None
    return any(is_truthy(apply(logic, item)) for item in _scope_items(apply, args, data))


def _between(check: Callable[[Any, Any], bool]) -> OperatorFunc:
    def operator(a: Any = None, b: Any = None, c: Any = _NO_ARG) -> bool:
        if c is _NO_ARG:
            return _ordered(a, b, check)
        return _ordered(a, b, check) and _ordered(b, c, check)

    return operator


def _op_not(*args: Any) -> bool:
    return not is_truthy(args[0] if args else None)


def _op_double_not(*args: Any) -> bool:
    return is_truthy(args[0] if args else None)


def _op_add(*args: Any) -> Any:
    total: Any = 0
    for value in args:
        total += to_number(value)
    return total


def _op_subtract(a: Any, b: Any = _NO_ARG) -> Any:
    if b is _NO_ARG:
        return -to_number(a)
    return to_number(a) - to_number(b)


def _op_multiply(*args: Any) -> Any:
    product: Any = 1
    for value in args:
        product *= to_number(value)
    return product


def _op_divide(a: Any, b: Any) -> Any:
    divisor = to_number(b)
    if divisor == 0:
        raise ZeroDivisionError("division by zero")
    return to_number(a) / divisor


def _op_modulo(a: Any, b: Any) -> Any:
    left, right = to_number(a), to_number(b)
    if right == 0:
        raise ZeroDivisionError("modulo by zero")
    result = math.fmod(left, right)
    if isinstance(left, int) and isinstance(right, int):
        return int(result)
    return result


def _op_min(*args: Any) -> Any:
    if not args:
        return None
    return min(to_number(value) for value in args)


def _op_max(*args: Any) -> Any:
    if not args:
        return None
    return max(to_number(value) for value in args)


def _op_merge(*args: Any) -> List[Any]:
    merged: List[Any] = []
    for value in args:
        if isinstance(value, (list, tuple)):
            merged.extend(value)
        else:
            merged.append(value)
    return merged


def _op_cat(*args: Any) -> str:
    return "".join(_stringify(value) for value in args)


def _op_substr(source: Any, start: Any = 0, length: Any = None) -> str:
    text = _stringify(source)
    begin = int(to_number(start))
    if begin < 0:
        begin = max(len(text) + begin, 0)
    if length is None:
        return text[begin:]
    count = int(to_number(length))
    if count < 0:
        return text[begin:len(text) + count]
    return text[begin:begin + count]


def _op_log(value: Any = None, *_rest: Any) -> Any:
    logger.info("json-logic log: %r", value)
    return value


def build_core_operators() -> Dict[str, OperatorFunc]:
    return {
        "var": _op_var,
        "missing": _op_missing,
        "missing_some": _op_missing_some,
        "if": _op_if,
        "?:": _op_if,
        "and": _op_and,
        "or": _op_or,
        "!": _op_not,
        "!!": _op_double_not,
        "==": lambda a=None, b=None: loose_equals(a, b),
        "!=": lambda a=None, b=None: not loose_equals(a, b),
        "===": lambda a=None, b=None: strict_equals(a, b),
        "!==": lambda a=None, b=None: not strict_equals(a, b),
        ">": lambda a=None, b=None: compare(">", a, b),
        ">=": lambda a=None, b=None: compare(">=", a, b),
        "<": _between(lambda a, b: a < b),
        "<=": _between(lambda a, b: a <= b),
        "+": _op_add,
        "-": _op_subtract,
        "*": _op_multiply,
        "/": _op_divide,
        "%": _op_modulo,
        "min": _op_min,
        "max": _op_max,
        "map": _op_map,
        "filter": _op_filter,
        "reduce": _op_reduce,
        "all": _op_all,
        "none": _op_none,
        "some": _op_some,
        "merge": _op_merge,
        "in": lambda a=None, b=None: membership(a, b),
        "cat": _op_cat,
        "substr": _op_substr,
        "log": _op_log,
    }


# ---------------------------------------------------------------------------
# Benefit operators
# ---------------------------------------------------------------------------


def parse_iso_date(value: Any) -> date:
    """Parse the leading YYYY-MM-DD components without any timezone handling."""
    text = str(value or "").strip()
    parts = text[:10].split("-")
    if len(parts) != 3:
        raise ValueError(f"Invalid date: {value!r}")
    year, month, day = (int(part) for part in parts)
    return date(year, month, day)


def age_from_dob(dob: Any, today: Optional[date] = None) -> int:
    birth = parse_iso_date(dob)
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def _parse_moment(value: Any) -> datetime:
    text = str(value or "").strip()
    if len(text) == 10:
        parsed = parse_iso_date(text)
        return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
    moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _between_inclusive(value: Any, minimum: Any, maximum: Any) -> bool:
    number = to_number(value)
    return to_number(minimum) <= number <= to_number(maximum)


def _within_percent(value: Any, target: Any, percent: Any) -> bool:
    target_number = to_number(target)
    return abs(to_number(value) - target_number) <= target_number * (to_number(percent) / 100)


def _date_in_past(value: Any) -> bool:
    return _parse_moment(value) < datetime.now(timezone.utc)


def _date_in_future(value: Any) -> bool:
    return _parse_moment(value) > datetime.now(timezone.utc)


def _matches_any(value: Any, options: Any) -> bool:
    if value is None or not isinstance(options, (list, tuple)):
        return False
    lowered = str(value).lower()
    return any(str(option).lower() == lowered for option in options)


def _as_list(values: Any) -> List[Any]:
    return list(values) if isinstance(values, (list, tuple)) else []


def snap_income_threshold_130_fpl(household_size: Any) -> int:
    size = int(to_number(household_size))
    threshold = snap_gross_income_limit(size)
    logger.debug("SNAP 130%% FPL threshold for %s people: $%s/month", size, threshold)
    return threshold


def snap_income_eligible(household_income: Any, household_size: Any) -> bool:
    return to_number(household_income) <= snap_income_threshold_130_fpl(household_size)


def _wic_benefit_amount(benefit_info: Any = None) -> Any:
    return benefit_info


@lazy_operator
def _op_switch(apply: ApplyFunc, args: List[Any], data: Any) -> Any:
    if not args:
        return None
    value = apply(args[0], data)
    cases = [case for case in args[1:] if isinstance(case, Mapping)]
    for case in cases:
        if "case" in case and strict_equals(apply(case["case"], data), value):
            return apply(case.get("do"), data)
    for case in cases:
        if "default" in case:
            return apply(case["default"], data)
    return None


BENEFIT_OPERATORS: Dict[str, OperatorFunc] = {
    "between": _between_inclusive,
    "within_percent": _within_percent,
    "age_from_dob": lambda dob=None: age_from_dob(dob),
    "date_in_past": _date_in_past,
    "date_in_future": _date_in_future,
    "matches_any": _matches_any,
    "count_true": lambda values=None: sum(1 for item in _as_list(values) if is_truthy(item)),
    "all_true": lambda values=None: all(is_truthy(item) for item in _as_list(values)),
    "any_true": lambda values=None: any(is_truthy(item) for item in _as_list(values)),
    "snap_income_threshold_130_fpl": snap_income_threshold_130_fpl,
    "snap_income_eligible": snap_income_eligible,
    "wic_benefit_amount": _wic_benefit_amount,
    "switch": _op_switch,
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class OperatorRegistry:
    """Process-wide operator table with scoped, lock-protected registration."""

    def __init__(self, operators: Optional[Mapping[str, OperatorFunc]] = None):
        self._operators: Dict[str, OperatorFunc] = dict(operators or {})
        self._lock = threading.RLock()

    def add_operation(self, name: str, func: OperatorFunc) -> None:
        with self._lock:
            self._operators[name] = func

    def remove_operation(self, name: str) -> None:
        with self._lock:
            self._operators.pop(name, None)

    def has_operation(self, name: str) -> bool:
        return name in self._operators

    def names(self) -> List[str]:
        return sorted(self._operators)

    def snapshot(self) -> Dict[str, OperatorFunc]:
        with self._lock:
            return dict(self._operators)

    @contextmanager
    def scoped(self, operators: Mapping[str, OperatorFunc]) -> Iterator[Dict[str, OperatorFunc]]:
        """
        Register ``operators`` for the duration of the block and yield a snapshot
        of the resulting table.

        The lock is held for the whole block, so register/evaluate/unregister
        windows of concurrent callers never interleave. Entries shadowed by
        the scoped operators are restored on exit.
        """
        with self._lock:
            shadowed = {name: self._operators[name] for name in operators if name in self._operators}
            for name, func in operators.items():
                self._operators[name] = func
            try:
                yield dict(self._operators)
            finally:
                for name in operators:
                    self._operators.pop(name, None)
                self._operators.update(shadowed)


operator_registry = OperatorRegistry(build_core_operators())
