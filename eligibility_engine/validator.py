"""Static checks for JSON-Logic rules: structure, depth, complexity and operators."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from .config import load_settings
from .evaluator import calculate_depth

logger = logging.getLogger(__name__)

STANDARD_OPERATORS: List[str] = [
    # logic
    "if", "and", "or", "!", "!!",
    # comparison
    "==", "===", "!=", "!==", ">", ">=", "<", "<=",
    # arithmetic
    "+", "-", "*", "/", "%", "min", "max",
    # array
    "map", "filter", "reduce", "all", "some", "none", "merge", "in",
    # string
    "cat", "substr",
    # misc
    "var", "missing", "missing_some", "log",
]

VAL_INVALID_STRUCTURE = "VAL_INVALID_STRUCTURE"
VAL_UNKNOWN_OPERATOR = "VAL_UNKNOWN_OPERATOR"
VAL_DISALLOWED_OPERATOR = "VAL_DISALLOWED_OPERATOR"
VAL_MAX_DEPTH = "VAL_MAX_DEPTH"
VAL_MAX_COMPLEXITY = "VAL_MAX_COMPLEXITY"
VAL_INVALID_OPERANDS = "VAL_INVALID_OPERANDS"
VAL_CIRCULAR_REFERENCE = "VAL_CIRCULAR_REFERENCE"
VAL_MISSING_VARIABLE = "VAL_MISSING_VARIABLE"
COMPLEXITY_WARNING = "COMPLEXITY_WARNING"

_ARRAY_OPERATORS = {"map", "filter", "reduce", "all", "some", "none"}
_PRIMITIVES = (str, int, float, bool, type(None))


class _Undefined:
    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


class ValidationIssue(BaseModel):
    message: str
    code: str
    severity: str = "error"


class ValidationOptions(BaseModel):
    allowed_operators: Optional[List[str]] = None
    disallowed_operators: List[str] = Field(default_factory=list)
    max_complexity: Optional[int] = None
    max_depth: Optional[int] = None
    required_variables: List[str] = Field(default_factory=list)
    strict: Optional[bool] = None


class ValidationResult(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    complexity: Optional[int] = None
    operators: List[str] = Field(default_factory=list)
    variables: List[str] = Field(default_factory=list)


def _has_cycle(node: Any) -> bool:
    # iterative: nesting depth is not yet known to be bounded here
    stack = [(node, frozenset())]
    while stack:
        current, ancestors = stack.pop()
        if not isinstance(current, (Mapping, list)):
            continue
        if id(current) in ancestors:
            return True
        path = ancestors | {id(current)}
        children = current.values() if isinstance(current, Mapping) else current
        stack.extend((child, path) for child in children)
    return False


def _is_json_value(node: Any) -> bool:
    if isinstance(node, _PRIMITIVES):
        return True
    if isinstance(node, list):
        return all(_is_json_value(item) for item in node)
    if isinstance(node, Mapping):
        return all(isinstance(key, str) and _is_json_value(value) for key, value in node.items())
    return False


def calculate_complexity(rule: Any) -> int:
    """
    Score a rule for review effort.

    Visiting a container at depth d costs 2*d; each mapping key costs 0.5
    for ``var``, 3 for array operators and 1 otherwise.
    """
    total = 0.0

    def visit(node: Any, depth: int) -> None:
        nonlocal total
        if not isinstance(node, (Mapping, list)):
            return
        total += depth * 2
        if isinstance(node, list):
            for item in node:
                visit(item, depth + 1)
            return
        for key, value in node.items():
            if key == "var":
                total += 0.5
            elif key in _ARRAY_OPERATORS:
                total += 3
            else:
                total += 1
            visit(value, depth + 1)

    visit(rule, 0)
    return int(round(total))


def complexity_band(complexity: int) -> str:
    if complexity > 80:
        return "very-complex"
    if complexity > 50:
        return "complex"
    if complexity > 20:
        return "moderate"
    return "simple"


def _dedupe(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def extract_operators(rule: Any) -> List[str]:
    found: List[str] = []

    def visit(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                visit(item)
        elif isinstance(node, Mapping):
            for key, value in node.items():
                if key != "var":
                    found.append(key)
                visit(value)

    visit(rule)
    return _dedupe(found)


def extract_variables(rule: Any) -> List[str]:
    found: List[str] = []

    def visit(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                visit(item)
        elif isinstance(node, Mapping):
            for key, value in node.items():
                if key == "var":
                    if isinstance(value, str):
                        found.append(value)
                    elif isinstance(value, list) and value and isinstance(value[0], str):
                        found.append(value[0])
                visit(value)

    visit(rule)
    return _dedupe(found)


def _resolve(options: Optional[ValidationOptions]) -> ValidationOptions:
    opts = options or ValidationOptions()
    settings = load_settings().validation
    return opts.model_copy(
        update={
            "allowed_operators": list(STANDARD_OPERATORS) if opts.allowed_operators is None else opts.allowed_operators,
            "max_complexity": settings.max_complexity if opts.max_complexity is None else opts.max_complexity,
            "max_depth": settings.max_depth if opts.max_depth is None else opts.max_depth,
            "strict": settings.strict if opts.strict is None else opts.strict,
        }
    )


def validate_rule(rule: Any = UNDEFINED, options: Optional[ValidationOptions] = None) -> ValidationResult:
    """Validate a rule; ``UNDEFINED`` (the default) stands for a missing rule."""
    opts = _resolve(options)
    errors: List[ValidationIssue] = []

    if rule is UNDEFINED:
        errors.append(ValidationIssue(message="Rule is undefined", code=VAL_INVALID_STRUCTURE, severity="critical"))
        return ValidationResult(valid=False, errors=errors)

    if _has_cycle(rule):
        errors.append(
            ValidationIssue(
                message="Rule contains circular reference",
                code=VAL_CIRCULAR_REFERENCE,
                severity="critical",
            )
        )
        return ValidationResult(valid=False, errors=errors)

    depth = calculate_depth(rule)
    depth_error = ValidationIssue(
        message=f"Rule depth ({depth}) exceeds maximum ({opts.max_depth})",
        code=VAL_MAX_DEPTH,
    )
    try:
        return _validate_structure(rule, depth, depth_error, opts)
    except RecursionError:
        logger.warning("Rule nesting (depth %d) is too deep to analyse", depth)
        if depth <= opts.max_depth:
            depth_error = ValidationIssue(message=f"Rule nesting ({depth}) is too deep to analyse", code=VAL_MAX_DEPTH)
        return ValidationResult(valid=False, errors=[depth_error])


def _validate_structure(
    rule: Any, depth: int, depth_error: ValidationIssue, opts: ValidationOptions
) -> ValidationResult:
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if not _is_json_value(rule):
        errors.append(ValidationIssue(message="Invalid rule structure", code=VAL_INVALID_STRUCTURE, severity="critical"))
        return ValidationResult(valid=False, errors=errors)

    if depth > opts.max_depth:
        errors.append(depth_error)

    complexity = calculate_complexity(rule)
    if complexity > opts.max_complexity:
        errors.append(
            ValidationIssue(
                message=f"Rule complexity ({complexity}) exceeds maximum ({opts.max_complexity})",
                code=VAL_MAX_COMPLEXITY,
            )
        )
    if complexity > opts.max_complexity * 0.8:
        warnings.append(
            ValidationIssue(
                message=f"Rule complexity ({complexity}) is approaching maximum",
                code=COMPLEXITY_WARNING,
                severity="warning",
            )
        )

    operators = extract_operators(rule)
    variables = extract_variables(rule)

    for operator in operators:
        if operator in opts.disallowed_operators:
            errors.append(
                ValidationIssue(message=f'Operator "{operator}" is disallowed', code=VAL_DISALLOWED_OPERATOR)
            )
        if operator not in opts.allowed_operators:
            if opts.strict:
                errors.append(
                    ValidationIssue(message=f'Unknown operator "{operator}"', code=VAL_UNKNOWN_OPERATOR)
                )
            else:
                warnings.append(
                    ValidationIssue(
                        message=f'Unknown operator "{operator}" - may be custom',
                        code=VAL_UNKNOWN_OPERATOR,
                        severity="warning",
                    )
                )

    for required in opts.required_variables:
        if required not in variables:
            errors.append(
                ValidationIssue(
                    message=f'Required variable "{required}" not found in rule',
                    code=VAL_MISSING_VARIABLE,
                )
            )

    if errors:
        logger.debug("Rule failed validation with %d error(s)", len(errors))
    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        complexity=complexity,
        operators=operators,
        variables=variables,
    )


def validate_rules(rules: Sequence[Any], options: Optional[ValidationOptions] = None) -> List[ValidationResult]:
    return [validate_rule(rule, options) for rule in rules]


def is_valid_rule(rule: Any, options: Optional[ValidationOptions] = None) -> bool:
    return validate_rule(rule, options).valid


_REMOVED = object()


def sanitize_rule(rule: Any, disallowed_operators: Iterable[str] = ()) -> Any:
    """
    Drop disallowed operators and any containers left empty.

    Returns ``None`` when nothing usable remains at the root.
    """
    disallowed = set(disallowed_operators)

    def clean(node: Any) -> Any:
        if isinstance(node, list):
            items = [item for item in (clean(child) for child in node) if item is not _REMOVED]
            return items if items else _REMOVED
        if isinstance(node, Mapping):
            kept = {}
            for key, value in node.items():
                if key in disallowed:
                    continue
                cleaned = clean(value)
                if cleaned is not _REMOVED:
                    kept[key] = cleaned
            return kept if kept else _REMOVED
        return node

    result = clean(rule)
    return None if result is _REMOVED else result
