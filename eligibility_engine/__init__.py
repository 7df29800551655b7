"""Benefits eligibility rule core: JSON-Logic evaluation, validation, explanation and testing."""

from .detailed import DetailedEvaluationResult, evaluate_with_details
from .errors import EligibilityEngineError, EvaluationError
from .evaluator import EvaluationOptions, EvaluationResult, evaluate
from .explanation import explain_result, explain_rule
from .operators import operator_registry
from .validator import ValidationOptions, ValidationResult, validate_rule

__all__ = [
    "DetailedEvaluationResult",
    "EligibilityEngineError",
    "EvaluationError",
    "EvaluationOptions",
    "EvaluationResult",
    "evaluate",
    "evaluate_with_details",
    "explain_result",
    "explain_rule",
    "operator_registry",
    "validate_rule",
    "ValidationOptions",
    "ValidationResult",
]
