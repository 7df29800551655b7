"""
Natural-language explanations for rules and eligibility results.

Three audience levels are supported: ``simple``, ``standard`` and
``technical``. The level changes wording only; the lists of criteria,
missing fields and suggestions are the same at every level.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from .models import EligibilityResult
from .validator import complexity_band, validate_rule

LANGUAGE_LEVELS = ("simple", "standard", "technical")

_NOT_PROVIDED = object()

FIELD_NAME_MAPPINGS: Dict[str, str] = {
    # demographics
    "age": "your age",
    "isPregnant": "pregnancy status",
    "hasChildren": "whether you have children",
    "hasQualifyingDisability": "qualifying disability status",
    "isCitizen": "citizenship status",
    "isLegalResident": "legal residency status",
    "ssn": "Social Security number",
    # financial
    "householdIncome": "your household's monthly income",
    "householdSize": "your household size",
    "income": "your income",
    "grossIncome": "your gross income",
    "netIncome": "your net income",
    "monthlyIncome": "your monthly income",
    "annualIncome": "your annual income",
    "assets": "your household assets",
    "resources": "your available resources",
    "liquidAssets": "your liquid assets",
    "vehicleValue": "your vehicle value",
    "bankBalance": "your bank account balance",
    # location
    "state": "your state of residence",
    "stateHasExpanded": "whether your state has expanded coverage",
    "livesInState": "state residency",
    "zipCode": "your ZIP code",
    "county": "your county",
    "jurisdiction": "your location",
    # program-specific
    "hasHealthInsurance": "current health insurance coverage",
    "employmentStatus": "your employment status",
    "isStudent": "student status",
    "isVeteran": "veteran status",
    "isSenior": "senior status (65+)",
    "hasMinorChildren": "whether you have children under 18",
    # housing
    "housingCosts": "your housing costs",
    "rentAmount": "your monthly rent",
    "mortgageAmount": "your monthly mortgage",
    "isHomeless": "housing situation",
    # other benefits
    "receivesSSI": "Supplemental Security Income (SSI)",
    "receivesSNAP": "SNAP benefits",
    "receivesTANF": "TANF benefits",
    "receivesWIC": "WIC benefits",
    "receivesUnemployment": "unemployment benefits",
}


def format_field_name(field_name: str) -> str:
    """Map a profile field to a user-facing phrase."""
    if field_name in FIELD_NAME_MAPPINGS:
        return FIELD_NAME_MAPPINGS[field_name]
    spaced = re.sub(r"([A-Z])", r" \1", str(field_name)).replace("_", " ")
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), spaced).strip()


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if value > 100:
        return f"${value:,}" if isinstance(value, int) else f"${value:,.2f}"
    return str(value)


def format_value(value: Any = _NOT_PROVIDED) -> str:
    if value is _NOT_PROVIDED:
        return "not provided"
    if value is None:
        return "empty"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float)):
        return _format_number(value)
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, (list, tuple)):
        return f"[{len(value)} items]"
    if isinstance(value, Mapping) and "var" in value:
        path = value["var"]
        if isinstance(path, list):
            path = path[0] if path else ""
        return format_field_name(str(path))
    return json.dumps(value, default=str)


def _operand(operands: List[Any], index: int) -> Any:
    return operands[index] if index < len(operands) else _NOT_PROVIDED


def _binary(template: str) -> Callable[[List[Any]], str]:
    def describe(operands: List[Any]) -> str:
        return template.format(
            left=format_value(_operand(operands, 0)),
            right=format_value(_operand(operands, 1)),
        )

    return describe


def _describe_minus(operands: List[Any]) -> str:
    right = _operand(operands, 1)
    if right is _NOT_PROVIDED or not right:
        return f"negative {format_value(_operand(operands, 0))}"
    return f"{format_value(_operand(operands, 0))} minus {format_value(right)}"


OPERATOR_DESCRIPTIONS: Dict[str, Callable[[List[Any]], str]] = {
    ">": _binary("{left} is greater than {right}"),
    ">=": _binary("{left} is greater than or equal to {right}"),
    "<": _binary("{left} is less than {right}"),
    "<=": _binary("{left} is less than or equal to {right}"),
    "==": _binary("{left} equals {right}"),
    "===": _binary("{left} strictly equals {right}"),
    "!=": _binary("{left} does not equal {right}"),
    "!==": _binary("{left} does not strictly equal {right}"),
    "and": lambda ops: f"All of the following are true: {len(ops)} conditions",
    "or": lambda ops: f"At least one of the following is true: {len(ops)} conditions",
    "!": lambda ops: f"NOT {format_value(_operand(ops, 0))}",
    "if": lambda ops: (
        f"If {format_value(_operand(ops, 0))}, then {format_value(_operand(ops, 1))}, "
        f"otherwise {format_value(_operand(ops, 2))}"
    ),
    "in": _binary("{left} is in {right}"),
    "var": lambda ops: f"the value of {ops[0] if ops else ''}",
    "+": lambda ops: f"sum of {len(ops)} values",
    "-": _describe_minus,
    "*": lambda ops: f"product of {len(ops)} values",
    "/": _binary("{left} divided by {right}"),
    "%": _binary("{left} modulo {right}"),
    "between": lambda ops: (
        f"{format_value(_operand(ops, 0))} is between {format_value(_operand(ops, 1))} "
        f"and {format_value(_operand(ops, 2))}"
    ),
    "age_from_dob": lambda ops: f"age calculated from date of birth {format_value(_operand(ops, 0))}",
    "matches_any": lambda ops: f"{format_value(_operand(ops, 0))} matches one of the allowed values",
}

SIMPLE_DESCRIPTIONS: Dict[str, str] = {
    ">": "Your value must be higher",
    "<": "Your value must be lower",
    ">=": "Your value must be at least the required amount",
    "<=": "Your value must be no more than the required amount",
    "==": "Your value must match exactly",
    "and": "You must meet all of these requirements",
    "or": "You must meet at least one of these requirements",
    "in": "Your value must be one of the allowed options",
    "between": "Your value must be in the acceptable range",
}


class ExplanationOptions(BaseModel):
    language_level: str = "standard"
    include_suggestions: bool = True


class ExplanationNode(BaseModel):
    type: str
    description: str
    level: int
    operator: Optional[str] = None
    variable: Optional[str] = None
    value: Any = None
    children: Optional[List["ExplanationNode"]] = None


ExplanationNode.model_rebuild()

class RuleExplanation(BaseModel):
    description: str
    breakdown: List[ExplanationNode] = Field(default_factory=list)
    variables: List[str] = Field(default_factory=list)
    operators: List[str] = Field(default_factory=list)
    complexity: str = "simple"
    criteria_checked: List[str] = Field(default_factory=list)


class ResultExplanation(BaseModel):
    summary: str
    reasoning: List[str] = Field(default_factory=list)
    criteria_checked: List[str] = Field(default_factory=list)
    criteria_passed: List[str] = Field(default_factory=list)
    criteria_failed: List[str] = Field(default_factory=list)
    missing_information: List[str] = Field(default_factory=list)
    what_would_change: Optional[List[str]] = None
    plain_language: str = ""


class ChangedField(BaseModel):
    field: str
    before: Any = None
    after: Any = None


class DifferenceExplanation(BaseModel):
    summary: str
    differences: List[str] = Field(default_factory=list)
    changed_fields: List[ChangedField] = Field(default_factory=list)


def _operands_of(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


# ---------------------------------------------------------------------------
# Rule descriptions
# ---------------------------------------------------------------------------


def generate_rule_description(rule: Any, language_level: str = "standard") -> str:
    if not isinstance(rule, (Mapping, list)):
        return f"The value must be {format_value(rule)}"
    if isinstance(rule, list):
        return "Multiple conditions must be met"
    if not rule:
        return "Empty rule"

    operator = next(iter(rule))
    operands = _operands_of(rule[operator])
    if language_level == "simple":
        return SIMPLE_DESCRIPTIONS.get(operator, "You must meet this requirement")
    if language_level == "technical":
        return f"Rule: {json.dumps(rule, separators=(',', ':'), default=str)}"
    describe = OPERATOR_DESCRIPTIONS.get(operator)
    return describe(operands) if describe else f"Must meet {operator} condition"


def generate_explanation_tree(rule: Any, level: int = 0) -> List[ExplanationNode]:
    if isinstance(rule, list):
        children: List[ExplanationNode] = []
        for item in rule:
            children.extend(generate_explanation_tree(item, level + 1))
        return [
            ExplanationNode(
                type="expression",
                description=f"Array of {len(rule)} items",
                level=level,
                children=children,
            )
        ]
    if not isinstance(rule, Mapping):
        return [
            ExplanationNode(
                type="constant",
                value=rule,
                description=f"Constant value: {format_value(rule)}",
                level=level,
            )
        ]

    nodes: List[ExplanationNode] = []
    for operator, value in rule.items():
        if operator == "var":
            path = value[0] if isinstance(value, list) and value else value
            nodes.append(
                ExplanationNode(
                    type="variable",
                    operator=operator,
                    variable=str(path),
                    description=f"Get {format_field_name(str(path))}",
                    level=level,
                )
            )
            continue
        operands = _operands_of(value)
        describe = OPERATOR_DESCRIPTIONS.get(operator)
        children = []
        for operand in operands:
            children.extend(generate_explanation_tree(operand, level + 1))
        nodes.append(
            ExplanationNode(
                type="operator",
                operator=operator,
                description=describe(operands) if describe else f"Operation: {operator}",
                level=level,
                children=children or None,
            )
        )
    return nodes


def explain_rule(rule: Any, language_level: str = "standard") -> RuleExplanation:
    validation = validate_rule(rule)
    return RuleExplanation(
        description=generate_rule_description(rule, language_level),
        breakdown=generate_explanation_tree(rule, 0),
        variables=validation.variables,
        operators=validation.operators,
        complexity=complexity_band(validation.complexity or 0),
        criteria_checked=[format_field_name(variable) for variable in validation.variables],
    )


def format_rule_explanation(explanation: RuleExplanation) -> str:
    lines = [explanation.description, "", "This rule checks:"]
    lines.extend(f"• {criterion}" for criterion in explanation.criteria_checked)
    if explanation.complexity != "simple":
        lines.append("")
        lines.append(f"Complexity: {explanation.complexity}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Result explanations
# ---------------------------------------------------------------------------


def _verified(field: str) -> str:
    return f"✓ We verified {format_field_name(field)} and you meet this requirement"


def analyze_result(result: EligibilityResult, criteria_checked: List[str]) -> Dict[str, List[str]]:
    reasoning: List[str] = []
    passed: List[str] = []
    failed: List[str] = []

    if result.eligible:
        reasoning.append("You meet all the eligibility requirements for this program.")
        if result.criteria:
            passed.extend(_verified(item.criterion) for item in result.criteria)
        else:
            passed.extend(f"✓ We verified {item} and you meet this requirement" for item in criteria_checked)
    elif result.incomplete:
        reasoning.append("We need more information to determine your eligibility.")
        for field in result.missing_fields:
            description = format_field_name(field)
            reasoning.append(f"Please provide information about {description}")
            failed.append(f"? We need information about {description} to continue")
    else:
        reasoning.append(
            "Based on the information provided, you do not currently meet the eligibility requirements."
        )
        for item in result.criteria:
            description = item.description or format_field_name(item.criterion)
            if item.met:
                passed.append(_verified(item.criterion))
            else:
                failed.append(f"✗ {description} does not meet the program requirements")
                reasoning.append(f"• {description} does not meet the program requirements")

    return {"reasoning": reasoning, "passed": passed, "failed": failed}


def _target_phrase(operator: Optional[str], required: str) -> Optional[str]:
    if operator in (">", ">="):
        return f"to at least {required}"
    if operator in ("<", "<="):
        return f"to {required} or below"
    return None


def generate_change_suggestions(result: EligibilityResult) -> List[str]:
    suggestions: List[str] = []
    if result.missing_fields:
        suggestions.append("Complete your profile by providing the missing information")

    for item in result.criteria:
        if item.met or item.threshold is None:
            continue
        field = format_field_name(item.criterion)
        current = format_value(item.value)
        required = format_value(item.threshold)
        target = _target_phrase(item.operator, required)
        name = item.criterion.lower()
        if "income" in name:
            # income limits are ceilings unless the comparison says otherwise
            target = target or f"to {required} or below"
            suggestions.append(f"If {field} changes from {current} {target}, you may qualify")
        elif "age" in name:
            suggestions.append(f"This program requires a different age range than your current age of {current}")
        elif target:
            suggestions.append(f"If {field} changes from {current} {target}, you may qualify")
        else:
            suggestions.append(
                f"If {field} changes from {current} to meet the requirement of {required}, you may qualify"
            )
    return suggestions


def _status_message(result: EligibilityResult, language_level: str) -> str:
    simple = language_level == "simple"
    if result.eligible:
        if simple:
            return "Good news! You qualify for this program."
        return "Based on the information you provided, you appear to be eligible for this benefit program."
    if result.incomplete:
        if simple:
            return "We need more information to check if you qualify."
        return "We need additional information to complete your eligibility evaluation."
    if simple:
        return "Unfortunately, you do not qualify for this program right now."
    return (
        "Based on the information provided, you do not currently meet the eligibility "
        "requirements for this program."
    )


def generate_plain_language(result: EligibilityResult, reasoning: List[str], language_level: str) -> str:
    parts = [_status_message(result, language_level)]
    if reasoning and language_level != "simple":
        parts.append("")
        parts.extend(reasoning)
    if result.incomplete and result.missing_fields:
        parts.append("")
        parts.append("We need to know:" if language_level == "simple" else "Please provide the following information:")
        parts.extend(f"• {format_field_name(field)}" for field in result.missing_fields)
    return "\n".join(parts)


def explain_result(
    result: EligibilityResult,
    rule: Any,
    data: Optional[Mapping[str, Any]] = None,
    options: Optional[ExplanationOptions] = None,
) -> ResultExplanation:
    """Build the layered explanation for an evaluated result."""
    opts = options or ExplanationOptions()
    if opts.language_level not in LANGUAGE_LEVELS:
        raise ValueError(f"Unknown language level: {opts.language_level}")

    criteria_checked = list(explain_rule(rule, opts.language_level).criteria_checked)
    analysis = analyze_result(result, criteria_checked)
    suggestions = generate_change_suggestions(result) if opts.include_suggestions and not result.eligible else []

    return ResultExplanation(
        summary=result.reason,
        reasoning=analysis["reasoning"],
        criteria_checked=criteria_checked,
        criteria_passed=analysis["passed"],
        criteria_failed=analysis["failed"],
        missing_information=list(result.missing_fields),
        what_would_change=suggestions or None,
        plain_language=generate_plain_language(result, analysis["reasoning"], opts.language_level),
    )


def explain_what_would_pass(rule: Any, data: Mapping[str, Any]) -> List[str]:
    """Suggest changes for direct ``{var}`` versus number comparisons."""
    suggestions: List[str] = []

    def visit(node: Any) -> None:
        if not isinstance(node, Mapping):
            return
        for operator, value in node.items():
            operands = _operands_of(value)
            suggestion = _comparison_suggestion(operator, operands, data)
            if suggestion:
                suggestions.append(suggestion)
            for operand in operands:
                visit(operand)

    visit(rule)
    if not suggestions:
        suggestions.append("Eligibility criteria cannot be easily modified. Please consult program guidelines.")
    return suggestions


def _comparison_suggestion(operator: str, operands: List[Any], data: Mapping[str, Any]) -> Optional[str]:
    if len(operands) < 2:
        return None
    left, right = operands[0], operands[1]
    if not isinstance(left, Mapping) or "var" not in left:
        return None
    if isinstance(right, bool) or not isinstance(right, (int, float)):
        return None
    name = left["var"]
    if not isinstance(name, str):
        return None
    current = format_value(data[name]) if name in data else format_value()
    field = format_field_name(name)
    if operator in (">", ">="):
        return f"Increase {field} from {current} to at least {format_value(right)}"
    if operator in ("<", "<="):
        return f"Reduce {field} from {current} to {format_value(right)} or below"
    return None


def explain_difference(
    result1: EligibilityResult,
    result2: EligibilityResult,
    data1: Mapping[str, Any],
    data2: Mapping[str, Any],
) -> DifferenceExplanation:
    differences: List[str] = []
    changed: List[ChangedField] = []

    if result1.eligible != result2.eligible:
        change = "eligible → ineligible" if result1.eligible else "ineligible → eligible"
        differences.append(f"Eligibility status changed: {change}")

    keys = list(data1) + [key for key in data2 if key not in data1]
    for key in keys:
        before = data1[key] if key in data1 else _NOT_PROVIDED
        after = data2[key] if key in data2 else _NOT_PROVIDED
        if before is _NOT_PROVIDED or after is _NOT_PROVIDED or before != after:
            changed.append(
                ChangedField(
                    field=format_field_name(key),
                    before=None if before is _NOT_PROVIDED else before,
                    after=None if after is _NOT_PROVIDED else after,
                )
            )
            differences.append(
                f"{format_field_name(key)} changed from {format_value(before)} to {format_value(after)}"
            )

    summary = (
        f"{len(changed)} field(s) changed between evaluations"
        if changed
        else "No data changes detected - results differ due to rule changes"
    )
    return DifferenceExplanation(summary=summary, differences=differences, changed_fields=changed)
