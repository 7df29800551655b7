"""Loader utilities for bundled and user-supplied rule files (YAML or JSON)."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .models import EligibilityRule, Program
from .schema import RuleDefinition, format_version

PACKAGE_ROOT = Path(__file__).resolve().parent
RULES_DIR = PACKAGE_ROOT / "rules"


def _load_file(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        if path.suffix == ".json":
            return json.load(handle)
        return yaml.safe_load(handle)


def _split_payload(raw: Any) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Return (programs, rules) from a program file, a package, a list or a single rule."""
    if raw is None:
        return [], []
    if isinstance(raw, list):
        return [], [rule for rule in raw if isinstance(rule, dict)]
    if not isinstance(raw, dict):
        raise ValueError("Rule file must contain a mapping or a list of rules")
    if "rules" in raw:
        programs = []
        if isinstance(raw.get("program"), dict):
            programs.append(raw["program"])
        programs.extend(item for item in raw.get("programs") or [] if isinstance(item, dict))
        return programs, [rule for rule in raw["rules"] or [] if isinstance(rule, dict)]
    return [], [raw]


def load_rule_file(path: Path | str) -> Tuple[List[Program], List[RuleDefinition]]:
    """Parse and schema-validate every rule in one file."""
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Rule file not found: {source}")
    programs, rules = _split_payload(_load_file(source))
    return (
        [Program.model_validate(program) for program in programs],
        [RuleDefinition.model_validate(rule) for rule in rules],
    )


@lru_cache(maxsize=1)
def load_bundled_rules(rules_dir: Path | str | None = None) -> Tuple[Tuple[Program, ...], Tuple[RuleDefinition, ...]]:
    """Load every ``*.yaml`` rule file shipped with the package."""
    directory = Path(rules_dir) if rules_dir else RULES_DIR
    if not directory.exists():
        raise FileNotFoundError(f"Rules directory not found: {directory}")

    programs: List[Program] = []
    rules: List[RuleDefinition] = []
    for path in sorted(directory.glob("*.yaml")):
        file_programs, file_rules = load_rule_file(path)
        programs.extend(file_programs)
        rules.extend(file_rules)
    return tuple(programs), tuple(rules)


def to_eligibility_rule(definition: RuleDefinition) -> EligibilityRule:
    test_cases = [case.model_dump(exclude_none=True) for case in definition.test_cases or []]
    return EligibilityRule(
        id=definition.id,
        program_id=definition.program_id,
        name=definition.name,
        description=definition.description,
        logic=definition.rule_logic,
        rule_type=definition.rule_type or "eligibility",
        explanation=definition.explanation,
        priority=definition.priority or 0,
        required_fields=list(definition.required_fields or []),
        required_documents=definition.document_names(),
        active=definition.active,
        version=format_version(definition.version),
        test_cases=test_cases,
    )


def reload_rules() -> None:
    """Clear the cached bundled rules (useful for tests)."""
    load_bundled_rules.cache_clear()
