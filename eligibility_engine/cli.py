"""CLI for validating, testing and evaluating rule files."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from eligibility_engine.detailed import evaluate_with_details
from eligibility_engine.loader import load_rule_file
from eligibility_engine.schema import RuleDefinition
from eligibility_engine.tester import RuleTestCase, RuleTestSuite, format_test_suite_result, run_test_suite
from eligibility_engine.validator import validate_rule


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benefits eligibility rule tooling.")
    commands = parser.add_subparsers(dest="command", required=True)

    validate = commands.add_parser("validate", help="Validate every rule in a YAML/JSON rule file.")
    validate.add_argument("file", help="Rule file path.")

    test = commands.add_parser("test", help="Run the test cases embedded in a rule file.")
    test.add_argument("file", help="Rule file path.")
    test.add_argument("--verbose", action="store_true", help="Show every test result.")

    evaluate = commands.add_parser("evaluate", help="Evaluate each rule in a file against a data context.")
    evaluate.add_argument("file", help="Rule file path.")
    evaluate.add_argument("--data", required=True, help="JSON object, or @path to a JSON file.")

    seed = commands.add_parser("seed", help="Import bundled rule files into the configured database.")
    seed.add_argument("--rules-dir", default=None, help="Directory of rule files (defaults to the bundled rules).")
    return parser.parse_args(argv)


def _load_definitions(path: str) -> List[RuleDefinition]:
    _, definitions = load_rule_file(Path(path))
    return definitions


def _load_data(raw: str) -> Dict[str, Any]:
    text = Path(raw[1:]).read_text(encoding="utf-8") if raw.startswith("@") else raw
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("--data must be a JSON object")
    return data


def cmd_validate(args: argparse.Namespace) -> int:
    failures = 0
    for definition in _load_definitions(args.file):
        result = validate_rule(definition.rule_logic)
        mark = "✓" if result.valid else "✗"
        print(f"{mark} {definition.id} (complexity {result.complexity}, variables: {', '.join(result.variables) or '-'})")
        for error in result.errors:
            print(f"    error [{error.code}] {error.message}")
        for warning in result.warnings:
            print(f"    warning [{warning.code}] {warning.message}")
        if not result.valid:
            failures += 1
    return 1 if failures else 0


def cmd_test(args: argparse.Namespace) -> int:
    failures = 0
    for definition in _load_definitions(args.file):
        if not definition.test_cases:
            print(f"- {definition.id}: no test cases")
            continue
        suite = RuleTestSuite(
            name=definition.id,
            rule=definition.rule_logic,
            test_cases=[
                RuleTestCase(
                    description=case.description,
                    input=case.input,
                    expected=case.expected,
                    should_pass=case.should_pass,
                    tags=case.tags or [],
                )
                for case in definition.test_cases
            ],
        )
        result = run_test_suite(suite)
        print(format_test_suite_result(result, verbose=args.verbose))
        failures += result.failed
    return 1 if failures else 0


def cmd_evaluate(args: argparse.Namespace) -> int:
    data = _load_data(args.data)
    failures = 0
    for definition in _load_definitions(args.file):
        result = evaluate_with_details(definition.rule_logic, data)
        print(json.dumps({"rule": definition.id, **result.model_dump(mode="json")}, indent=2, default=str))
        if not result.succeeded:
            failures += 1
    return 1 if failures else 0


def cmd_seed(args: argparse.Namespace) -> int:
    from backend.db import SessionLocal, init_db
    from backend.seed import seed_bundled_rules

    init_db()
    with SessionLocal() as db:
        result = seed_bundled_rules(db, args.rules_dir)
    print(f"Imported {result.imported}, skipped {result.skipped}, failed {result.failed}")
    for error in result.errors:
        print(f"    error [{error.code}] {error.rule_id or '-'}: {error.message}", file=sys.stderr)
    return 1 if result.failed else 0


COMMANDS = {
    "validate": cmd_validate,
    "test": cmd_test,
    "evaluate": cmd_evaluate,
    "seed": cmd_seed,
}


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    args = parse_args(argv)
    try:
        return COMMANDS[args.command](args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
