"""
Rule import and export in the camelCase interchange format.

Imports never raise: schema, validation, test, conflict and storage problems
are reported as ``ImportIssue`` entries on the returned ``ImportResult``.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from backend.stores import DuplicateRuleError, RuleStore
from eligibility_engine.errors import RuleImportError
from eligibility_engine.loader import to_eligibility_rule
from eligibility_engine.models import EligibilityRule
from eligibility_engine.schema import (
    DocumentRequirement,
    EmbeddedTestCase,
    RuleDefinition,
    RulePackage,
    RulePackageMetadata,
    RuleVersion,
    compare_versions,
    dump_definition,
    format_version,
    package_checksum,
    parse_version,
)
from eligibility_engine.tester import RuleTestCase, RuleTestSuite, run_test_suite
from eligibility_engine.validator import validate_rule

logger = logging.getLogger(__name__)

IMPORT_INVALID_FORMAT = "IMPORT_INVALID_FORMAT"
IMPORT_VALIDATION_FAILED = "IMPORT_VALIDATION_FAILED"
IMPORT_DUPLICATE_ID = "IMPORT_DUPLICATE_ID"
IMPORT_MISSING_PROGRAM = "IMPORT_MISSING_PROGRAM"
IMPORT_TEST_FAILED = "IMPORT_TEST_FAILED"
IMPORT_VERSION_CONFLICT = "IMPORT_VERSION_CONFLICT"
IMPORT_CHECKSUM_MISMATCH = "IMPORT_CHECKSUM_MISMATCH"
IMPORT_DATABASE_ERROR = "IMPORT_DATABASE_ERROR"

IMPORT_ERROR_CODES = (
    IMPORT_INVALID_FORMAT,
    IMPORT_VALIDATION_FAILED,
    IMPORT_DUPLICATE_ID,
    IMPORT_MISSING_PROGRAM,
    IMPORT_TEST_FAILED,
    IMPORT_VERSION_CONFLICT,
    IMPORT_CHECKSUM_MISMATCH,
    IMPORT_DATABASE_ERROR,
)


@dataclass
class ImportOptions:
    mode: str = "upsert"  # "upsert" | "create"
    validate: bool = True
    skip_tests: bool = False
    overwrite_existing: bool = True
    dry_run: bool = False
    require_program: bool = False


@dataclass
class ExportOptions:
    include_tests: bool = True
    pretty: bool = False


class ImportIssue(BaseModel):
    rule_id: Optional[str] = None
    message: str
    code: Optional[str] = None


class ImportResult(BaseModel):
    success: bool = False
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[ImportIssue] = Field(default_factory=list)
    warnings: List[ImportIssue] = Field(default_factory=list)
    dry_run: bool = False

    def merge(self, other: "ImportResult") -> None:
        self.imported += other.imported
        self.skipped += other.skipped
        self.failed += other.failed
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        if not other.success:
            self.success = False


def _rule_id_of(data: Any) -> Optional[str]:
    if isinstance(data, Mapping) and isinstance(data.get("id"), str):
        return data["id"]
    return None


def run_embedded_tests(definition: RuleDefinition):
    suite = RuleTestSuite(
        name=f"Tests for {definition.name}",
        rule=definition.rule_logic,
        test_cases=[
            RuleTestCase(
                description=case.description,
                input=case.input,
                expected=case.expected,
                should_pass=case.should_pass,
                tags=case.tags or [],
            )
            for case in definition.test_cases or []
        ],
    )
    return run_test_suite(suite)


class RuleImporter:
    def __init__(self, rules: RuleStore):
        self.rules = rules

    def _parse(self, data: Any) -> RuleDefinition:
        try:
            return RuleDefinition.model_validate(data)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
            logger.warning("Schema validation failed for rule %s: %s", _rule_id_of(data), fields)
            raise RuleImportError("Invalid rule structure", IMPORT_INVALID_FORMAT) from exc

    def _validate(self, definition: RuleDefinition, options: ImportOptions, result: ImportResult) -> None:
        validation = validate_rule(definition.rule_logic)
        for warning in validation.warnings:
            result.warnings.append(ImportIssue(rule_id=definition.id, message=warning.message, code=warning.code))
        if not validation.valid:
            for error in validation.errors[1:]:
                result.errors.append(
                    ImportIssue(rule_id=definition.id, message=error.message, code=IMPORT_VALIDATION_FAILED)
                )
            raise RuleImportError(validation.errors[0].message, IMPORT_VALIDATION_FAILED)

        if options.skip_tests or not definition.test_cases:
            return
        outcome = run_embedded_tests(definition)
        if outcome.failed:
            result.errors.append(
                ImportIssue(
                    rule_id=definition.id,
                    message=f"Tests failed: {outcome.failed}/{outcome.total}",
                    code=IMPORT_TEST_FAILED,
                )
            )
            result.warnings.append(
                ImportIssue(rule_id=definition.id, message="Continuing import despite test failures")
            )

    def _can_proceed(self, definition: RuleDefinition, options: ImportOptions, result: ImportResult) -> bool:
        existing = self.rules.find_rule_by_id(definition.id)
        if existing is None:
            return True
        if options.mode == "create":
            result.errors.append(
                ImportIssue(
                    rule_id=definition.id,
                    message='Rule already exists and mode is "create"',
                    code=IMPORT_DUPLICATE_ID,
                )
            )
            return False
        if not options.overwrite_existing:
            result.warnings.append(ImportIssue(rule_id=definition.id, message="Rule exists and overwrite is disabled"))
            return False
        try:
            existing_version: Optional[RuleVersion] = parse_version(existing.version)
        except ValueError:
            existing_version = None
        if existing_version is not None and compare_versions(definition.version, existing_version) <= 0:
            result.warnings.append(
                ImportIssue(
                    rule_id=definition.id,
                    message="Importing older or same version over newer version",
                    code=IMPORT_VERSION_CONFLICT,
                )
            )
        return True

    def import_rule(self, data: Any, options: Optional[ImportOptions] = None) -> ImportResult:
        opts = options or ImportOptions()
        result = ImportResult(dry_run=opts.dry_run)
        rule_id = _rule_id_of(data)
        try:
            definition = self._parse(data)
            rule_id = definition.id
            if opts.require_program and self.rules.find_program_by_id(definition.program_id) is None:
                raise RuleImportError(f"Program {definition.program_id} does not exist", IMPORT_MISSING_PROGRAM)
            if opts.validate:
                self._validate(definition, opts, result)

            if not self._can_proceed(definition, opts, result):
                result.skipped = 1
                return result

            if opts.dry_run:
                result.warnings.append(ImportIssue(rule_id=rule_id, message="Dry run - rule not actually imported"))
            else:
                try:
                    self.rules.save_rule(to_eligibility_rule(definition), dump_definition(definition), opts.mode)
                except DuplicateRuleError as exc:
                    raise RuleImportError(str(exc), IMPORT_DUPLICATE_ID) from exc
                except Exception as exc:
                    raise RuleImportError(str(exc), IMPORT_DATABASE_ERROR) from exc
                logger.info("Imported rule %s (v%s)", rule_id, format_version(definition.version))
            result.imported = 1
            result.success = True
        except RuleImportError as exc:
            logger.warning("Import of rule %s failed (%s): %s", rule_id, exc.code, exc.message)
            result.errors.insert(0, ImportIssue(rule_id=rule_id, message=exc.message, code=exc.code))
            result.failed = 1
        except RecursionError:
            logger.warning("Import of rule %s failed: rule nesting is too deep to process", rule_id)
            result.errors.insert(
                0, ImportIssue(rule_id=rule_id, message="Rule nesting is too deep to process", code=IMPORT_VALIDATION_FAILED)
            )
            result.failed = 1
        return result

    def import_rules(self, rules: Sequence[Any], options: Optional[ImportOptions] = None) -> ImportResult:
        aggregate = ImportResult(success=True, dry_run=bool(options and options.dry_run))
        for data in rules:
            aggregate.merge(self.import_rule(data, options))
        logger.info(
            "Import complete: %d imported, %d skipped, %d failed",
            aggregate.imported,
            aggregate.skipped,
            aggregate.failed,
        )
        return aggregate

    def import_rule_package(self, data: Any, options: Optional[ImportOptions] = None) -> ImportResult:
        result = ImportResult(dry_run=bool(options and options.dry_run))
        try:
            package = RulePackage.model_validate(data)
        except ValidationError:
            result.errors.append(ImportIssue(message="Invalid package structure", code=IMPORT_INVALID_FORMAT))
            result.failed = 1
            return result

        if package.checksum and package.checksum != package_checksum(package):
            result.errors.append(
                ImportIssue(
                    message="Package checksum mismatch - package may be corrupted",
                    code=IMPORT_CHECKSUM_MISMATCH,
                )
            )
            result.failed = 1
            return result

        # rules were already schema-checked with the package; re-dump so import_rule sees plain data
        imported = self.import_rules([dump_definition(rule) for rule in package.rules], options)
        imported.warnings.append(
            ImportIssue(message=f"Imported package: {package.metadata.name} v{format_version(package.metadata.version)}")
        )
        return imported

    def import_from_json(self, text: str, options: Optional[ImportOptions] = None) -> ImportResult:
        try:
            data = json.loads(text)
        except ValueError as exc:
            return ImportResult(
                failed=1,
                errors=[ImportIssue(message=f"Invalid JSON: {exc}", code=IMPORT_INVALID_FORMAT)],
                dry_run=bool(options and options.dry_run),
            )
        if isinstance(data, dict) and "metadata" in data and "rules" in data:
            return self.import_rule_package(data, options)
        if isinstance(data, list):
            return self.import_rules(data, options)
        return self.import_rule(data, options)


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def definition_from_rule(rule: EligibilityRule, include_tests: bool = True) -> RuleDefinition:
    """Rebuild an interchange definition from a stored rule that has none on record."""
    try:
        version = parse_version(rule.version)
    except ValueError:
        version = RuleVersion(major=1, minor=0, patch=0)
    test_cases = None
    if include_tests and rule.test_cases:
        test_cases = [
            EmbeddedTestCase(
                id=f"{rule.id}-test-{index + 1}",
                description=case.get("description") or f"Test {index + 1}",
                input=case.get("input") or {},
                expected=case.get("expected"),
                should_pass=case.get("should_pass"),
                tags=case.get("tags"),
            )
            for index, case in enumerate(rule.test_cases)
        ]
    return RuleDefinition(
        id=rule.id,
        program_id=rule.program_id,
        name=rule.name,
        description=rule.description,
        rule_logic=rule.logic,
        rule_type=rule.rule_type,
        explanation=rule.explanation,
        required_fields=list(rule.required_fields) or None,
        required_documents=[
            DocumentRequirement(id=_slug(name), name=name, required=True) for name in rule.required_documents
        ]
        or None,
        version=version,
        active=rule.active,
        priority=rule.priority,
        test_cases=test_cases,
    )


class RuleExporter:
    def __init__(self, rules: RuleStore):
        self.rules = rules

    def export_rule(self, rule_id: str, options: Optional[ExportOptions] = None) -> Optional[RuleDefinition]:
        opts = options or ExportOptions()
        stored = self.rules.find_rule_definition(rule_id)
        if stored is not None:
            definition = RuleDefinition.model_validate(stored)
            if not opts.include_tests:
                definition = definition.model_copy(update={"test_cases": None})
            return definition
        rule = self.rules.find_rule_by_id(rule_id)
        if rule is None:
            return None
        return definition_from_rule(rule, opts.include_tests)

    def export_rules(self, rule_ids: Sequence[str], options: Optional[ExportOptions] = None) -> List[RuleDefinition]:
        exported = [self.export_rule(rule_id, options) for rule_id in rule_ids]
        return [definition for definition in exported if definition is not None]

    def export_rule_package(
        self, rule_ids: Sequence[str], package_name: str, options: Optional[ExportOptions] = None
    ) -> RulePackage:
        now = int(time.time() * 1000)
        package = RulePackage(
            metadata=RulePackageMetadata(
                id=f"package-{now}",
                name=package_name,
                version=RuleVersion(major=1, minor=0, patch=0),
                created_at=now,
                updated_at=now,
            ),
            rules=self.export_rules(rule_ids, options),
        )
        package.checksum = package_checksum(package)
        return package

    def export_program_rules(self, program_id: str, options: Optional[ExportOptions] = None) -> List[RuleDefinition]:
        return self.export_rules([rule.id for rule in self.rules.find_rules_by_program(program_id)], options)

    def export_to_json(self, rule_ids: Sequence[str], options: Optional[ExportOptions] = None) -> str:
        opts = options or ExportOptions()
        payload = [dump_definition(definition) for definition in self.export_rules(rule_ids, opts)]
        return json.dumps(payload, indent=2 if opts.pretty else None)

    def export_package_to_json(
        self, rule_ids: Sequence[str], package_name: str, options: Optional[ExportOptions] = None
    ) -> str:
        opts = options or ExportOptions()
        package = self.export_rule_package(rule_ids, package_name, opts)
        payload = package.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(payload, indent=2 if opts.pretty else None)


def import_rule(rules: RuleStore, data: Any, options: Optional[ImportOptions] = None) -> ImportResult:
    return RuleImporter(rules).import_rule(data, options)


def export_rule(rules: RuleStore, rule_id: str, options: Optional[ExportOptions] = None) -> Optional[RuleDefinition]:
    return RuleExporter(rules).export_rule(rule_id, options)
