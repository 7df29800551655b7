from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from backend.db import get_db
from backend.import_export import ExportOptions, ImportOptions, ImportResult, RuleExporter, RuleImporter
from backend.schemas import (
    RuleEvaluateRequest,
    RuleEvaluateResponse,
    RuleExplainRequest,
    RuleImportRequest,
    RuleValidateRequest,
)
from backend.stores import SQLRuleStore
from eligibility_engine.detailed import evaluate_with_details
from eligibility_engine.errors import EvaluationError
from eligibility_engine.evaluator import EvaluationOptions, evaluate
from eligibility_engine.explanation import LANGUAGE_LEVELS, explain_rule, explain_what_would_pass
from eligibility_engine.schema import dump_definition
from eligibility_engine.validator import ValidationResult, validate_rule

router = APIRouter(prefix="/api/rules", tags=["rules"])


@router.post("/validate", response_model=ValidationResult)
def validate(payload: RuleValidateRequest) -> ValidationResult:
    return validate_rule(payload.rule, payload.options)


@router.post("/evaluate", response_model=RuleEvaluateResponse)
def evaluate_rule(payload: RuleEvaluateRequest) -> RuleEvaluateResponse:
    options = EvaluationOptions(strict=payload.strict)
    if payload.detailed:
        detailed = evaluate_with_details(payload.rule, payload.data, options)
        return RuleEvaluateResponse(**detailed.model_dump())
    try:
        result = evaluate(payload.rule, payload.data, options)
    except EvaluationError as exc:
        raise HTTPException(status_code=400, detail={"code": exc.code, "message": exc.message}) from exc
    return RuleEvaluateResponse(
        value=result.value,
        succeeded=result.succeeded,
        error_message=result.error_message,
        error_code=result.error_code,
        elapsed_ms=result.elapsed_ms,
    )


@router.post("/explain")
def explain(payload: RuleExplainRequest) -> Dict[str, Any]:
    if payload.language_level not in LANGUAGE_LEVELS:
        raise HTTPException(status_code=400, detail=f"Unknown language level: {payload.language_level}")
    explanation = explain_rule(payload.rule, payload.language_level)
    body: Dict[str, Any] = {"explanation": explanation.model_dump()}
    if payload.data is not None:
        body["what_would_pass"] = explain_what_would_pass(payload.rule, payload.data)
    return body


@router.post("/import", response_model=ImportResult)
def import_rules(payload: RuleImportRequest, db: Session = Depends(get_db)) -> ImportResult:
    options = ImportOptions(
        mode=payload.mode,
        validate=payload.validate_logic,
        skip_tests=payload.skip_tests,
        overwrite_existing=payload.overwrite_existing,
        dry_run=payload.dry_run,
        require_program=payload.require_program,
    )
    importer = RuleImporter(SQLRuleStore(db))
    data = payload.payload
    if isinstance(data, str):
        return importer.import_from_json(data, options)
    if isinstance(data, dict) and "metadata" in data and "rules" in data:
        return importer.import_rule_package(data, options)
    if isinstance(data, list):
        return importer.import_rules(data, options)
    if isinstance(data, dict):
        return importer.import_rule(data, options)
    raise HTTPException(status_code=400, detail="Import payload must be a rule, a list of rules, a package or a JSON string")


@router.get("/{rule_id}/export")
def export_rule(rule_id: str, include_tests: bool = True, db: Session = Depends(get_db)) -> Dict[str, Any]:
    definition = RuleExporter(SQLRuleStore(db)).export_rule(rule_id, ExportOptions(include_tests=include_tests))
    if definition is None:
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
    return dump_definition(definition)
