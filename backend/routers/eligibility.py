from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from backend.db import get_db
from backend.eligibility import EligibilityOptions, orchestrator_for_session
from backend.schemas import BatchEligibilityRequest, CacheClearResponse, EligibilityRequest
from eligibility_engine.explanation import ExplanationOptions, ResultExplanation, explain_result
from eligibility_engine.models import BatchResult, EligibilityResult

router = APIRouter(prefix="/api/eligibility", tags=["eligibility"])


def _options(payload: EligibilityRequest) -> EligibilityOptions:
    return EligibilityOptions(
        cache_result=payload.cache_result,
        include_breakdown=payload.include_breakdown,
        force_re_evaluation=payload.force_re_evaluation,
    )


@router.post("/{profile_id}/{program_id}", response_model=EligibilityResult)
def evaluate_program(
    profile_id: str,
    program_id: str,
    payload: EligibilityRequest = EligibilityRequest(),
    db: Session = Depends(get_db),
) -> EligibilityResult:
    return orchestrator_for_session(db).evaluate(profile_id, program_id, _options(payload))


@router.post("/{profile_id}", response_model=BatchResult)
def evaluate_programs(
    profile_id: str,
    payload: BatchEligibilityRequest = BatchEligibilityRequest(),
    db: Session = Depends(get_db),
) -> BatchResult:
    orchestrator = orchestrator_for_session(db)
    if payload.program_ids:
        return orchestrator.evaluate_multiple_programs(profile_id, payload.program_ids, _options(payload), max_workers=1)
    return orchestrator.evaluate_all_programs(profile_id, _options(payload), max_workers=1)


@router.get("/{profile_id}/{program_id}/explanation", response_model=ResultExplanation)
def explain_program_result(
    profile_id: str,
    program_id: str,
    language_level: str = "standard",
    db: Session = Depends(get_db),
) -> ResultExplanation:
    orchestrator = orchestrator_for_session(db)
    result = orchestrator.evaluate(profile_id, program_id)
    if result.rule_id == "error":
        raise HTTPException(status_code=404, detail=result.reason)
    rule = orchestrator.rules.find_rule_by_id(result.rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Rule {result.rule_id} not found")
    try:
        return explain_result(result, rule.logic, options=ExplanationOptions(language_level=language_level))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/{profile_id}/cached", response_model=List[EligibilityResult])
def list_cached_results(profile_id: str, db: Session = Depends(get_db)) -> List[EligibilityResult]:
    return orchestrator_for_session(db).get_cached_results(profile_id)


@router.delete("/{profile_id}/cache", response_model=CacheClearResponse)
def clear_cache(profile_id: str, program_id: Optional[str] = None, db: Session = Depends(get_db)) -> CacheClearResponse:
    deleted = orchestrator_for_session(db).clear_cached_results(profile_id, program_id)
    return CacheClearResponse(profile_id=profile_id, program_id=program_id, deleted=deleted)
