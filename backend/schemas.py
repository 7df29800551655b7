from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from eligibility_engine.models import CriterionComparison
from eligibility_engine.validator import ValidationOptions


class ProfileCreate(BaseModel):
    id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class ProfileRead(BaseModel):
    id: str
    data: Dict[str, Any] = Field(default_factory=dict)


class EligibilityRequest(BaseModel):
    force_re_evaluation: bool = False
    cache_result: bool = True
    include_breakdown: bool = True


class BatchEligibilityRequest(EligibilityRequest):
    # empty means every active program
    program_ids: List[str] = Field(default_factory=list)


class CacheClearResponse(BaseModel):
    profile_id: str
    program_id: Optional[str] = None
    deleted: int


class RuleValidateRequest(BaseModel):
    rule: Any
    options: Optional[ValidationOptions] = None


class RuleEvaluateRequest(BaseModel):
    rule: Any
    data: Dict[str, Any] = Field(default_factory=dict)
    detailed: bool = False
    strict: Optional[bool] = None


class RuleEvaluateResponse(BaseModel):
    value: Any = None
    succeeded: bool
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    elapsed_ms: Optional[float] = None
    criteria: List[CriterionComparison] = Field(default_factory=list)
    explanation: Optional[str] = None


class RuleExplainRequest(BaseModel):
    rule: Any
    data: Optional[Dict[str, Any]] = None
    language_level: str = "standard"


class RuleImportRequest(BaseModel):
    payload: Any
    mode: str = Field("upsert", pattern="^(upsert|create)$")
    validate_logic: bool = True
    skip_tests: bool = False
    overwrite_existing: bool = True
    dry_run: bool = False
    require_program: bool = False
