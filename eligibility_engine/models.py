from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

RULE_TYPES = ("eligibility", "benefit_amount", "document_requirements", "conditional")


def utc_now() -> datetime:
    """Current UTC time as a naive datetime; stored and cached timestamps are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CriterionComparison(BaseModel):
    criterion: str
    met: bool
    value: Any = None
    threshold: Any = None
    comparison: Optional[str] = None
    operator: Optional[str] = None
    description: Optional[str] = None


class Program(BaseModel):
    id: str
    name: str
    jurisdiction: Optional[str] = None
    description: Optional[str] = None
    active: bool = True


class EligibilityRule(BaseModel):
    id: str
    program_id: str
    name: str
    description: Optional[str] = None
    logic: Any
    rule_type: str = "eligibility"
    explanation: Optional[str] = None
    priority: Optional[int] = 0
    required_fields: List[str] = Field(default_factory=list)
    required_documents: List[str] = Field(default_factory=list)
    active: bool = True
    version: str = "1.0.0"
    test_cases: List[Dict[str, Any]] = Field(default_factory=list)


class EligibilityResult(BaseModel):
    profile_id: str
    program_id: str
    rule_id: str
    eligible: bool
    confidence: int
    reason: str
    criteria: List[CriterionComparison] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)
    required_documents: List[str] = Field(default_factory=list)
    rule_version: Optional[str] = None
    incomplete: bool = False
    needs_review: bool = False
    evaluated_at: datetime
    elapsed_ms: Optional[float] = None
    expires_at: Optional[datetime] = None


class BatchSummary(BaseModel):
    total: int = 0
    eligible: int = 0
    ineligible: int = 0
    incomplete: int = 0
    needs_review: int = 0


class BatchResult(BaseModel):
    profile_id: str
    program_results: Dict[str, EligibilityResult] = Field(default_factory=dict)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    elapsed_ms: Optional[float] = None
