"""
Interchange schema for rule definitions and rule packages.

Definitions accept both snake_case and camelCase keys and export camelCase,
so packages written by other tools round-trip unchanged.
"""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleVersion(_Schema):
    major: int = Field(..., ge=0)
    minor: int = Field(..., ge=0)
    patch: int = Field(0, ge=0)
    label: Optional[str] = Field(None, max_length=50)

    def __str__(self) -> str:
        return format_version(self)


class RuleAuthor(_Schema):
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = None
    organization: Optional[str] = Field(None, max_length=200)


class RuleCitation(_Schema):
    title: str = Field(..., min_length=1, max_length=500)
    url: Optional[str] = None
    document: Optional[str] = Field(None, max_length=200)
    date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    legal_reference: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)


class RuleChange(_Schema):
    version: RuleVersion
    date: float = Field(..., gt=0)
    author: str = Field(..., max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    breaking: Optional[bool] = None


class DocumentRequirement(_Schema):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    required: bool = True
    alternatives: Optional[List[str]] = None
    where: Optional[str] = Field(None, max_length=500)


class NextStep(_Schema):
    step: str = Field(..., min_length=1, max_length=500)
    url: Optional[str] = None
    priority: Optional[Literal["high", "medium", "low"]] = None
    estimated_time: Optional[str] = Field(None, max_length=100)


class EmbeddedTestCase(_Schema):
    id: Optional[str] = Field(None, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    input: Dict[str, Any] = Field(default_factory=dict)
    expected: Any = None
    should_pass: Optional[bool] = None
    tags: Optional[List[str]] = None


class RuleDefinition(_Schema):
    id: str = Field(..., min_length=1, max_length=128)
    program_id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)

    rule_logic: Any
    rule_type: Optional[Literal["eligibility", "benefit_amount", "document_requirements", "conditional"]] = None
    explanation: Optional[str] = Field(None, max_length=2000)
    required_fields: Optional[List[str]] = None
    required_documents: Optional[List[Union[DocumentRequirement, str]]] = None
    next_steps: Optional[List[NextStep]] = None

    version: RuleVersion
    effective_date: Optional[float] = None
    expiration_date: Optional[float] = None
    supersedes: Optional[str] = Field(None, max_length=128)

    author: Optional[RuleAuthor] = None
    citations: Optional[List[RuleCitation]] = None
    source: Optional[str] = None
    legal_reference: Optional[str] = Field(None, max_length=200)

    active: bool = True
    draft: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=0)

    test_cases: Optional[List[EmbeddedTestCase]] = None
    changelog: Optional[List[RuleChange]] = None

    created_at: float = Field(default_factory=_now_ms)
    updated_at: float = Field(default_factory=_now_ms)
    created_by: Optional[str] = Field(None, max_length=100)

    tags: Optional[List[str]] = None
    category: Optional[str] = Field(None, max_length=100)
    jurisdiction: Optional[str] = Field(None, max_length=100)
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("version", mode="before")
    @classmethod
    def _parse_version_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_version(value)
        return value

    @field_validator("rule_logic")
    @classmethod
    def _require_logic(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("rule_logic is required")
        return value

    def document_names(self) -> List[str]:
        names = []
        for document in self.required_documents or []:
            names.append(document if isinstance(document, str) else document.name)
        return names


class RulePackageMetadata(_Schema):
    id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    version: RuleVersion
    author: Optional[RuleAuthor] = None
    license: Optional[str] = Field(None, max_length=100)
    jurisdiction: Optional[str] = Field(None, max_length=100)
    programs: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    created_at: float = Field(default_factory=_now_ms)
    updated_at: float = Field(default_factory=_now_ms)

    @field_validator("version", mode="before")
    @classmethod
    def _parse_version_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_version(value)
        return value


class RulePackage(_Schema):
    metadata: RulePackageMetadata
    rules: List[RuleDefinition]
    checksum: Optional[str] = Field(None, max_length=128)


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


def parse_version(version: str) -> RuleVersion:
    """Parse ``M.m[.p][-label]`` (a fourth dotted part is also read as the label)."""
    text = str(version).strip()
    label: Optional[str] = None
    if "-" in text:
        text, label = text.split("-", 1)
    parts = text.split(".")
    if len(parts) < 2 or len(parts) > 4:
        raise ValueError(f"Invalid version format: {version}")
    if len(parts) == 4:
        label = label or parts[3]
        parts = parts[:3]
    try:
        major, minor = int(parts[0]), int(parts[1])
        patch = int(parts[2]) if len(parts) > 2 else 0
    except ValueError as exc:
        raise ValueError(f"Invalid version format: {version}") from exc
    return RuleVersion(major=major, minor=minor, patch=patch, label=label)


def format_version(version: RuleVersion) -> str:
    base = f"{version.major}.{version.minor}.{version.patch}"
    return f"{base}-{version.label}" if version.label else base


def compare_versions(first: RuleVersion, second: RuleVersion) -> int:
    """-1, 0 or 1; labels are ignored."""
    left = (first.major, first.minor, first.patch)
    right = (second.major, second.minor, second.patch)
    return (left > right) - (left < right)


def is_newer_version(first: RuleVersion, second: RuleVersion) -> bool:
    return compare_versions(first, second) > 0


def increment_version(version: RuleVersion, kind: str) -> RuleVersion:
    if kind == "major":
        return RuleVersion(major=version.major + 1, minor=0, patch=0, label=version.label)
    if kind == "minor":
        return RuleVersion(major=version.major, minor=version.minor + 1, patch=0, label=version.label)
    if kind == "patch":
        return RuleVersion(major=version.major, minor=version.minor, patch=version.patch + 1, label=version.label)
    raise ValueError(f"Unknown version increment: {kind}")


def create_rule_template(program_id: str, name: str) -> RuleDefinition:
    now = _now_ms()
    return RuleDefinition(
        id=f"{program_id}-{now}",
        program_id=program_id,
        name=name,
        rule_logic={"var": "placeholder"},
        version=RuleVersion(major=0, minor=1, patch=0, label="draft"),
        active=False,
        draft=True,
        created_at=now,
        updated_at=now,
        test_cases=[],
        changelog=[],
    )


# ---------------------------------------------------------------------------
# Checksums
# ---------------------------------------------------------------------------


def calculate_checksum(data: Any) -> str:
    """SHA-256 hex digest of compact, key-sorted JSON."""
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def dump_definition(definition: RuleDefinition) -> Dict[str, Any]:
    return definition.model_dump(mode="json", by_alias=True, exclude_none=True)


def package_checksum(package: RulePackage) -> str:
    return calculate_checksum(
        {
            "metadata": package.metadata.model_dump(mode="json", by_alias=True, exclude_none=True),
            "rules": [dump_definition(rule) for rule in package.rules],
        }
    )
