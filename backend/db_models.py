from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.types import JSON

from backend.db import Base
from eligibility_engine.models import utc_now


def _uuid_str() -> str:
    return str(uuid.uuid4())


JSONType = JSON


class ProfileORM(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=_uuid_str)
    # questionnaire answers keyed by field name (householdIncome, state, ...)
    data = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class ProgramORM(Base):
    __tablename__ = "programs"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    jurisdiction = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)


class RuleORM(Base):
    __tablename__ = "rules"

    id = Column(String, primary_key=True)
    program_id = Column(String, ForeignKey("programs.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    logic = Column(JSONType, nullable=False)
    rule_type = Column(String, nullable=False, default="eligibility")
    explanation = Column(Text, nullable=True)
    priority = Column(Integer, nullable=True, default=0)
    required_fields = Column(JSONType, nullable=True)
    required_documents = Column(JSONType, nullable=True)
    test_cases = Column(JSONType, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    version = Column(String, nullable=False, default="1.0.0")
    # full interchange definition, kept so exports round-trip citations and metadata
    definition = Column(JSONType, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class EligibilityResultORM(Base):
    __tablename__ = "eligibility_results"

    id = Column(String, primary_key=True, default=_uuid_str)
    profile_id = Column(String, nullable=False, index=True)
    program_id = Column(String, nullable=False, index=True)
    rule_id = Column(String, nullable=False)
    eligible = Column(Boolean, nullable=False)
    confidence = Column(Integer, nullable=False)
    elapsed_ms = Column(Float, nullable=True)
    payload = Column(JSONType, nullable=False)

    evaluated_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    expires_at = Column(DateTime, nullable=True)
