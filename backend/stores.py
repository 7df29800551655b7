"""
Collaborator stores used by the eligibility orchestrator.

The orchestrator depends only on the Protocols below. SQLAlchemy-backed
implementations serve the API; the in-memory store serves the CLI and tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sqlalchemy.orm import Session

from backend.db_models import EligibilityResultORM, ProfileORM, ProgramORM, RuleORM
from eligibility_engine.models import EligibilityResult, EligibilityRule, Program, utc_now


class ProfileStore(Protocol):
    def find_profile_by_id(self, profile_id: str) -> Optional[Mapping[str, Any]]:
        ...


class RuleStore(Protocol):
    def find_active_rules_by_program(self, program_id: str) -> List[EligibilityRule]:
        ...

    def find_program_by_id(self, program_id: str) -> Optional[Program]:
        ...

    def find_active_programs(self) -> List[Program]:
        ...

    def find_rule_by_id(self, rule_id: str) -> Optional[EligibilityRule]:
        ...

    def find_rule_definition(self, rule_id: str) -> Optional[Dict[str, Any]]:
        ...

    def find_rules_by_program(self, program_id: str) -> List[EligibilityRule]:
        ...

    def save_rule(self, rule: EligibilityRule, definition: Optional[Dict[str, Any]] = None, mode: str = "upsert") -> None:
        ...


class ResultCacheStore(Protocol):
    def find_latest_result(self, profile_id: str, program_id: str) -> Optional[EligibilityResult]:
        ...

    def insert_result(self, result: EligibilityResult, expires_at: Optional[datetime]) -> None:
        ...

    def delete_results(self, profile_id: str, program_id: Optional[str] = None) -> int:
        ...

    def list_results(self, profile_id: str) -> List[EligibilityResult]:
        ...


class DuplicateRuleError(ValueError):
    """Raised by ``save_rule(mode="create")`` when the id is already taken."""


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def _program_from_row(row: ProgramORM) -> Program:
    return Program(
        id=row.id,
        name=row.name,
        jurisdiction=row.jurisdiction,
        description=row.description,
        active=bool(row.active),
    )


def _rule_from_row(row: RuleORM) -> EligibilityRule:
    return EligibilityRule(
        id=row.id,
        program_id=row.program_id,
        name=row.name,
        description=row.description,
        logic=row.logic,
        rule_type=row.rule_type or "eligibility",
        explanation=row.explanation,
        priority=row.priority,
        required_fields=list(row.required_fields or []),
        required_documents=list(row.required_documents or []),
        active=bool(row.active),
        version=row.version or "1.0.0",
        test_cases=list(row.test_cases or []),
    )


def _result_from_row(row: EligibilityResultORM) -> EligibilityResult:
    result = EligibilityResult.model_validate(row.payload)
    return result.model_copy(update={"expires_at": row.expires_at})


class SQLProfileStore:
    def __init__(self, db: Session):
        self.db = db

    def find_profile_by_id(self, profile_id: str) -> Optional[Dict[str, Any]]:
        row = self.db.get(ProfileORM, profile_id)
        if row is None:
            return None
        return {**(row.data or {}), "id": row.id}

    def save_profile(self, data: Mapping[str, Any], profile_id: Optional[str] = None) -> str:
        fields = {key: value for key, value in data.items() if key != "id"}
        row = self.db.get(ProfileORM, profile_id) if profile_id else None
        if row is None:
            row = ProfileORM(id=profile_id, data=fields) if profile_id else ProfileORM(data=fields)
            self.db.add(row)
        else:
            row.data = fields
        self.db.commit()
        return row.id


class SQLRuleStore:
    def __init__(self, db: Session):
        self.db = db

    def find_active_rules_by_program(self, program_id: str) -> List[EligibilityRule]:
        rows = (
            self.db.query(RuleORM)
            .filter(RuleORM.program_id == program_id, RuleORM.active.is_(True))
            .order_by(RuleORM.priority.desc(), RuleORM.id)
            .all()
        )
        return [_rule_from_row(row) for row in rows]

    def find_rules_by_program(self, program_id: str) -> List[EligibilityRule]:
        rows = self.db.query(RuleORM).filter(RuleORM.program_id == program_id).order_by(RuleORM.id).all()
        return [_rule_from_row(row) for row in rows]

    def find_program_by_id(self, program_id: str) -> Optional[Program]:
        row = self.db.get(ProgramORM, program_id)
        return _program_from_row(row) if row else None

    def find_active_programs(self) -> List[Program]:
        rows = self.db.query(ProgramORM).filter(ProgramORM.active.is_(True)).order_by(ProgramORM.id).all()
        return [_program_from_row(row) for row in rows]

    def find_rule_by_id(self, rule_id: str) -> Optional[EligibilityRule]:
        row = self.db.get(RuleORM, rule_id)
        return _rule_from_row(row) if row else None

    def find_rule_definition(self, rule_id: str) -> Optional[Dict[str, Any]]:
        row = self.db.get(RuleORM, rule_id)
        if row is None:
            return None
        return dict(row.definition) if row.definition else None

    def save_program(self, program: Program) -> None:
        row = self.db.get(ProgramORM, program.id)
        if row is None:
            row = ProgramORM(id=program.id)
            self.db.add(row)
        row.name = program.name
        row.jurisdiction = program.jurisdiction
        row.description = program.description
        row.active = program.active
        self.db.commit()

    def save_rule(self, rule: EligibilityRule, definition: Optional[Dict[str, Any]] = None, mode: str = "upsert") -> None:
        row = self.db.get(RuleORM, rule.id)
        if row is not None and mode == "create":
            raise DuplicateRuleError(f"Rule {rule.id} already exists")
        if row is None:
            row = RuleORM(id=rule.id)
            self.db.add(row)
        row.program_id = rule.program_id
        row.name = rule.name
        row.description = rule.description
        row.logic = rule.logic
        row.rule_type = rule.rule_type
        row.explanation = rule.explanation
        row.priority = rule.priority
        row.required_fields = list(rule.required_fields)
        row.required_documents = list(rule.required_documents)
        row.test_cases = list(rule.test_cases)
        row.active = rule.active
        row.version = rule.version
        row.definition = definition
        row.updated_at = utc_now()
        self.db.commit()


class SQLResultCacheStore:
    def __init__(self, db: Session):
        self.db = db

    def find_latest_result(self, profile_id: str, program_id: str) -> Optional[EligibilityResult]:
        row = (
            self.db.query(EligibilityResultORM)
            .filter(
                EligibilityResultORM.profile_id == profile_id,
                EligibilityResultORM.program_id == program_id,
            )
            .order_by(EligibilityResultORM.evaluated_at.desc())
            .first()
        )
        return _result_from_row(row) if row else None

    def insert_result(self, result: EligibilityResult, expires_at: Optional[datetime]) -> None:
        self.db.add(
            EligibilityResultORM(
                profile_id=result.profile_id,
                program_id=result.program_id,
                rule_id=result.rule_id,
                eligible=result.eligible,
                confidence=result.confidence,
                elapsed_ms=result.elapsed_ms,
                payload=result.model_dump(mode="json", exclude={"expires_at"}),
                evaluated_at=result.evaluated_at,
                expires_at=expires_at,
            )
        )
        self.db.commit()

    def delete_results(self, profile_id: str, program_id: Optional[str] = None) -> int:
        query = self.db.query(EligibilityResultORM).filter(EligibilityResultORM.profile_id == profile_id)
        if program_id is not None:
            query = query.filter(EligibilityResultORM.program_id == program_id)
        deleted = query.delete()
        self.db.commit()
        return deleted

    def list_results(self, profile_id: str) -> List[EligibilityResult]:
        rows = (
            self.db.query(EligibilityResultORM)
            .filter(EligibilityResultORM.profile_id == profile_id)
            .order_by(EligibilityResultORM.evaluated_at.desc())
            .all()
        )
        return [_result_from_row(row) for row in rows]


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryStore:
    """Dict-backed implementation of all three store protocols."""

    def __init__(self) -> None:
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.programs: Dict[str, Program] = {}
        self.rules: Dict[str, EligibilityRule] = {}
        self.definitions: Dict[str, Dict[str, Any]] = {}
        self.results: List[EligibilityResult] = []

    def add_profile(self, profile: Mapping[str, Any]) -> None:
        self.profiles[str(profile["id"])] = dict(profile)

    def find_profile_by_id(self, profile_id: str) -> Optional[Dict[str, Any]]:
        profile = self.profiles.get(profile_id)
        return dict(profile) if profile is not None else None

    def save_program(self, program: Program) -> None:
        self.programs[program.id] = program

    def find_program_by_id(self, program_id: str) -> Optional[Program]:
        return self.programs.get(program_id)

    def find_active_programs(self) -> List[Program]:
        return [program for _, program in sorted(self.programs.items()) if program.active]

    def find_rules_by_program(self, program_id: str) -> List[EligibilityRule]:
        return [rule for rule in self.rules.values() if rule.program_id == program_id]

    def find_active_rules_by_program(self, program_id: str) -> List[EligibilityRule]:
        return [rule for rule in self.find_rules_by_program(program_id) if rule.active]

    def find_rule_by_id(self, rule_id: str) -> Optional[EligibilityRule]:
        return self.rules.get(rule_id)

    def find_rule_definition(self, rule_id: str) -> Optional[Dict[str, Any]]:
        return self.definitions.get(rule_id)

    def save_rule(self, rule: EligibilityRule, definition: Optional[Dict[str, Any]] = None, mode: str = "upsert") -> None:
        if mode == "create" and rule.id in self.rules:
            raise DuplicateRuleError(f"Rule {rule.id} already exists")
        self.rules[rule.id] = rule
        if definition is not None:
            self.definitions[rule.id] = definition
        else:
            self.definitions.pop(rule.id, None)

    def find_latest_result(self, profile_id: str, program_id: str) -> Optional[EligibilityResult]:
        matches = [
            result
            for result in self.results
            if result.profile_id == profile_id and result.program_id == program_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda result: result.evaluated_at)

    def insert_result(self, result: EligibilityResult, expires_at: Optional[datetime]) -> None:
        self.results.append(result.model_copy(update={"expires_at": expires_at}))

    def delete_results(self, profile_id: str, program_id: Optional[str] = None) -> int:
        kept = [
            result
            for result in self.results
            if not (result.profile_id == profile_id and (program_id is None or result.program_id == program_id))
        ]
        deleted = len(self.results) - len(kept)
        self.results = kept
        return deleted

    def list_results(self, profile_id: str) -> List[EligibilityResult]:
        matches = [result for result in self.results if result.profile_id == profile_id]
        return sorted(matches, key=lambda result: result.evaluated_at, reverse=True)
