"""Exception types shared by the rule core and the orchestration backend."""

from __future__ import annotations

from typing import Any, Dict, Optional


class EligibilityEngineError(Exception):
    """Raised when rule evaluation cannot proceed."""


class EvaluationError(EligibilityEngineError):
    """Evaluation failure carrying one of the ``EVAL_*`` codes."""

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class EntityNotFoundError(EligibilityEngineError):
    """A profile, program or rule set required for evaluation is absent."""


class ProfileNotFoundError(EntityNotFoundError):
    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile {profile_id} not found")


class ProgramNotFoundError(EntityNotFoundError):
    def __init__(self, program_id: str):
        self.program_id = program_id
        super().__init__(f"Program {program_id} not found")


class NoActiveRulesError(EntityNotFoundError):
    def __init__(self, program_id: str):
        self.program_id = program_id
        super().__init__(f"No active rules found for program {program_id}")


class RuleImportError(EligibilityEngineError):
    """Raised inside the importer; always converted into an import result entry."""

    def __init__(self, message: str, code: str):
        self.code = code
        self.message = message
        super().__init__(message)
