"""
Multi-rule eligibility orchestration.

A program is decided by all of its active rules. Income rules run first in
priority order and the first failure is a hard stop: the remaining rules are
recorded as skipped. Otherwise every non-income rule is evaluated and the
first failure in priority order explains the outcome.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from backend.ami import AMIService, StaticAMIService
from backend.classification import is_income_rule
from backend.data_context import check_missing_fields, prepare_data_context
from backend.result_cache import cache_result, check_cache, clear_cached_results, get_cached_results
from backend.stores import (
    ProfileStore,
    ResultCacheStore,
    RuleStore,
    SQLProfileStore,
    SQLResultCacheStore,
    SQLRuleStore,
)
from eligibility_engine.config import EngineSettings, load_settings
from eligibility_engine.detailed import DetailedEvaluationResult, evaluate_with_details
from eligibility_engine.errors import NoActiveRulesError, ProfileNotFoundError, ProgramNotFoundError
from eligibility_engine.evaluator import EvaluationOptions, EvaluationResult
from eligibility_engine.explanation import format_field_name
from eligibility_engine.models import (
    BatchResult,
    BatchSummary,
    CriterionComparison,
    EligibilityResult,
    EligibilityRule,
    utc_now,
)
from eligibility_engine.operators import is_truthy

logger = logging.getLogger(__name__)

HARD_STOP_REASON = "Income rule failed - hard stop"

REASON_ERROR = "Unable to evaluate eligibility due to an error"
REASON_INCOMPLETE = "Cannot fully determine eligibility - missing required information"
REASON_ELIGIBLE = "You meet the eligibility criteria for this program"
REASON_INELIGIBLE = "You do not meet the eligibility criteria for this program"


@dataclass
class EligibilityOptions:
    cache_result: bool = True
    include_breakdown: bool = True
    force_re_evaluation: bool = False
    # defaults to cache.ttl_days
    expires_in: Optional[timedelta] = None
    evaluation: Optional[EvaluationOptions] = None


@dataclass
class RuleOutcome:
    rule: EligibilityRule
    evaluation: EvaluationResult
    details: Optional[DetailedEvaluationResult] = None
    missing_fields: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def passed(self) -> bool:
        return self.evaluation.succeeded and is_truthy(self.evaluation.value)


@dataclass
class RuleSetOutcome:
    outcomes: List[RuleOutcome]
    eligible: bool
    failed_rule: Optional[EligibilityRule] = None
    failed_outcome: Optional[RuleOutcome] = None
    missing_fields: List[str] = field(default_factory=list)


def sort_rules(rules: Sequence[EligibilityRule]) -> List[EligibilityRule]:
    return sorted(rules, key=lambda rule: rule.priority or 0, reverse=True)


def evaluate_single_rule(
    rule: EligibilityRule, data: Mapping[str, Any], options: Optional[EvaluationOptions] = None
) -> RuleOutcome:
    missing = check_missing_fields(data, rule.required_fields)
    details = evaluate_with_details(rule.logic, data, options)
    evaluation = EvaluationResult(
        value=details.value,
        succeeded=details.succeeded,
        error_message=details.error_message,
        error_code=details.error_code,
        elapsed_ms=details.elapsed_ms,
    )
    logger.debug(
        "Rule %s evaluated: succeeded=%s value=%r missing=%s",
        rule.id,
        evaluation.succeeded,
        evaluation.value,
        missing,
    )
    return RuleOutcome(rule=rule, evaluation=evaluation, details=details, missing_fields=missing)


def skipped_outcome(rule: EligibilityRule, reason: str) -> RuleOutcome:
    return RuleOutcome(
        rule=rule,
        evaluation=EvaluationResult(
            value=False,
            succeeded=True,
            elapsed_ms=0.0,
            context={"skipped": True, "reason": reason},
        ),
        skipped=True,
    )


def evaluate_all_rules(
    rules: Sequence[EligibilityRule], data: Mapping[str, Any], options: Optional[EvaluationOptions] = None
) -> RuleSetOutcome:
    """Run the income pass then the remaining rules; ``rules`` must already be priority-ordered."""
    income_rules = [rule for rule in rules if is_income_rule(rule)]
    other_rules = [rule for rule in rules if not is_income_rule(rule)]

    outcomes: List[RuleOutcome] = []
    eligible = True
    failed_rule: Optional[EligibilityRule] = None
    failed_outcome: Optional[RuleOutcome] = None

    for rule in income_rules:
        outcome = evaluate_single_rule(rule, data, options)
        outcomes.append(outcome)
        if not outcome.passed:
            eligible, failed_rule, failed_outcome = False, rule, outcome
            logger.info("Income rule %s failed; skipping %d remaining rule(s)", rule.id, len(other_rules))
            break

    if not eligible:
        outcomes.extend(skipped_outcome(rule, HARD_STOP_REASON) for rule in other_rules)
    else:
        for rule in other_rules:
            outcome = evaluate_single_rule(rule, data, options)
            outcomes.append(outcome)
            if not outcome.passed and eligible:
                eligible, failed_rule, failed_outcome = False, rule, outcome

    missing: Dict[str, None] = {}
    for outcome in outcomes:
        for name in outcome.missing_fields:
            missing.setdefault(name, None)

    return RuleSetOutcome(
        outcomes=outcomes,
        eligible=eligible,
        failed_rule=failed_rule,
        failed_outcome=failed_outcome,
        missing_fields=list(missing),
    )


def select_result_rule(
    rules: Sequence[EligibilityRule], outcome: RuleSetOutcome
) -> Tuple[EligibilityRule, RuleOutcome, EvaluationResult]:
    """
    Pick the rule that explains the decision.

    The combined evaluation takes ``succeeded`` from that rule and
    ``value`` from the overall decision.
    """
    if outcome.eligible or outcome.failed_rule is None:
        rule = rules[0]
        chosen = next((item for item in outcome.outcomes if item.rule.id == rule.id), outcome.outcomes[0])
    else:
        rule = outcome.failed_rule
        chosen = outcome.failed_outcome or outcome.outcomes[0]

    combined = EvaluationResult(
        value=outcome.eligible,
        succeeded=chosen.evaluation.succeeded,
        error_message=chosen.evaluation.error_message,
        error_code=chosen.evaluation.error_code,
        elapsed_ms=chosen.evaluation.elapsed_ms,
        context=chosen.evaluation.context,
    )
    return rule, chosen, combined


def calculate_confidence(evaluation: EvaluationResult, incomplete: bool) -> int:
    if not evaluation.succeeded:
        return 0
    if incomplete:
        return 50
    return 95


def generate_reason(evaluation: EvaluationResult, rule: EligibilityRule, incomplete: bool) -> str:
    if not evaluation.succeeded:
        return REASON_ERROR
    if incomplete:
        return REASON_INCOMPLETE
    if is_truthy(evaluation.value):
        return rule.explanation or REASON_ELIGIBLE
    return REASON_INELIGIBLE


def build_evaluation_result(
    profile_id: str,
    program_id: str,
    rule: EligibilityRule,
    evaluation: EvaluationResult,
    details: Optional[DetailedEvaluationResult],
    missing_fields: List[str],
    elapsed_ms: float,
) -> EligibilityResult:
    incomplete = bool(missing_fields)
    return EligibilityResult(
        profile_id=profile_id,
        program_id=program_id,
        rule_id=rule.id,
        eligible=evaluation.succeeded and is_truthy(evaluation.value),
        confidence=calculate_confidence(evaluation, incomplete),
        reason=generate_reason(evaluation, rule, incomplete),
        criteria=list(details.criteria) if details else [],
        missing_fields=list(missing_fields) if incomplete else [],
        required_documents=list(rule.required_documents),
        rule_version=rule.version,
        incomplete=incomplete,
        needs_review=not evaluation.succeeded or incomplete,
        evaluated_at=utc_now(),
        elapsed_ms=elapsed_ms,
    )


def build_error_result(profile_id: str, program_id: str, error: BaseException, elapsed_ms: float) -> EligibilityResult:
    return EligibilityResult(
        profile_id=profile_id,
        program_id=program_id,
        rule_id="error",
        eligible=False,
        confidence=0,
        reason=str(error) or "Unknown error occurred",
        incomplete=True,
        needs_review=True,
        evaluated_at=utc_now(),
        elapsed_ms=elapsed_ms,
    )


def generate_criteria_breakdown(rule: EligibilityRule, data: Mapping[str, Any]) -> List[CriterionComparison]:
    """Fallback criteria from the rule's required fields that are present in ``data``."""
    breakdown: List[CriterionComparison] = []
    for name in rule.required_fields:
        value = data[name] if name in data else None
        if value is None:
            continue
        met = value is True if isinstance(value, bool) else True
        status = "Met" if met else "Not applicable"
        label = format_field_name(name)
        breakdown.append(
            CriterionComparison(
                criterion=name,
                met=met,
                value=value,
                description=f"{label[:1].upper()}{label[1:]}: {status}",
            )
        )
    return breakdown


def summarize(results: Sequence[EligibilityResult]) -> BatchSummary:
    return BatchSummary(
        total=len(results),
        eligible=sum(1 for result in results if result.eligible),
        ineligible=sum(1 for result in results if not result.eligible and not result.incomplete),
        incomplete=sum(1 for result in results if result.incomplete),
        needs_review=sum(1 for result in results if result.needs_review),
    )


class EligibilityOrchestrator:
    """Evaluates profiles against programs using the injected stores."""

    def __init__(
        self,
        profiles: ProfileStore,
        rules: RuleStore,
        results: ResultCacheStore,
        ami_service: Optional[AMIService] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.profiles = profiles
        self.rules = rules
        self.results = results
        self.settings = settings or load_settings()
        self.ami_service = ami_service or StaticAMIService(self.settings.ami)

    def _resolve_options(self, options: Optional[EligibilityOptions]) -> EligibilityOptions:
        opts = options or EligibilityOptions()
        if opts.expires_in is None:
            opts = EligibilityOptions(
                cache_result=opts.cache_result,
                include_breakdown=opts.include_breakdown,
                force_re_evaluation=opts.force_re_evaluation,
                expires_in=timedelta(days=self.settings.cache.ttl_days),
                evaluation=opts.evaluation,
            )
        return opts

    def load_entities(self, profile_id: str, program_id: str) -> Tuple[Mapping[str, Any], List[EligibilityRule]]:
        profile = self.profiles.find_profile_by_id(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        if self.rules.find_program_by_id(program_id) is None:
            raise ProgramNotFoundError(program_id)
        rules = self.rules.find_active_rules_by_program(program_id)
        if not rules:
            raise NoActiveRulesError(program_id)
        return profile, sort_rules(rules)

    def evaluate(
        self, profile_id: str, program_id: str, options: Optional[EligibilityOptions] = None
    ) -> EligibilityResult:
        """Decide one program for one profile; failures become an error-shaped result."""
        start = time.perf_counter()
        opts = self._resolve_options(options)
        try:
            cached = check_cache(self.results, profile_id, program_id, start, opts.force_re_evaluation)
            if cached is not None:
                return cached

            profile, rules = self.load_entities(profile_id, program_id)
            data = prepare_data_context(profile, self.ami_service)
            outcome = evaluate_all_rules(rules, data, opts.evaluation)
            rule, chosen, combined = select_result_rule(rules, outcome)

            result = build_evaluation_result(
                profile_id,
                program_id,
                rule,
                combined,
                chosen.details,
                outcome.missing_fields,
                (time.perf_counter() - start) * 1000,
            )
            if opts.include_breakdown and not result.criteria:
                result.criteria = generate_criteria_breakdown(rule, data)

            if opts.cache_result and combined.succeeded:
                cache_result(self.results, result, opts.expires_in)

            logger.info(
                "Profile %s / program %s: eligible=%s confidence=%s rule=%s",
                profile_id,
                program_id,
                result.eligible,
                result.confidence,
                result.rule_id,
            )
            return result
        except Exception as exc:
            logger.warning("Eligibility evaluation failed for %s/%s: %s", profile_id, program_id, exc)
            return build_error_result(profile_id, program_id, exc, (time.perf_counter() - start) * 1000)

    def _evaluate_isolated(
        self, profile_id: str, program_id: str, options: Optional[EligibilityOptions]
    ) -> EligibilityResult:
        start = time.perf_counter()
        try:
            return self.evaluate(profile_id, program_id, options)
        except Exception as exc:
            logger.error("Failed to evaluate program %s in batch: %s", program_id, exc)
            return build_error_result(profile_id, program_id, exc, (time.perf_counter() - start) * 1000)

    def evaluate_multiple_programs(
        self,
        profile_id: str,
        program_ids: Sequence[str],
        options: Optional[EligibilityOptions] = None,
        max_workers: Optional[int] = None,
    ) -> BatchResult:
        start = time.perf_counter()
        workers = max_workers if max_workers is not None else self.settings.batch.max_workers
        ids = list(dict.fromkeys(program_ids))

        if workers > 1 and len(ids) > 1:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="eligibility") as pool:
                results = list(pool.map(lambda program_id: self._evaluate_isolated(profile_id, program_id, options), ids))
        else:
            results = [self._evaluate_isolated(profile_id, program_id, options) for program_id in ids]

        batch = BatchResult(
            profile_id=profile_id,
            program_results={result.program_id: result for result in results},
            summary=summarize(results),
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            "Batch evaluation for %s: %d programs, %d eligible",
            profile_id,
            batch.summary.total,
            batch.summary.eligible,
        )
        return batch

    def evaluate_all_programs(
        self, profile_id: str, options: Optional[EligibilityOptions] = None, max_workers: Optional[int] = None
    ) -> BatchResult:
        program_ids = [program.id for program in self.rules.find_active_programs()]
        return self.evaluate_multiple_programs(profile_id, program_ids, options, max_workers)

    def clear_cached_results(self, profile_id: str, program_id: Optional[str] = None) -> int:
        return clear_cached_results(self.results, profile_id, program_id)

    def get_cached_results(self, profile_id: str) -> List[EligibilityResult]:
        return get_cached_results(self.results, profile_id)


# ---------------------------------------------------------------------------
# Session-bound helpers
# ---------------------------------------------------------------------------


def orchestrator_for_session(db: Session, ami_service: Optional[AMIService] = None) -> EligibilityOrchestrator:
    return EligibilityOrchestrator(SQLProfileStore(db), SQLRuleStore(db), SQLResultCacheStore(db), ami_service)


def evaluate_eligibility(
    db: Session, profile_id: str, program_id: str, options: Optional[EligibilityOptions] = None
) -> EligibilityResult:
    return orchestrator_for_session(db).evaluate(profile_id, program_id, options)


# A SQLAlchemy Session is not thread-safe, so session-bound batches run sequentially.
def evaluate_multiple_programs(
    db: Session, profile_id: str, program_ids: Sequence[str], options: Optional[EligibilityOptions] = None
) -> BatchResult:
    return orchestrator_for_session(db).evaluate_multiple_programs(profile_id, program_ids, options, max_workers=1)


def evaluate_all_programs(db: Session, profile_id: str, options: Optional[EligibilityOptions] = None) -> BatchResult:
    return orchestrator_for_session(db).evaluate_all_programs(profile_id, options, max_workers=1)
