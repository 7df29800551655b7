"""Read-through helpers over the eligibility result cache store."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional

from backend.stores import ResultCacheStore
from eligibility_engine.models import EligibilityResult, utc_now

logger = logging.getLogger(__name__)


def is_expired(result: EligibilityResult, now: Optional[datetime] = None) -> bool:
    if result.expires_at is None:
        return False
    return (now or utc_now()) > result.expires_at


def check_cache(
    store: ResultCacheStore,
    profile_id: str,
    program_id: str,
    started: float,
    force: bool = False,
) -> Optional[EligibilityResult]:
    """
    Return the newest unexpired cached result, or ``None``.

    ``started`` is the ``time.perf_counter()`` reading taken when the request
    began; the returned copy reports the elapsed time of this lookup.
    """
    if force:
        logger.debug("Cache bypassed for %s/%s", profile_id, program_id)
        return None
    cached = store.find_latest_result(profile_id, program_id)
    if cached is None:
        return None
    if is_expired(cached):
        logger.debug("Cached result for %s/%s expired at %s", profile_id, program_id, cached.expires_at)
        return None
    logger.info("Using cached eligibility result for %s/%s", profile_id, program_id)
    return cached.model_copy(update={"elapsed_ms": (time.perf_counter() - started) * 1000})


def cache_result(store: ResultCacheStore, result: EligibilityResult, expires_in: timedelta) -> datetime:
    expires_at = utc_now() + expires_in
    store.insert_result(result, expires_at)
    return expires_at


def clear_cached_results(store: ResultCacheStore, profile_id: str, program_id: Optional[str] = None) -> int:
    deleted = store.delete_results(profile_id, program_id)
    logger.info("Cleared %d cached result(s) for profile %s", deleted, profile_id)
    return deleted


def get_cached_results(store: ResultCacheStore, profile_id: str) -> List[EligibilityResult]:
    """All cached results for a profile, newest first."""
    return store.list_results(profile_id)
