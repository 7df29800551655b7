"""Settings loader for evaluation, validation, cache and AMI defaults."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import BaseModel, Field


CONFIG_PATH = Path(__file__).resolve().parent / "config" / "engine.yaml"

_ENV_OVERRIDES = {
    "ELIGIBILITY_EVAL_TIMEOUT_MS": ("evaluation", "timeout_ms"),
    "ELIGIBILITY_EVAL_MAX_DEPTH": ("evaluation", "max_depth"),
    "ELIGIBILITY_CACHE_TTL_DAYS": ("cache", "ttl_days"),
    "ELIGIBILITY_BATCH_MAX_WORKERS": ("batch", "max_workers"),
}

_REQUIRED_KEYS = {
    "evaluation": ("max_depth", "timeout_ms"),
    "validation": ("max_depth", "max_complexity"),
    "cache": ("ttl_days",),
}


class EvaluationSettings(BaseModel):
    max_depth: int = Field(100, ge=1)
    timeout_ms: int = Field(5000, ge=0)
    strict: bool = False


class ValidationSettings(BaseModel):
    max_depth: int = Field(20, ge=1)
    max_complexity: int = Field(100, ge=1)
    strict: bool = False


class CacheSettings(BaseModel):
    ttl_days: int = Field(30, ge=0)


class BatchSettings(BaseModel):
    max_workers: int = Field(1, ge=1)


class EngineSettings(BaseModel):
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    ami: Dict[str, Any] = Field(default_factory=dict)


def _config_path() -> Path:
    override = os.getenv("ELIGIBILITY_CONFIG")
    return Path(override) if override else CONFIG_PATH


def _validate_section(name: str, data: Any) -> None:
    """Validate that a config section is a mapping holding its required keys."""
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{name}' must be a mapping.")
    missing = [f"{name}.{key}" for key in _REQUIRED_KEYS.get(name, ()) if key not in data]
    if missing:
        missing_keys = ", ".join(missing)
        raise ValueError(f"Config section '{name}' missing required keys: {missing_keys}")


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or value == "":
            continue
        try:
            number = int(value)
        except ValueError as exc:
            raise ValueError(f"{env_name} must be an integer, got {value!r}") from exc
        raw.setdefault(section, {})[key] = number


@lru_cache(maxsize=1)
def load_settings() -> EngineSettings:
    """
    Load engine settings from config/engine.yaml (or $ELIGIBILITY_CONFIG).

    Sections present in the file are validated; environment overrides are
    applied on top before the pydantic model fills remaining defaults.
    """
    path = _config_path()
    if not path.exists():
        raise FileNotFoundError(f"Engine config not found at {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Engine config at {path} must be a mapping.")

    for name in _REQUIRED_KEYS:
        if name in raw:
            _validate_section(name, raw[name])
    _apply_env_overrides(raw)
    return EngineSettings(**raw)


def reload_settings() -> None:
    """Clear the cached settings so the next call re-reads the file and environment."""
    load_settings.cache_clear()
