"""
Configuration loader for PATCHBAY.
Merges defaults with per-repo .patchbay/config.yaml overrides, then env vars.
Out-of-range numbers are clamped to their documented bounds.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class CompletionConfig(BaseModel):
    model: str = "xai/grok-4-0709"
    temperature: float = 0.5
    stream: bool = True
    timeout_seconds: float = 60.0


class CacheConfig(BaseModel):
    enable_cache: bool = True
    max_items: int = 100
    ttl_minutes: int = 60

    @field_validator("max_items")
    @classmethod
    def _clamp_items(cls, v: int) -> int:
        return int(_clamp(v, 10, 1000))

    @field_validator("ttl_minutes")
    @classmethod
    def _clamp_ttl(cls, v: int) -> int:
        return int(_clamp(v, 1, 1440))


class LimitsConfig(BaseModel):
    token_multiplier: float = 1.1
    max_tokens: int = 9000
    max_requests_per_window: int = 20
    window_ms: int = 60_000

    @field_validator("token_multiplier")
    @classmethod
    def _clamp_multiplier(cls, v: float) -> float:
        return _clamp(v, 1.0, 2.0)

    @field_validator("max_tokens", "max_requests_per_window", "window_ms")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)


class WorkspaceConfig(BaseModel):
    log_dir: str = ".patchbay/logs"
    audit_log: bool = True


class PatchbayConfig(BaseModel):
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

# env var → (section, key)
_ENV_OVERRIDES = {
    "PATCHBAY_MODEL": ("completion", "model"),
    "PATCHBAY_ENABLE_CACHE": ("cache", "enable_cache"),
    "PATCHBAY_MAX_TOKENS": ("limits", "max_tokens"),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_config(repo_path: Path | None = None) -> PatchbayConfig:
    """
    Load config by merging:
      1. Built-in defaults (patchbay/config.yaml)
      2. Repo-level overrides (<repo>/.patchbay/config.yaml)
      3. Environment variable overrides
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if repo_path:
        repo_config = repo_path / ".patchbay" / "config.yaml"
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    base = _deep_merge(base, _env_overrides())
    return PatchbayConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which provider API keys are available."""
    return {
        "XAI_API_KEY":       bool(os.environ.get("XAI_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
    }
