"""
Lucid — Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. Environment variables (overrides)

Every tunable parameter in the audit pipeline lives here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


class LLMConfig(BaseModel):
    provider: str = "gemini"  # "gemini" | "openai" | "ollama"
    model: str = "gemini-1.5-flash"
    api_key: str = ""
    base_url: str | None = None
    fallback_provider: str | None = None
    timeout_s: float = 10.0
    max_retries: int = 2
    temperature: float = 0.2

    @model_validator(mode="after")
    def _strip_api_key(self) -> LLMConfig:
        # Secret managers can inject trailing \r\n into env vars
        if self.api_key:
            object.__setattr__(self, "api_key", self.api_key.strip())
        return self


class SchedulerConfig(BaseModel):
    mode: Literal["manual", "live", "simulation"] = "manual"
    simulation_interval: int = Field(default=30, gt=0)  # seconds between ticks
    seed: int | None = None  # seeds the simulation random walk


class HistoryConfig(BaseModel):
    drift_window: int = Field(default=20, gt=0)
    audit_log_size: int = Field(default=50, gt=0)


class AnalysisConfig(BaseModel):
    # Share one remote call between concurrent identical-key requests
    dedupe_inflight: bool = False


class DecisionConfig(BaseModel):
    """Initial decision state shown before any user edit."""

    input: dict[str, Any] = Field(
        default_factory=lambda: {
            "age": 28,
            "income": 75000,
            "creditScore": 680,
            "loanAmount": 25000,
        }
    )
    output: dict[str, Any] = Field(
        default_factory=lambda: {"decision": "Approved", "interestRate": 0.054}
    )
    confidence: float = Field(default=0.87, ge=0.0, le=1.0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"
    service: str = "lucid"  # stamped on every log entry
    # Third-party loggers held at WARNING
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["httpx", "httpcore", "asyncio", "uvicorn.access"]
    )


# ─── Root Configuration ──────────────────────────────────────────


class LucidConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="LUCID_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> LucidConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Inject secrets from environment
    import os

    if llm_key := os.environ.get("LUCID_LLM_API_KEY"):
        raw.setdefault("llm", {})["api_key"] = llm_key
    if llm_provider := os.environ.get("LUCID_LLM__PROVIDER"):
        raw.setdefault("llm", {})["provider"] = llm_provider
    if llm_model := os.environ.get("LUCID_LLM__MODEL"):
        raw.setdefault("llm", {})["model"] = llm_model
    if mode := os.environ.get("LUCID_SCHEDULER__MODE"):
        raw.setdefault("scheduler", {})["mode"] = mode
    if interval := os.environ.get("LUCID_SCHEDULER__SIMULATION_INTERVAL"):
        raw.setdefault("scheduler", {})["simulation_interval"] = int(interval)

    if overrides:
        raw = _deep_merge(raw, overrides)

    return LucidConfig(**raw)
