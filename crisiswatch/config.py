"""
CrisisWatch Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

import math
from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from crisiswatch.exceptions import ConfigurationError

WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class ModelSpec:
    """One reasoning call the orchestrator may issue."""
    name: str
    model: str
    timeout_seconds: float
    max_tokens: int = 2048
    temperature: float = 0.3


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "CrisisWatch"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # ── Fusion ───────────────────────────────────────────────────────────
    weight_conflict: float = Field(default=0.35, alias="RISK_WEIGHT_CONFLICT")
    weight_economic: float = Field(default=0.20, alias="RISK_WEIGHT_ECONOMIC")
    weight_climate: float = Field(default=0.20, alias="RISK_WEIGHT_CLIMATE")
    weight_news: float = Field(default=0.25, alias="RISK_WEIGHT_NEWS")
    min_contribution_share: float = Field(
        default=0.10, alias="MIN_CONTRIBUTION_SHARE",
        description="Share of total confidence-weight a source needs before its level can cap the verdict",
    )

    # Severity bands (0-100 score → risk level)
    band_critical: float = Field(default=75.0, alias="BAND_CRITICAL")
    band_high: float = Field(default=50.0, alias="BAND_HIGH")
    band_medium: float = Field(default=25.0, alias="BAND_MEDIUM")

    # ── Caches ───────────────────────────────────────────────────────────
    assessment_ttl_seconds: int = Field(default=300, alias="ASSESSMENT_TTL_SECONDS")
    analysis_ttl_seconds: int = Field(default=120, alias="ANALYSIS_TTL_SECONDS")
    provider_cache_ttl_seconds: int = Field(default=1800, alias="PROVIDER_CACHE_TTL_SECONDS")
    cache_max_entries: int = Field(default=1024, alias="CACHE_MAX_ENTRIES")

    # ── Source adapters ──────────────────────────────────────────────────
    adapter_timeout_seconds: float = Field(default=15.0, alias="ADAPTER_TIMEOUT_SECONDS")
    adapter_retry_attempts: int = Field(default=2, alias="ADAPTER_RETRY_ATTEMPTS")
    adapter_retry_base_delay: float = Field(default=0.5, alias="ADAPTER_RETRY_BASE_DELAY")
    breaker_failure_threshold: int = Field(default=5, alias="BREAKER_FAILURE_THRESHOLD")
    breaker_recovery_seconds: float = Field(default=30.0, alias="BREAKER_RECOVERY_SECONDS")

    gdelt_url: str = Field(default="https://api.gdeltproject.org/api/v2", alias="GDELT_URL")
    conflict_lookback_days: int = Field(default=14, alias="CONFLICT_LOOKBACK_DAYS")
    worldbank_url: str = Field(default="https://api.worldbank.org/v2", alias="WORLDBANK_URL")
    economic_lookback_years: int = Field(default=5, alias="ECONOMIC_LOOKBACK_YEARS")
    usgs_url: str = Field(default="https://earthquake.usgs.gov/fdsnws/event/1", alias="USGS_URL")
    open_meteo_url: str = Field(default="https://api.open-meteo.com/v1", alias="OPEN_METEO_URL")
    newsapi_url: str = Field(default="https://newsapi.org/v2", alias="NEWSAPI_URL")
    newsapi_key: str = Field(default="", alias="NEWS_API_KEY")
    guardian_url: str = Field(default="https://content.guardianapis.com", alias="GUARDIAN_URL")
    guardian_api_key: str = Field(default="", alias="GUARDIAN_API_KEY")
    news_lookback_days: int = Field(default=7, alias="NEWS_LOOKBACK_DAYS")

    # ── Reasoning models ─────────────────────────────────────────────────
    llm_base_url: str = Field(default="https://router.huggingface.co/v1", alias="LLM_BASE_URL")
    llm_api_key: str = Field(default="", alias="HUGGINGFACE_API_KEY")
    llm_max_tokens: int = Field(default=2048, alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.3, alias="LLM_TEMPERATURE")
    model_primary: str = Field(default="deepseek-ai/DeepSeek-R1", alias="MODEL_PRIMARY")
    model_primary_timeout: float = Field(default=7.0, alias="MODEL_PRIMARY_TIMEOUT")
    model_secondary: str = Field(default="Qwen/Qwen2.5-7B-Instruct", alias="MODEL_SECONDARY")
    model_secondary_timeout: float = Field(default=5.0, alias="MODEL_SECONDARY_TIMEOUT")
    model_tertiary: str = Field(default="meta-llama/Llama-3.3-70B-Instruct", alias="MODEL_TERTIARY")
    model_tertiary_timeout: float = Field(default=3.0, alias="MODEL_TERTIARY_TIMEOUT")
    fallback_confidence_factor: float = Field(default=0.8, alias="FALLBACK_CONFIDENCE_FACTOR")

    # ── Response planning ────────────────────────────────────────────────
    plan_default_population: int = Field(default=10_000, alias="PLAN_DEFAULT_POPULATION")

    # ── Operational ──────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def source_weights(self) -> dict[str, float]:
        """Per-source fusion weights, in fixed source order."""
        return {
            "conflict": self.weight_conflict,
            "economic": self.weight_economic,
            "climate": self.weight_climate,
            "news": self.weight_news,
        }

    @property
    def model_specs(self) -> list[ModelSpec]:
        """Reasoning calls in priority order (first is preferred)."""
        return [
            ModelSpec("primary", self.model_primary, self.model_primary_timeout,
                      self.llm_max_tokens, self.llm_temperature),
            ModelSpec("secondary", self.model_secondary, self.model_secondary_timeout,
                      self.llm_max_tokens, self.llm_temperature),
            ModelSpec("tertiary", self.model_tertiary, self.model_tertiary_timeout,
                      self.llm_max_tokens, self.llm_temperature),
        ]


def validate_weights(weights: dict[str, float]) -> None:
    """Fail fast unless weights are non-negative and sum to 1.0."""
    if not weights:
        raise ConfigurationError("No source weights configured")
    negative = {k: v for k, v in weights.items() if v < 0 or math.isnan(v)}
    if negative:
        raise ConfigurationError(
            "Source weights must be non-negative",
            details={"invalid": negative},
        )
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError(
            f"Source weights must sum to 1.0 (got {total:.6f})",
            details={"weights": dict(weights), "total": total},
        )


def validate_model_specs(specs: list[ModelSpec]) -> None:
    """Fail fast on an unusable model roster."""
    if not specs:
        raise ConfigurationError("At least one reasoning model must be configured")
    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        raise ConfigurationError("Model names must be unique", details={"names": names})
    for spec in specs:
        if spec.timeout_seconds <= 0:
            raise ConfigurationError(
                f"Model '{spec.name}' needs a positive timeout",
                details={"timeout_seconds": spec.timeout_seconds},
            )


settings = Settings()
