from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUMMARY_MODES: frozenset[str] = frozenset({"cached", "live"})


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tuning knobs out of the engine code."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Segment matching
    hit_threshold_m: float = Field(default=30.0, gt=0.0, le=1000.0, alias="HIT_THRESHOLD_M")
    bbox_expansion_deg: float = Field(default=0.0025, ge=0.0, le=1.0, alias="BBOX_EXPANSION_DEG")
    max_candidate_segments: int = Field(default=2000, ge=1, le=100_000, alias="MAX_CANDIDATE_SEGMENTS")

    # Condition consensus
    freshness_half_life_days: float = Field(default=30.0, gt=0.0, alias="FRESHNESS_HALF_LIFE_DAYS")
    max_reports_per_segment: int = Field(default=200, ge=1, le=10_000, alias="MAX_REPORTS_PER_SEGMENT")
    summary_mode: str = Field(default="live", alias="SUMMARY_MODE")

    # Ranking
    weight_effectiveness: float = Field(default=0.5, ge=0.0, alias="WEIGHT_EFFECTIVENESS")
    weight_quality: float = Field(default=0.5, ge=0.0, alias="WEIGHT_QUALITY")
    low_confidence_evidence_threshold: float = Field(
        default=0.35,
        ge=0.0,
        le=1.0,
        alias="LOW_CONFIDENCE_EVIDENCE_THRESHOLD",
    )
    scoring_concurrency: int = Field(default=8, ge=1, le=64, alias="SCORING_CONCURRENCY")

    # OpenRouteService directions
    ors_base_url: str = Field(default="https://api.openrouteservice.org", alias="ORS_BASE_URL")
    ors_api_key: str = Field(default="", alias="ORS_API_KEY")
    ors_profile: str = Field(default="cycling-regular", alias="ORS_PROFILE")
    ors_timeout_s: float = Field(default=15.0, ge=1.0, le=120.0, alias="ORS_TIMEOUT_S")
    ors_max_alternatives: int = Field(default=3, ge=1, le=3, alias="ORS_MAX_ALTERNATIVES")
    ors_max_retries: int = Field(default=3, ge=1, le=8, alias="ORS_MAX_RETRIES")

    @model_validator(mode="after")
    def _normalise_summary_mode(self) -> "Settings":
        mode = str(self.summary_mode or "live").strip().lower()
        if mode not in SUMMARY_MODES:
            mode = "live"
        self.summary_mode = mode
        return self


settings = Settings()
