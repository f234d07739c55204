"""
RiskGate Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine defaults loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "RiskGate"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # ── Classification ───────────────────────────────────────────────────
    classification_history_window: int = Field(default=50, alias="CLASSIFICATION_HISTORY_WINDOW")
    base_auto_approve_min: float = Field(default=72.0, alias="BASE_AUTO_APPROVE_MIN")
    base_block_max: float = Field(default=42.0, alias="BASE_BLOCK_MAX")

    # ── Preemptive Detection ─────────────────────────────────────────────
    preemptive_max_history: int = Field(default=500, alias="PREEMPTIVE_MAX_HISTORY")
    preemptive_min_samples: int = Field(default=3, alias="PREEMPTIVE_MIN_SAMPLES")
    preemptive_min_failure_rate: float = Field(default=0.45, alias="PREEMPTIVE_MIN_FAILURE_RATE")
    preemptive_max_risk_lift: float = Field(default=0.35, alias="PREEMPTIVE_MAX_RISK_LIFT")
    preemptive_review_threshold: float = Field(default=0.14, alias="PREEMPTIVE_REVIEW_THRESHOLD")
    preemptive_block_threshold: float = Field(default=0.30, alias="PREEMPTIVE_BLOCK_THRESHOLD")

    # ── Human Override ───────────────────────────────────────────────────
    override_adaptation_window: int = Field(default=100, alias="OVERRIDE_ADAPTATION_WINDOW")
    override_learning_rate: float = Field(default=0.04, alias="OVERRIDE_LEARNING_RATE")

    # ── Historical Feedback ──────────────────────────────────────────────
    feedback_max_history: int = Field(default=500, alias="FEEDBACK_MAX_HISTORY")
    feedback_weight_learning_rate: float = Field(default=0.2, alias="FEEDBACK_WEIGHT_LEARNING_RATE")
    feedback_simulation_learning_rate: float = Field(default=0.2, alias="FEEDBACK_SIMULATION_LEARNING_RATE")
    feedback_compliance_learning_rate: float = Field(default=0.2, alias="FEEDBACK_COMPLIANCE_LEARNING_RATE")
    feedback_minimum_sample_size: int = Field(default=8, alias="FEEDBACK_MINIMUM_SAMPLE_SIZE")

    # ── Threshold Optimization ───────────────────────────────────────────
    optimizer_minimum_signal_count: int = Field(default=5, alias="OPTIMIZER_MINIMUM_SIGNAL_COUNT")
    optimizer_max_shift_per_cycle: float = Field(default=4.0, alias="OPTIMIZER_MAX_SHIFT_PER_CYCLE")
    optimizer_learning_rate: float = Field(default=0.1, alias="OPTIMIZER_LEARNING_RATE")
    optimizer_max_version_history: int = Field(default=50, alias="OPTIMIZER_MAX_VERSION_HISTORY")
    optimizer_ema_alpha: float = Field(default=0.2, alias="OPTIMIZER_EMA_ALPHA")

    # ── Enforcement ──────────────────────────────────────────────────────
    enforcement_strict_mode: bool = Field(default=False, alias="ENFORCEMENT_STRICT_MODE")
    simulation_seed: int = Field(default=7, alias="SIMULATION_SEED")


settings = Settings()
