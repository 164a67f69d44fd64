"""Configuration of the targeted IDIE estimator."""

from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict

from .base import BaseConfiguration, Environment


class TMLEConfig(BaseConfiguration):
    """Settings for nuisance fitting, targeting and reporting.

    Every field can be set through an environment variable prefixed with
    TMLE_EXPOSED_, e.g. TMLE_EXPOSED_MAX_ITERATIONS=20.
    """

    model_config = SettingsConfigDict(
        env_prefix="TMLE_EXPOSED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Targeting
    max_iterations: int = Field(
        default=10, description="Maximum iterations of the targeting loop"
    )
    probability_bound: float = Field(
        default=1e-6,
        description="Predicted probabilities are clipped to [bound, 1 - bound]",
    )
    recompute_se: bool = Field(
        default=False,
        description="Recompute se0 and se_diff from the targeted influence curve",
    )

    # Super Learner
    cv_folds: int = Field(default=10, description="Cross-validation folds")
    stratified_folds: bool = Field(
        default=True, description="Stratify folds on the target when possible"
    )
    random_state: int | None = Field(default=None, description="Random seed")
    n_jobs: int = Field(default=1, description="Parallel jobs for candidate fits")
    parallel_backend: str = Field(default="threading", description="joblib backend")

    # Reporting and logging
    confidence_level: float = Field(
        default=0.95, description="Confidence level for Wald intervals"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("max_iterations")
    @classmethod
    def validate_max_iterations(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_iterations must be at least 1")
        return v

    @field_validator("probability_bound")
    @classmethod
    def validate_probability_bound(cls, v: float) -> float:
        if not 0 < v < 0.5:
            raise ValueError("probability_bound must be between 0 and 0.5")
        return v

    @field_validator("cv_folds")
    @classmethod
    def validate_cv_folds(cls, v: int) -> int:
        if v < 2:
            raise ValueError("cv_folds must be at least 2")
        return v

    @field_validator("confidence_level")
    @classmethod
    def validate_confidence_level(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("Confidence level must be between 0 and 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def validate_configuration(self) -> list[str]:
        """Validate estimator specific configuration."""
        issues = super().validate_configuration()

        if self.environment == Environment.PRODUCTION and self.random_state is None:
            issues.append("Set random_state in production for reproducible estimates")

        if self.probability_bound > 0.01:
            issues.append("A probability bound above 0.01 may bias the estimates")

        if self.cv_folds < 5:
            issues.append("Fewer than 5 folds gives noisy cross-validated risks")

        return issues
