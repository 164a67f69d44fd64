"""Base classes and data models for the IDIE-among-the-exposed estimator.

This module provides the input data model, the result container, the
exception hierarchy and the abstract estimator that the targeted estimator
builds on.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, field_validator
from scipy import stats


class IDIEData(BaseModel):
    """Data model for an exposure -> mediator -> outcome analysis.

    Bundles the analysis frame with the names of the binary exposure,
    mediator and outcome and the confounder sets of the three nuisance
    models. The exposure (and mediator, for the outcome model) are added to
    the confounder sets automatically and must not be listed in them.
    """

    data: pd.DataFrame = Field(..., description="Analysis data, one row per observation")
    exposure: str = Field(..., description="Name of the binary exposure")
    mediator: str = Field(..., description="Name of the binary mediator")
    outcome: str = Field(..., description="Name of the binary outcome")
    confounders_a: list[str] = Field(
        default_factory=list, description="Confounders of the exposure model"
    )
    confounders_z: list[str] = Field(
        default_factory=list, description="Confounders of the mediator model"
    )
    confounders_y: list[str] = Field(
        default_factory=list, description="Confounders of the outcome model"
    )
    id_column: Optional[str] = Field(
        default=None, description="Optional column holding unique observation ids"
    )

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("exposure", "mediator", "outcome")
    @classmethod
    def validate_variable_name(cls, v: str) -> str:
        """Validate that a role is given a non-empty column name."""
        if not v or not v.strip():
            raise ValueError(
                "Please specify names for the exposure, mediator, and outcome variables"
            )
        return v

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: pd.DataFrame) -> pd.DataFrame:
        """Validate the analysis frame is not empty."""
        if len(v) == 0:
            raise ValueError("Analysis data cannot be empty")
        return v

    @property
    def role_columns(self) -> list[str]:
        """Exposure, mediator and outcome column names."""
        return [self.exposure, self.mediator, self.outcome]

    @property
    def all_confounders(self) -> list[str]:
        """Union of the three confounder sets, in first-seen order."""
        return list(
            dict.fromkeys([*self.confounders_a, *self.confounders_z, *self.confounders_y])
        )


@dataclass(frozen=True)
class IDIEEffect:
    """Result of the targeted estimation of the IDIE among the exposed.

    psi0 is the outcome risk among the exposed had their mediator
    distribution been that of comparable unexposed individuals, psi1 the
    risk under their own mediator distribution, and psi = psi0 - psi1 the
    interventional disparity indirect effect.
    """

    # Core estimates
    psi0: float
    psi1: float
    psi: float

    # Influence-curve standard errors
    se0: float
    se1: float
    se_diff: float
    confidence_level: float = 0.95

    # Nuisance model reports, keyed by "exposure", "mediator", "outcome"
    cv_risk: dict[str, pd.Series] = field(default_factory=dict)
    discrete_algorithm: dict[str, str] = field(default_factory=dict)
    distributions: Optional[pd.DataFrame] = None

    # Expanded tables for diagnostics
    augmented_dataset: Optional[pd.DataFrame] = None
    targeted_dataset: Optional[pd.DataFrame] = None

    # Sample and targeting details
    method: str = "TMLE"
    n_observations: Optional[int] = None
    n_exposed: Optional[int] = None
    pibar: Optional[float] = None
    psi0_init: Optional[float] = None
    converged: bool = False
    n_iterations: int = 0
    tolerance: Optional[float] = None
    convergence_history: list[dict[str, float]] = field(default_factory=list)
    solve_eic1: Optional[float] = None
    recomputed_se: bool = False

    def __post_init__(self) -> None:
        """Validate the standard errors and confidence level."""
        if self.confidence_level <= 0 or self.confidence_level >= 1:
            raise ValueError("Confidence level must be between 0 and 1")

        for name, value in self.se.items():
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"Standard error {name} must be finite and non-negative")

    @property
    def estimate(self) -> dict[str, float]:
        """Point estimates keyed by psi0, psi1 and psi."""
        return {"psi0": self.psi0, "psi1": self.psi1, "psi": self.psi}

    @property
    def se(self) -> dict[str, float]:
        """Standard errors keyed by se0, se1 and se_diff."""
        return {"se0": self.se0, "se1": self.se1, "se_diff": self.se_diff}

    def confidence_interval(self, parameter: str = "psi") -> tuple[float, float]:
        """Wald confidence interval for psi0, psi1 or psi.

        Args:
            parameter: One of "psi0", "psi1" or "psi"

        Returns:
            Tuple of (lower_bound, upper_bound)
        """
        se_names = {"psi0": "se0", "psi1": "se1", "psi": "se_diff"}
        if parameter not in se_names:
            raise ValueError(f"parameter must be one of {sorted(se_names)}")

        z_score = stats.norm.ppf(1 - (1 - self.confidence_level) / 2)
        estimate = self.estimate[parameter]
        half_width = z_score * self.se[se_names[parameter]]
        return (estimate - half_width, estimate + half_width)

    @property
    def is_significant(self) -> bool:
        """Whether the IDIE confidence interval excludes zero."""
        lower, upper = self.confidence_interval("psi")
        return lower > 0 or upper < 0


class CausalInferenceError(Exception):
    """Base exception class for causal inference specific errors."""

    pass


class DataValidationError(CausalInferenceError):
    """Raised when input data fails validation."""

    pass


class EstimationError(CausalInferenceError):
    """Raised when estimation process fails."""

    pass


class TargetingConvergenceWarning(UserWarning):
    """Issued when the targeting loop stops without solving the efficient influence equation."""

    pass


class BaseEstimator(abc.ABC):
    """Abstract base class for estimators over an IDIEData input.

    Attributes:
        is_fitted: Whether the estimator has been fitted to data
        data: The validated input data
        _effect: Cached effect estimate
    """

    def __init__(
        self,
        random_state: Optional[int] = None,
        verbose: bool = False,
    ) -> None:
        """Initialize the base estimator.

        Args:
            random_state: Random seed for reproducible results
            verbose: Whether to log progress at INFO level
        """
        self.random_state = random_state
        self.verbose = verbose
        self.is_fitted = False

        self.data: Optional[IDIEData] = None
        self._effect: Optional[IDIEEffect] = None

    @abc.abstractmethod
    def _validate_inputs(self, data: IDIEData) -> pd.DataFrame:
        """Validate the input and return the analysis frame to fit on."""
        pass

    @abc.abstractmethod
    def _fit_implementation(self, frame: pd.DataFrame) -> None:
        """Implement the specific fitting logic for this estimator.

        Args:
            frame: Validated analysis frame returned by _validate_inputs
        """
        pass

    @abc.abstractmethod
    def _estimate_implementation(self) -> IDIEEffect:
        """Implement the specific estimation logic for this estimator."""
        pass

    def fit(self, data: IDIEData) -> BaseEstimator:
        """Fit the estimator to data.

        Args:
            data: Input data with variable roles

        Returns:
            self: The fitted estimator instance

        Raises:
            DataValidationError: If input data fails validation
            EstimationError: If fitting process fails
        """
        # Validation errors surface unwrapped, before any model is fit
        frame = self._validate_inputs(data)

        self.data = data
        self._effect = None
        self.is_fitted = False

        try:
            self._fit_implementation(frame)
            self.is_fitted = True
        except Exception as e:
            raise EstimationError(f"Failed to fit estimator: {str(e)}") from e

        return self

    def estimate(self, use_cache: bool = True) -> IDIEEffect:
        """Assemble the effect estimate of the fitted estimator.

        Args:
            use_cache: Whether to use cached results if available

        Returns:
            IDIEEffect with estimates, standard errors and diagnostics

        Raises:
            EstimationError: If estimator is not fitted or estimation fails
        """
        if not self.is_fitted:
            raise EstimationError("Estimator must be fitted before estimation")

        if use_cache and self._effect is not None:
            return self._effect

        try:
            effect = self._estimate_implementation()
        except Exception as e:
            raise EstimationError(f"Failed to estimate effect: {str(e)}") from e

        self._effect = effect
        return effect

    def summary(self) -> dict[str, Any]:
        """Short status summary of the estimator."""
        summary: dict[str, Any] = {
            "estimator": self.__class__.__name__,
            "fitted": self.is_fitted,
        }
        if self.data is not None:
            summary["n_observations"] = len(self.data.data)
        if self._effect is not None:
            summary.update(self._effect.estimate)
            summary.update(self._effect.se)
        return summary
