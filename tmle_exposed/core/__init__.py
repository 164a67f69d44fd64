"""Core data models, result container and exception hierarchy."""

from .base import (
    BaseEstimator,
    CausalInferenceError,
    DataValidationError,
    EstimationError,
    IDIEData,
    IDIEEffect,
    TargetingConvergenceWarning,
)

__all__ = [
    "BaseEstimator",
    "IDIEData",
    "IDIEEffect",
    "CausalInferenceError",
    "DataValidationError",
    "EstimationError",
    "TargetingConvergenceWarning",
]
