"""Targeted estimation of the Interventional Disparity Indirect Effect among the exposed.

A TMLE for the change in outcome risk among the exposed had their chance
of a binary mediator been the same as for similar unexposed individuals.
"""

__version__ = "0.1.0"

from .core import (
    CausalInferenceError,
    DataValidationError,
    EstimationError,
    IDIEData,
    IDIEEffect,
    TargetingConvergenceWarning,
)
from .data import SyntheticDataGenerator, generate_idie_data
from .estimators import IDIEExposedEstimator, estimate_idie_exposed
from .ml import SuperLearner

__all__ = [
    "__version__",
    "CausalInferenceError",
    "DataValidationError",
    "EstimationError",
    "IDIEData",
    "IDIEEffect",
    "IDIEExposedEstimator",
    "SuperLearner",
    "SyntheticDataGenerator",
    "TargetingConvergenceWarning",
    "estimate_idie_exposed",
    "generate_idie_data",
]
