"""Targeted estimator of the interventional disparity indirect effect.

This module provides the TMLE of the IDIE among the exposed, together with
the influence-curve helpers and the targeting loop it is built from.
"""

from .idie_exposed import (
    IDIEExposedEstimator,
    build_counterfactual_predictions,
    estimate_idie_exposed,
)
from .targeting import TargetedUpdater, TargetingResult, TargetingState

__all__ = [
    "IDIEExposedEstimator",
    "build_counterfactual_predictions",
    "estimate_idie_exposed",
    "TargetedUpdater",
    "TargetingResult",
    "TargetingState",
]
