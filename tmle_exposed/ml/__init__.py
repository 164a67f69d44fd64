"""Machine learning module for nuisance parameter estimation.

This module provides the discrete Super Learner used to fit the exposure,
mediator and outcome regressions of the targeted estimator.
"""

from .super_learner import (
    SuperLearner,
    SuperLearnerConfig,
    available_learners,
    make_learner,
)

__all__ = [
    "SuperLearner",
    "SuperLearnerConfig",
    "available_learners",
    "make_learner",
]
