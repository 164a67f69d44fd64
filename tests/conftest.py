"""Pytest configuration and shared fixtures for the IDIE estimator tests."""

import numpy as np
import pandas as pd
import pytest

from shared.config import TMLEConfig
from tmle_exposed.core.base import IDIEData
from tmle_exposed.data.synthetic import SyntheticDataGenerator
from tmle_exposed.estimators.idie_exposed import (
    EXPOSURE_MODEL,
    MEDIATOR_MODEL,
    OUTCOME_MODEL,
    build_counterfactual_predictions,
)
from tmle_exposed.utils.validation import EXPOSURE, MEDIATOR, validate_idie_data

CONFOUNDERS_A = ["sex", "age"]
CONFOUNDERS_Z = ["sex", "age", "disease"]
CONFOUNDERS_Y = ["sex", "age", "disease"]


@pytest.fixture
def random_state():
    """Fixed random state for reproducible tests."""
    return 42


@pytest.fixture
def generator(random_state):
    """Synthetic data generator with the default coefficients."""
    return SyntheticDataGenerator(random_state=random_state)


@pytest.fixture
def small_idie_frame(generator):
    """Small simulated dataset for fast estimator tests."""
    return generator.generate(600)


@pytest.fixture
def idie_frame(generator):
    """Medium simulated dataset."""
    return generator.generate(2000)


@pytest.fixture
def small_idie_data(small_idie_frame):
    """IDIEData wrapper around the small simulated dataset."""
    return IDIEData(
        data=small_idie_frame,
        exposure="exposure",
        mediator="mediator",
        outcome="outcome",
        confounders_a=CONFOUNDERS_A,
        confounders_z=CONFOUNDERS_Z,
        confounders_y=CONFOUNDERS_Y,
        id_column="id",
    )


@pytest.fixture
def fast_config():
    """Configuration with few folds so estimator tests stay quick."""
    return TMLEConfig(cv_folds=3, random_state=7)


@pytest.fixture
def toy_binary_frame():
    """Tiny frame with binary roles and a handful of confounders."""
    np.random.seed(0)
    n = 40
    return pd.DataFrame(
        {
            "exposure": np.tile([0, 1], n // 2),
            "mediator": np.repeat([0, 1], n // 2),
            "outcome": np.tile([0, 0, 1, 1], n // 4),
            "age": np.random.normal(60, 5, n),
            "sex": np.random.binomial(1, 0.5, n),
        }
    )


class FunctionModel:
    """Stand-in for a fitted super learner that predicts from a known function."""

    def __init__(self, function):
        self.function = function

    def predict(self, X):
        return np.asarray(self.function(X), dtype=float)


@pytest.fixture
def true_models(generator):
    """Nuisance models returning the generating probabilities."""
    return {
        EXPOSURE_MODEL: FunctionModel(generator.exposure_probability),
        MEDIATOR_MODEL: FunctionModel(
            lambda X: generator.mediator_probability(X, X[EXPOSURE].to_numpy())
        ),
        OUTCOME_MODEL: FunctionModel(
            lambda X: generator.outcome_probability(
                X, X[EXPOSURE].to_numpy(), X[MEDIATOR].to_numpy()
            )
        ),
    }


@pytest.fixture
def analysis_frame(idie_frame):
    """Validated analysis frame of the medium dataset."""
    return validate_idie_data(
        IDIEData(
            data=idie_frame,
            exposure="exposure",
            mediator="mediator",
            outcome="outcome",
            confounders_a=CONFOUNDERS_A,
            confounders_z=CONFOUNDERS_Z,
            confounders_y=CONFOUNDERS_Y,
        )
    )


@pytest.fixture
def expanded_frame(analysis_frame, true_models):
    """Expanded prediction table built from the generating probabilities."""
    return build_counterfactual_predictions(
        analysis_frame, true_models, CONFOUNDERS_A, CONFOUNDERS_Z, CONFOUNDERS_Y
    )
