"""Synthetic data generation for the IDIE estimator.

Simulates a binary exposure, a binary mediator and a binary outcome with
age, sex and disease as confounders, and evaluates the true counterfactual
risks among the exposed from the generating model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from scipy.special import expit


@dataclass(frozen=True)
class IDIECoefficients:
    """Logistic coefficients of the exposure, mediator and outcome models."""

    # A ~ age + sex
    a_intercept: float = -3.0
    a_age: float = 0.05
    a_sex: float = 1.0

    # Z ~ age + sex + disease + A
    z_intercept: float = 5.0
    z_age: float = -0.08
    z_sex: float = 1.0
    z_disease: float = -1.2
    z_exposure: float = -0.8

    # Y ~ age + sex + disease + Z + A
    y_intercept: float = -9.0
    y_age: float = 0.09
    y_sex: float = 0.5
    y_disease: float = 0.8
    y_mediator: float = -1.2
    y_exposure: float = 0.7


class SyntheticDataGenerator:
    """Generator for exposure -> mediator -> outcome datasets."""

    def __init__(
        self,
        random_state: Optional[int] = None,
        coefficients: Optional[IDIECoefficients] = None,
    ) -> None:
        """Initialize the synthetic data generator.

        Args:
            random_state: Random seed for reproducible results
            coefficients: Generating coefficients; defaults when None
        """
        self.random_state = random_state
        self.coefficients = coefficients or IDIECoefficients()
        self.rng = np.random.default_rng(random_state)

    def exposure_probability(self, frame: pd.DataFrame) -> np.ndarray:
        c = self.coefficients
        return expit(c.a_intercept + c.a_age * frame["age"] + c.a_sex * frame["sex"])

    def mediator_probability(self, frame: pd.DataFrame, exposure: np.ndarray | int) -> np.ndarray:
        c = self.coefficients
        return expit(
            c.z_intercept
            + c.z_age * frame["age"]
            + c.z_sex * frame["sex"]
            + c.z_disease * frame["disease"]
            + c.z_exposure * exposure
        )

    def outcome_probability(
        self, frame: pd.DataFrame, exposure: np.ndarray | int, mediator: np.ndarray | int
    ) -> np.ndarray:
        c = self.coefficients
        return expit(
            c.y_intercept
            + c.y_age * frame["age"]
            + c.y_sex * frame["sex"]
            + c.y_disease * frame["disease"]
            + c.y_mediator * mediator
            + c.y_exposure * exposure
        )

    def generate(self, n_samples: int = 5000) -> pd.DataFrame:
        """Draw a dataset with columns id, exposure, mediator, outcome, age, sex, disease.

        Args:
            n_samples: Number of observations to generate

        Returns:
            DataFrame with one row per observation
        """
        frame = pd.DataFrame(
            {
                "sex": self.rng.binomial(1, 0.4, n_samples),
                "age": self.rng.normal(65, 5, n_samples),
                "disease": self.rng.binomial(1, 0.6, n_samples),
            }
        )

        exposure = self.rng.binomial(1, self.exposure_probability(frame))
        mediator = self.rng.binomial(1, self.mediator_probability(frame, exposure))
        outcome = self.rng.binomial(1, self.outcome_probability(frame, exposure, mediator))

        return pd.DataFrame(
            {
                "id": np.arange(1, n_samples + 1),
                "exposure": exposure.astype(int),
                "mediator": mediator.astype(int),
                "outcome": outcome.astype(int),
                "age": frame["age"],
                "sex": frame["sex"],
                "disease": frame["disease"],
            }
        )

    def exposed_risk(self, frame: pd.DataFrame, mediator_exposure: int) -> float:
        """True risk among the exposed with the mediator drawn as under A = mediator_exposure.

        The expectation is over the covariates of the exposed rows of frame,
        so it is the sample-conditional value of the parameter.
        """
        exposed = frame.loc[frame["exposure"] == 1]
        gamma = self.mediator_probability(exposed, mediator_exposure)
        risk = gamma * self.outcome_probability(exposed, 1, 1) + (
            1 - gamma
        ) * self.outcome_probability(exposed, 1, 0)
        return float(np.mean(risk))

    def true_psi0(self, frame: pd.DataFrame) -> float:
        """Risk among the exposed under the unexposed mediator distribution."""
        return self.exposed_risk(frame, mediator_exposure=0)

    def true_psi1(self, frame: pd.DataFrame) -> float:
        """Risk among the exposed under their own mediator distribution."""
        return self.exposed_risk(frame, mediator_exposure=1)


def generate_idie_data(n: int = 5000, random_state: Optional[int] = None) -> pd.DataFrame:
    """Generate the default exposure -> mediator -> outcome simulation."""
    return SyntheticDataGenerator(random_state=random_state).generate(n)
