"""Iterative targeting of the outcome, mediator and exposure predictions.

Each iteration fits three one-dimensional logistic fluctuation submodels on
the observed-mediator rows of the expanded table, in the order outcome,
mediator, exposure, and folds each fitted epsilon into the running
predictions on the logit scale. The loop stops once the empirical mean of
the efficient influence curve of psi0 is within se0 / (log(n) * sqrt(n)).
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from numpy.typing import NDArray
from scipy.special import expit, logit

from ..core.base import EstimationError, TargetingConvergenceWarning
from ..utils.validation import EXPOSURE, MEDIATOR, OUTCOME
from .influence import (
    aggregate_over_mediator,
    eic_psi0,
    mediator_density_ratio,
    observed_rows,
    psi0_plugin,
)

__all__ = [
    "TargetedUpdater",
    "TargetingResult",
    "TargetingState",
    "fit_fluctuation",
    "warn_not_converged",
]

logger = logging.getLogger(__name__)

Q_COLUMNS = ("Qhat", "Qhat_a1", "Qhat_a1_z0", "Qhat_a1_z1")
GAMMA_COLUMNS = ("gammahat", "gammahat_a1", "gammahat_a0")


class TargetingState(str, Enum):
    """States of the targeting loop."""

    ITERATING = "iterating"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@dataclass
class TargetingResult:
    """Outcome of a run of the targeting loop."""

    psi0: float
    state: TargetingState
    n_iterations: int
    tolerance: float
    frame: pd.DataFrame
    history: list[dict[str, float]] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.state is TargetingState.CONVERGED


def fit_fluctuation(
    endog: NDArray[Any],
    offset: NDArray[Any],
    exog: Optional[NDArray[Any]] = None,
    weights: Optional[NDArray[Any]] = None,
) -> float:
    """Fit a one-parameter logistic fluctuation with an offset.

    Args:
        endog: Binary response
        offset: Current predictions on the logit scale
        exog: Single clever covariate; an intercept-only model when None
        weights: Prior weights; rows with zero weight do not enter the fit

    Returns:
        The fitted coefficient epsilon
    """
    endog = np.asarray(endog, dtype=float)
    offset = np.asarray(offset, dtype=float)
    exog = np.ones(len(endog)) if exog is None else np.asarray(exog, dtype=float)

    if weights is not None:
        weights = np.asarray(weights, dtype=float)
        keep = weights > 0
        endog, offset, exog, weights = endog[keep], offset[keep], exog[keep], weights[keep]

    if len(endog) == 0:
        raise EstimationError("Fluctuation model has no rows with positive weight")

    model = sm.GLM(
        endog,
        exog.reshape(-1, 1),
        family=sm.families.Binomial(),
        offset=offset,
        var_weights=weights,
    )
    epsilon = float(np.asarray(model.fit().params)[0])

    if not np.isfinite(epsilon):
        raise EstimationError("Fluctuation model returned a non-finite epsilon")
    return epsilon


def warn_not_converged(max_iterations: int, stacklevel: int = 2) -> None:
    """Issue TargetingConvergenceWarning, attributed stacklevel frames up."""
    warnings.warn(
        f"Efficient influence function for psi0 was not solved in "
        f"{max_iterations} iterations",
        TargetingConvergenceWarning,
        stacklevel=stacklevel,
    )


class TargetedUpdater:
    """Targeted updating loop for psi0.

    Attributes:
        pibar: Marginal probability of exposure, fixed during targeting
        n_observations: Number of observations n
        se0: Initial (un-targeted) standard error of psi0
        max_iterations: Maximum number of iterations
        probability_bound: Predictions are kept in [bound, 1 - bound]
    """

    def __init__(
        self,
        pibar: float,
        n_observations: int,
        se0: float,
        max_iterations: int = 10,
        probability_bound: float = 1e-6,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.pibar = pibar
        self.n_observations = n_observations
        self.se0 = se0
        self.max_iterations = max_iterations
        self.probability_bound = probability_bound

    @property
    def tolerance(self) -> float:
        """Stopping bound se0 / (log(n) * sqrt(n))."""
        n = self.n_observations
        return self.se0 / (np.log(n) * np.sqrt(n))

    def _logit(self, p: pd.Series | NDArray[Any]) -> NDArray[Any]:
        bound = self.probability_bound
        return logit(np.clip(np.asarray(p, dtype=float), bound, 1 - bound))

    def _shift(self, p: pd.Series, shift: float | NDArray[Any]) -> NDArray[Any]:
        bound = self.probability_bound
        return np.clip(expit(self._logit(p) + shift), bound, 1 - bound)

    def _update_outcome(self, frame: pd.DataFrame) -> float:
        """Fluctuate the outcome predictions with weight H_Y."""
        frame["H_Y"] = (
            (frame[EXPOSURE] == 1).to_numpy(dtype=float)
            / self.pibar
            * mediator_density_ratio(frame)
        )
        observed = observed_rows(frame)
        eps_y = fit_fluctuation(
            observed[OUTCOME].to_numpy(),
            self._logit(observed["Qhat"]),
            weights=observed["H_Y"].to_numpy(),
        )
        for col in Q_COLUMNS:
            frame[col] = self._shift(frame[col], eps_y)
        return eps_y

    def _update_mediator(self, frame: pd.DataFrame) -> float:
        """Fluctuate the mediator predictions along H_Z_covar with weight H_Z_weight."""
        pihat = frame["pihat"].to_numpy()
        frame["H_Z_weight"] = (
            (frame[EXPOSURE] == 0).to_numpy(dtype=float) / (1 - pihat) * pihat / self.pibar
        )
        frame["H_Z_covar"] = frame["Qhat_a1_z1"] - frame["Qhat_a1_z0"]
        observed = observed_rows(frame)
        eps_z = fit_fluctuation(
            observed[MEDIATOR].to_numpy(),
            self._logit(observed["gammahat"]),
            exog=observed["H_Z_covar"].to_numpy(),
            weights=observed["H_Z_weight"].to_numpy(),
        )
        shift = eps_z * frame["H_Z_covar"].to_numpy()
        for col in GAMMA_COLUMNS:
            frame[col] = self._shift(frame[col], shift)
        return eps_z

    def _update_exposure(self, frame: pd.DataFrame, psi0: float) -> float:
        """Fluctuate the exposure propensity along H_A."""
        frame["H_A"] = (frame["psi_0"] - psi0) / self.pibar
        observed = observed_rows(frame)
        eps_a = fit_fluctuation(
            (observed[EXPOSURE] == 1).to_numpy(dtype=float),
            self._logit(observed["pihat"]),
            exog=observed["H_A"].to_numpy(),
        )
        frame["pihat"] = self._shift(frame["pihat"], eps_a * frame["H_A"].to_numpy())
        return eps_a

    def run(self, frame: pd.DataFrame, warn_on_exhaustion: bool = True) -> TargetingResult:
        """Iterate the fluctuations until the influence equation is solved.

        Args:
            frame: Expanded prediction table; it is copied, not modified
            warn_on_exhaustion: Issue TargetingConvergenceWarning at the caller
                when the loop stops without converging

        Returns:
            TargetingResult with the targeted estimate and updated table
        """
        frame = frame.copy()
        tolerance = self.tolerance
        history: list[dict[str, float]] = []
        state = TargetingState.ITERATING
        psi0 = float("nan")
        iteration = 0

        while state is TargetingState.ITERATING:
            iteration += 1

            eps_y = self._update_outcome(frame)
            eps_z = self._update_mediator(frame)

            frame["psi_0"] = aggregate_over_mediator(frame, "gammahat_a0")
            psi0 = psi0_plugin(observed_rows(frame), self.pibar)

            eps_a = self._update_exposure(frame, psi0)
            psi0 = psi0_plugin(observed_rows(frame), self.pibar)

            statistic = abs(float(np.mean(eic_psi0(observed_rows(frame), self.pibar, psi0))))
            history.append(
                {
                    "iteration": iteration,
                    "eps_y": eps_y,
                    "eps_z": eps_z,
                    "eps_a": eps_a,
                    "psi0": psi0,
                    "eic_mean": statistic,
                }
            )
            logger.debug(
                "Targeting iteration %d: eps_y=%.6g eps_z=%.6g eps_a=%.6g psi0=%.6f |mean eic0|=%.3g",
                iteration,
                eps_y,
                eps_z,
                eps_a,
                psi0,
                statistic,
            )

            if statistic <= tolerance:
                state = TargetingState.CONVERGED
            elif iteration >= self.max_iterations:
                state = TargetingState.EXHAUSTED

        if state is TargetingState.EXHAUSTED:
            if warn_on_exhaustion:
                warn_not_converged(self.max_iterations, stacklevel=3)
        else:
            logger.info("Targeting converged after %d iterations", iteration)

        return TargetingResult(
            psi0=psi0,
            state=state,
            n_iterations=iteration,
            tolerance=tolerance,
            frame=frame,
            history=history,
        )
