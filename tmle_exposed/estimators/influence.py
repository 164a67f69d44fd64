"""Plug-in estimates and efficient influence curves for the IDIE among the exposed.

All functions operate on the expanded prediction table (two rows per
observation, mediator forced to 1 and to 0). Estimating equations and
influence curves only use the observed-mediator rows; the other replica
supplies counterfactual outcome predictions.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ..utils.validation import (
    EXPOSURE,
    MEDIATOR,
    OBSERVATION_KEY,
    OBSERVED_MEDIATOR,
    OUTCOME,
)

__all__ = [
    "aggregate_over_mediator",
    "eic_psi0",
    "eic_psi1",
    "influence_se",
    "mediator_density",
    "mediator_density_ratio",
    "observed_rows",
    "psi0_plugin",
    "psi1_empirical",
]


def mediator_density(
    z: pd.Series | NDArray[Any], gamma: pd.Series | NDArray[Any]
) -> NDArray[Any]:
    """P(Z = z) under a Bernoulli(gamma) mediator model."""
    z = np.asarray(z, dtype=float)
    gamma = np.asarray(gamma, dtype=float)
    return z * gamma + (1 - z) * (1 - gamma)


def mediator_density_ratio(frame: pd.DataFrame) -> NDArray[Any]:
    """P(Z | A=0) / P(Z | A=1) evaluated at each row's mediator value."""
    return mediator_density(frame[MEDIATOR], frame["gammahat_a0"]) / mediator_density(
        frame[MEDIATOR], frame["gammahat_a1"]
    )


def aggregate_over_mediator(frame: pd.DataFrame, gamma_column: str) -> pd.Series:
    """Sum Qhat_a1 weighted by a mediator distribution over both replicas.

    With gamma_column="gammahat_a1" this is the exposed-group risk under the
    exposed mediator distribution (psi_1); with "gammahat_a0" it is the risk
    under the unexposed mediator distribution (psi_0).
    """
    weighted = frame["Qhat_a1"] * mediator_density(frame[MEDIATOR], frame[gamma_column])
    return weighted.groupby(frame[OBSERVATION_KEY]).transform("sum")


def observed_rows(frame: pd.DataFrame) -> pd.DataFrame:
    """Rows whose replica mediator equals the observed mediator."""
    return frame.loc[frame[MEDIATOR] == frame[OBSERVED_MEDIATOR]]


def _exposed(observed: pd.DataFrame) -> NDArray[Any]:
    return (observed[EXPOSURE] == 1).to_numpy(dtype=float)


def psi0_plugin(observed: pd.DataFrame, pibar: float) -> float:
    """(1/pibar) * mean of 1(A=1) * psi_0 over observed rows."""
    return float(np.mean(_exposed(observed) * observed["psi_0"].to_numpy()) / pibar)


def psi1_empirical(observed: pd.DataFrame) -> float:
    """Mean outcome among exposed observed rows."""
    return float(observed.loc[observed[EXPOSURE] == 1, OUTCOME].mean())


def eic_psi0(observed: pd.DataFrame, pibar: float, psi0: float) -> NDArray[Any]:
    """Efficient influence curve of psi0 at the current nuisance predictions.

    Sum of a density-ratio weighted outcome residual among the exposed, a
    propensity weighted correction among the unexposed, and a centering term
    among the exposed.

    Args:
        observed: Observed-mediator rows of the expanded table
        pibar: Marginal probability of exposure
        psi0: Current estimate of psi0

    Returns:
        Influence curve value per observation
    """
    exposed = _exposed(observed)
    unexposed = 1 - exposed
    pihat = observed["pihat"].to_numpy()
    qhat_a1 = observed["Qhat_a1"].to_numpy()
    psi_0 = observed["psi_0"].to_numpy()
    y = observed[OUTCOME].to_numpy(dtype=float)

    return (
        exposed / pibar * mediator_density_ratio(observed) * (y - qhat_a1)
        + unexposed / (1 - pihat) * pihat / pibar * (qhat_a1 - psi_0)
        + exposed / pibar * (psi_0 - psi0)
    )


def eic_psi1(observed: pd.DataFrame, pibar: float, psi1: float) -> NDArray[Any]:
    """Influence curve of the exposed-group outcome mean."""
    y = observed[OUTCOME].to_numpy(dtype=float)
    return _exposed(observed) / pibar * (y - psi1)


def influence_se(influence_curve: NDArray[Any], n_observations: int) -> float:
    """Standard error sqrt(mean(ic^2) / n)."""
    ic = np.asarray(influence_curve, dtype=float)
    return float(np.sqrt(np.mean(ic**2) / n_observations))
