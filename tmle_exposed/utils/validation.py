"""Validation utilities for the IDIE estimator.

This module provides the input checks run before any model is fit, the
probability bounding used before logit-scale arithmetic, and the
distribution summaries reported with the result.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ..core.base import DataValidationError, IDIEData

# Internal column names of the expanded prediction table
EXPOSURE = "A"
MEDIATOR = "Z"
OUTCOME = "Y"
OBSERVED_MEDIATOR = "z_obs"
OBSERVATION_KEY = "obs_id"
PREDICTION_COLUMNS = (
    "pihat",
    "gammahat",
    "gammahat_a0",
    "gammahat_a1",
    "Qhat",
    "Qhat_a1",
    "Qhat_a1_z0",
    "Qhat_a1_z1",
    "psi_0",
    "psi_1",
    "eic0",
    "eic1",
    "eic",
)
RESERVED_COLUMNS = frozenset(
    {EXPOSURE, MEDIATOR, OUTCOME, OBSERVED_MEDIATOR, OBSERVATION_KEY, "id"}
    | set(PREDICTION_COLUMNS)
)


def validate_binary_variable(
    values: NDArray[Any] | pd.Series,
    name: str,
) -> NDArray[Any]:
    """Validate and convert a variable to a binary 0/1 array.

    Args:
        values: Variable values
        name: Variable name used in error messages

    Returns:
        Integer array with values 0 and 1

    Raises:
        DataValidationError: If the variable does not take exactly two values
    """
    if isinstance(values, pd.Series):
        array = values.to_numpy()
    else:
        array = np.asarray(values)

    if pd.isna(array).any():
        raise DataValidationError(f"'{name}' contains missing values.")

    unique_vals = np.unique(array)

    if len(unique_vals) != 2:
        raise DataValidationError(
            f"Exposure, mediator, and outcome must be binary. "
            f"'{name}' has {len(unique_vals)} unique values: {unique_vals}"
        )

    # Map the lower value to 0 and the higher value to 1
    return (array == unique_vals[1]).astype(int)


def bound_probabilities(
    probabilities: NDArray[Any] | pd.Series,
    bound: float = 1e-6,
) -> NDArray[Any]:
    """Clip predicted probabilities away from 0 and 1.

    Args:
        probabilities: Predicted probabilities
        bound: Distance kept from each boundary

    Returns:
        Probabilities clipped to [bound, 1 - bound]

    Raises:
        DataValidationError: If probabilities are NaN or outside [0, 1]
    """
    p = np.asarray(probabilities, dtype=float)

    if np.any(np.isnan(p)):
        raise DataValidationError("Predicted probabilities contain NaN values.")

    if np.any((p < 0) | (p > 1)):
        raise DataValidationError("Predicted probabilities must be between 0 and 1.")

    return np.clip(p, bound, 1 - bound)


def validate_idie_data(data: IDIEData) -> pd.DataFrame:
    """Validate an IDIEData input and build the analysis frame.

    The returned frame holds an observation key, the optional id column,
    the exposure, mediator and outcome recoded to 0/1 under the internal
    names A, Z and Y, and every confounder used by any of the three models.

    Args:
        data: Input data with variable roles

    Returns:
        Analysis frame ready for model fitting

    Raises:
        DataValidationError: If any check fails
    """
    frame = data.data
    roles = data.role_columns

    if len(set(roles)) != 3:
        raise DataValidationError(
            f"Exposure, mediator, and outcome must be distinct columns, got {roles}"
        )

    required = [*roles, *data.all_confounders]
    if data.id_column is not None:
        required.append(data.id_column)
    missing = [col for col in dict.fromkeys(required) if col not in frame.columns]
    if missing:
        raise DataValidationError(f"Variables not found in data: {missing}")

    for label, confounders in (
        ("cov_a", data.confounders_a),
        ("cov_z", data.confounders_z),
        ("cov_y", data.confounders_y),
    ):
        overlap = sorted(set(confounders) & set(roles))
        if overlap:
            raise DataValidationError(
                f"Confounder set {label} must not include the exposure, mediator "
                f"or outcome, which are added automatically: {overlap}"
            )

    clashes = sorted(set(data.all_confounders) & RESERVED_COLUMNS)
    if clashes:
        raise DataValidationError(f"Confounder names clash with internal columns: {clashes}")

    if len(frame) < 2:
        raise DataValidationError("At least 2 observations are required")

    # Binary checks come first so the error names the offending role
    exposure = validate_binary_variable(frame[data.exposure], data.exposure)
    mediator = validate_binary_variable(frame[data.mediator], data.mediator)
    outcome = validate_binary_variable(frame[data.outcome], data.outcome)

    confounders = frame[data.all_confounders]
    if confounders.isna().any().any():
        columns = list(confounders.columns[confounders.isna().any()])
        raise DataValidationError(f"Confounders contain missing values: {columns}")

    analysis = pd.DataFrame({OBSERVATION_KEY: np.arange(len(frame))})
    if data.id_column is not None:
        ids = frame[data.id_column].to_numpy()
        if pd.Series(ids).duplicated().any():
            raise DataValidationError(f"Id column '{data.id_column}' must be unique")
        analysis["id"] = ids

    analysis[EXPOSURE] = exposure
    analysis[MEDIATOR] = mediator
    analysis[OUTCOME] = outcome
    for col in data.all_confounders:
        analysis[col] = confounders[col].to_numpy()

    return analysis


def summarize_distribution(values: NDArray[Any] | pd.Series) -> dict[str, float]:
    """Six-number summary of a prediction column.

    Args:
        values: Values to summarize

    Returns:
        Dictionary with min, q1, median, mean, q3 and max
    """
    v = np.asarray(values, dtype=float)
    q1, median, q3 = np.quantile(v, [0.25, 0.5, 0.75])
    return {
        "min": float(np.min(v)),
        "q1": float(q1),
        "median": float(median),
        "mean": float(np.mean(v)),
        "q3": float(q3),
        "max": float(np.max(v)),
    }
