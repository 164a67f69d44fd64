"""Validation and summary utilities for the IDIE estimator."""

from .validation import (
    bound_probabilities,
    summarize_distribution,
    validate_binary_variable,
    validate_idie_data,
)

__all__ = [
    "bound_probabilities",
    "summarize_distribution",
    "validate_binary_variable",
    "validate_idie_data",
]
