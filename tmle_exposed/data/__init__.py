"""Simulation utilities for the IDIE estimator."""

from .synthetic import IDIECoefficients, SyntheticDataGenerator, generate_idie_data

__all__ = [
    "IDIECoefficients",
    "SyntheticDataGenerator",
    "generate_idie_data",
]
