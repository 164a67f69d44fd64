"""Configuration management for the targeted estimator."""

from .base import BaseConfiguration, Environment
from .tmle_config import TMLEConfig

__all__ = [
    "BaseConfiguration",
    "Environment",
    "TMLEConfig",
]
