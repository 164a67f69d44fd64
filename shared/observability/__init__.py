"""Logging helpers for the targeted estimator."""

from .logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
