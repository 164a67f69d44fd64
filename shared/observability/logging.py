"""Logging setup for the targeted estimator."""

import logging
import sys

from shared.config import Environment, TMLEConfig


def setup_logging(config: TMLEConfig | None = None) -> None:
    """Set up logging configuration."""
    if config is None:
        config = TMLEConfig()

    # Development runs log everything, other environments follow log_level
    if config.environment == Environment.DEVELOPMENT:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, config.log_level)

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party fitting libraries stay quiet below WARNING
    for name in ("statsmodels", "joblib"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
