"""Logging configuration for qa-stories."""

import sys

from loguru import logger


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure loguru: DEBUG with verbose, WARNING with quiet, INFO otherwise."""
    logger.remove()
    level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")
