"""Loguru sink setup shared by the command-line scripts."""

import logging
import sys
from pathlib import Path

from loguru import logger

from degrees.utils.config import LoggingConfig

_NOISY_LOGGERS = ("neo4j", "neo4j.io", "neo4j.pool", "urllib3", "urllib3.connectionpool")


def configure_logging(config: LoggingConfig, *, verbose: bool = False) -> None:
    """Replace the default loguru handler with a stderr sink and a rotating file sink.

    Args:
        config: Logging configuration
        verbose: Force DEBUG on stderr and keep driver/HTTP library logs audible
    """
    level = "DEBUG" if verbose else config.level.upper()

    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=level,
    )

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation=config.rotation,
            retention=config.retention,
            level="DEBUG",
        )

    if not verbose:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)
