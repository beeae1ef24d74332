"""Logging setup for the duochat command line.

The library itself only emits through loguru's ``logger``; sinks are
installed here, from the ``logging`` config section.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from duochat.config.schema import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def _store_traffic(record) -> bool:
    return record["name"].startswith("duochat.store")


def configure_logging(settings: Optional[LoggingConfig] = None, verbose: bool = False) -> None:
    """
    Replace loguru's sinks with the ones ``settings`` describes.

    The console shows ``settings.level`` and above; ``verbose`` (flag or
    setting) lowers it to DEBUG and also lets per-operation store traffic
    through. The optional file sink always keeps everything.
    """
    settings = settings or LoggingConfig()
    verbose = verbose or settings.verbose
    console_level = "DEBUG" if verbose else settings.level

    logger.remove()
    logger.add(
        sys.stderr,
        level=console_level,
        format=CONSOLE_FORMAT,
        filter=None if verbose else (lambda record: not _store_traffic(record)),
        diagnose=False,
    )

    if settings.log_file:
        log_file = Path(settings.log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            level="DEBUG",
            format=FILE_FORMAT,
            rotation=settings.rotation,
            retention=settings.retention,
            compression="zip",
            enqueue=True,
        )

    logger.debug(f"Logging initialized. Console level: {console_level}, file: {settings.log_file}")
