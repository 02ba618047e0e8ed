"""
Logging setup for polykv.

Library code only creates module loggers (logging.getLogger(__name__));
applications and the CLI call setup_logging() to attach handlers.
"""

from __future__ import annotations

import logging
from pathlib import Path


def setup_logging(
    level: int | str = logging.WARNING,
    log_file: Path | str | None = None,
    file_level: int | str = logging.DEBUG,
) -> logging.Logger:
    """
    Setup polykv logging.

    Args:
        level: Minimum level for console output
        log_file: Optional file that receives detailed output
        file_level: Minimum level for file output

    Returns:
        The configured "polykv" logger
    """
    logger = logging.getLogger("polykv")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler (minimal output)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(_level(level))
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    # File handler (detailed output)
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(_level(file_level))
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.info(f"Logging initialized. File: {log_path}")

    return logger


def _level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value
