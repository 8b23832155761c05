"""Logging configuration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(
    log_dir: Path | None = None,
    name: str = "orchestrator",
    level: int = logging.INFO,
) -> Tuple[logging.Logger, Path | None]:
    """Configure console (and optional file) logging for the package logger.

    Returns the configured logger and the log file path, or ``None`` when no
    ``log_dir`` was given.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    log_path: Path | None = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"{name}.log"
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger, log_path
