"""Logging configuration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple


def setup_logging(log_dir: Path, name: str = "visionlens", level: int = logging.INFO) -> Tuple[logging.Logger, Path]:
    """Configure dual console/file logging and return logger + log file path."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{name}.log"

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger, log_path
