from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import BASE_DIR

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(log_dir: Path | None = None, level: int = logging.INFO) -> logging.Logger:
    """Attach a rotating file handler for ``reports.log`` to the root logger."""

    log_dir = log_dir or (BASE_DIR / "logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "reports.log"

    logger = logging.getLogger()
    logger.setLevel(level)

    if not any(isinstance(h, RotatingFileHandler) and h.baseFilename == str(log_file) for h in logger.handlers):
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
