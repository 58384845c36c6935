"""Logging configuration for the export job."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from exporter import app_paths

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LOG_PATH: Optional[Path] = None


def configure_logging(level: int = logging.INFO, log_path: Optional[Path] = None) -> Path:
    """Configure logging to write to the exporter log file and stderr.

    Parameters
    ----------
    level:
        The minimum logging level for the root logger.
    log_path:
        Override for the log file location. Defaults to ``exporter.log`` in
        the per-user data directory.

    Returns
    -------
    pathlib.Path
        The path to the log file.
    """

    global _LOG_PATH

    if _LOG_PATH is not None:
        logging.getLogger().setLevel(level)
        return _LOG_PATH

    log_path = log_path or app_paths.data_path("exporter.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    already_configured = any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(log_path)
        for handler in root_logger.handlers
    )
    if not already_configured:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        # Scheduled runs are read from the job output.
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    _LOG_PATH = log_path
    root_logger.debug("Logging configured. Writing to %s", log_path)
    return log_path


__all__ = ["LOG_FORMAT", "configure_logging"]
