"""
Logging setup for Mix Planner entry points.

Library modules only create module loggers; handlers are attached here by the
command-line entry point.
"""

import logging
import logging.handlers
from typing import Optional

from mixplanner.config import MixConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _attach_file_handler(path: str) -> Optional[logging.Handler]:
    """
    Attach a rotation-tolerant file handler to the root logger.

    Returns the handler, or None if the file cannot be opened.
    """
    root = logging.getLogger()
    # Prevent duplicate handlers on repeated setup
    for existing in root.handlers:
        if (isinstance(existing, logging.handlers.WatchedFileHandler)
                and getattr(existing, "baseFilename", None) == path):
            return existing

    try:
        # WatchedFileHandler reopens the file after external rotation
        handler = logging.handlers.WatchedFileHandler(path, mode="a")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Cannot open log file {path}: {e}")
        return None

    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # Write failures must never interrupt a mix
    original_emit = handler.emit

    def safe_emit(record):
        try:
            original_emit(record)
        except OSError:
            pass

    handler.emit = safe_emit
    root.addHandler(handler)
    return handler


def configure_logging(config: MixConfig) -> None:
    """Configure root logging from the loaded configuration."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format=LOG_FORMAT,
    )
    if config.log_file:
        _attach_file_handler(config.log_file)
