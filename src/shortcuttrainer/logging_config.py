"""Logging configuration for the trainer."""

from __future__ import annotations

import logging
import logging.handlers

from .config import Settings

_HANDLER_MARK = "_shortcuttrainer_handler"


def setup_logging(settings: Settings) -> None:
    """Configure the root logger with a console handler and optional rotating file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)

    # Re-running setup replaces our handlers instead of stacking them.
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(settings.log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARK, True)
    root_logger.addHandler(console_handler)

    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).debug("Logging configured at %s", settings.log_level)
