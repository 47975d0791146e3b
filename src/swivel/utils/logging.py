"""Logging setup utilities for swivel.

Configures the ``swivel`` logger from the logging configuration. Both
``swivel serve`` and the gateway's standalone entry point call this, so
repeated calls replace the handlers installed earlier instead of
stacking duplicates.
"""

from __future__ import annotations

import logging
import sys

from swivel.config.settings import LoggingConfig

# Marks handlers owned by setup_logging so a later call can swap them out.
_OWNED = "_swivel_owned"


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Configure logging for the swivel service.

    Sets up the 'swivel' logger with the configured level and format, a
    stderr handler and an optional file handler. Handlers added by other
    code are left alone.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).

    Returns:
        The configured 'swivel' logger.
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("swivel")
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        if getattr(handler, _OWNED, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(config.format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _OWNED, True)
        root_logger.addHandler(handler)

    root_logger.info("Logging initialized at %s level", config.level)
    return root_logger
