"""
core/logging/logic/log_setup.py
===============================

Applies the ``[Logging]`` section to the stdlib logging tree.
Modules log through ``logging.getLogger(__name__)``; this is the only place
that installs handlers.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.config.config_service import LoggingConfig

_ROOT_PACKAGES = ("core", "documents", "signature")


def configure_logging(cfg: LoggingConfig, *, handler: Optional[logging.Handler] = None) -> logging.Handler:
    """Install one handler on the package loggers and set their level."""
    level = logging.getLevelName(str(cfg.level).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {cfg.level!r}")

    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(cfg.format))

    for name in _ROOT_PACKAGES:
        pkg_logger = logging.getLogger(name)
        pkg_logger.setLevel(level)
        # replace handlers from an earlier call instead of stacking them
        for old in list(pkg_logger.handlers):
            if getattr(old, "_docsign_handler", False):
                pkg_logger.removeHandler(old)
        handler._docsign_handler = True  # type: ignore[attr-defined]
        pkg_logger.addHandler(handler)
    return handler
