"""
scribeline.logging - Centralized logging configuration.

Provides a simple logging setup with optional verbose mode for debugging.
Modules log through ``logging.getLogger(__name__)`` so everything sits under
the ``scribeline`` namespace.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("scribeline")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the scribeline package.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(name)s: %(message)s",
    )
    logger.setLevel(level)
