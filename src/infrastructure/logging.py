"""Root logger configuration."""

from __future__ import annotations

import logging
import sys

from src.infrastructure.database import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: int | str | None = None) -> None:
    """Install a single stdout handler on the root logger.

    ``level`` defaults to Settings.log_level.  Handlers configured elsewhere
    (e.g. by basicConfig) are removed so records are not emitted twice.
    """
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = level.upper()

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
