"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)` with event-style messages
(`event_name key=value ...`); this only decides level and format.
"""

from __future__ import annotations

import logging

from . import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = level or config.log_level()
    if not isinstance(logging.getLevelName(resolved), int):
        resolved = "INFO"
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
