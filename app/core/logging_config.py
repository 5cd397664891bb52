"""Process-wide logging setup."""

from __future__ import annotations

import logging

from app.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once, honouring LOG_LEVEL from settings."""

    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # httpx logs every request at INFO; keep our own client logs readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
