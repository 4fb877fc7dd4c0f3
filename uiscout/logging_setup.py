from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def resolve_level(level: str | int | None = None) -> int:
    raw = level if level is not None else os.environ.get("UISCOUT_LOG_LEVEL", "INFO")
    if isinstance(raw, int):
        return raw
    value = logging.getLevelName(str(raw).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: str | int | None = None) -> None:
    """Root handler for hosts and scripts; the library itself never calls this."""
    logging.basicConfig(level=resolve_level(level), format=LOG_FORMAT)
