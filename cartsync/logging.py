"""
Logging for cartsync.

    from cartsync.logging import get_logger
    logger = get_logger(__name__)

A stdout handler is installed on the root logger at import time, unless the
host application configured logging first. LOG_LEVEL picks the level and
LOG_FORMAT=simple drops timestamps.
"""

import logging
import os
import sys
from functools import cache

_FORMATS = {
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "simple": "%(levelname)s - %(name)s - %(message)s",
}

# CWE-117: ids come from the server and the UI
_LOG_ESCAPES = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def _configure_root_logger() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    style = os.environ.get("LOG_FORMAT", "detailed").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMATS.get(style, _FORMATS["detailed"])))
    root.setLevel(level)
    root.addHandler(handler)

    # One INFO line per cart request otherwise
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: object | None, keep: int = 8) -> str:
    """Escape control characters and keep the first `keep` characters. Empty ids log as "N/A"."""
    if not id_value:
        return "N/A"
    return str(id_value).translate(_LOG_ESCAPES)[:keep]


__all__ = ["get_logger", "sanitize_id_for_logging"]
