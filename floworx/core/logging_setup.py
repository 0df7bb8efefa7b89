"""Process-wide logging configuration."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    resolved = getattr(logging, (level or "INFO").upper(), logging.INFO)
    root.setLevel(resolved)
    if any(getattr(h, "_floworx", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._floworx = True  # type: ignore[attr-defined]
    root.addHandler(handler)
