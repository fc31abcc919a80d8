"""Process-wide logging setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send records from every logger to one stream handler at ``level``.

    Calling it again only adjusts the level; no second handler is installed.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_chattersphere", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._chattersphere = True  # type: ignore[attr-defined]
    root.addHandler(handler)
