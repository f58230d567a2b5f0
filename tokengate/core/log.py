"""Logging setup shared by the app factory and the CLI scripts."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

security_logger = logging.getLogger("tokengate.security")


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if any(getattr(h, "_tokengate", False) for h in root_logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._tokengate = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)
