"""
Logger helpers for the invoice copilot.

Root configuration (format, level) happens once in backend/main.py; modules
normally just call logging.getLogger(__name__). get_logger is for entry points
that may run before that configuration (route modules, scripts) and need a
handler of their own.

Never log:
- invoice file bytes or full extracted invoice text
- access tokens, API keys or signed storage URLs
- full chat message contents (log lengths and counts instead)

User ids are logged truncated (user_id[:8]).
"""

import logging
from typing import Optional

from backend.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_log_level(level: Optional[str] = None) -> int:
    """Map a level name (e.g. "debug") to its logging constant; unknown names give INFO."""
    name = (level or settings.LOG_LEVEL or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a logger with a stream handler attached (once).

    Args:
        name: Module name (typically __name__)
        level: Optional logging level (defaults to settings.LOG_LEVEL)
    """
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else resolve_log_level())

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)
        # Avoid double lines once the root logger is configured as well
        logger.propagate = False

    return logger
