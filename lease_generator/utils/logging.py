"""Logging setup shared by the API server and the CLI"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str = "INFO", handler: Optional[logging.Handler] = None) -> None:
    """Install a single timestamped handler on the root logger.

    Safe to call more than once; only the first call attaches a handler.
    Later calls just adjust the level.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _configured:
        return

    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
