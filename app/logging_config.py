"""
Logging setup.

Every module logs through ``logging.getLogger(__name__)``; this module only
decides where those records go. It is called once from ``app.main`` before
the application is created.
"""

import logging
import sys

from app.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Attach a single stream handler to the root logger.

    Args:
        level: Log level name. Defaults to settings.LOG_LEVEL.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # Idempotent: uvicorn --reload re-imports the app module
    if any(getattr(h, "_splice", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._splice = True
    root.addHandler(handler)

    # httpx logs every request at INFO, which drowns out the job logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
