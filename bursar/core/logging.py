"""Logging setup shared by the API process and scripts."""

import logging

from bursar.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once. Later calls only adjust the level."""
    global _configured

    level_name = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()
    root.setLevel(level_name)

    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # motor/pymongo are chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    _configured = True
