"""Logging setup shared by the API process and the tick scheduler."""

import logging
import sys

from shopwatch.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once.

    Calling it again just resets the level and handler, so create_app() can
    be invoked repeatedly (tests do this).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    # httpx logs every request at INFO, which would leak SerpApi keys in URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
