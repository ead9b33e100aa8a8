import logging
from typing import Optional

from ..config import settings

LOGGER_NAME = "mackerel.exporter"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging the same way for the demo app and scripts."""
    logging.basicConfig(level=level or settings.LOG_LEVEL, format=LOG_FORMAT)


def set_debug() -> None:
    # Only the exporter's loggers; the host application keeps its own level.
    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)
