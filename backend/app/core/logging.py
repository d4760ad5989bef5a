"""Logging setup shared by the API and the maintenance scripts."""
import logging
import sys

from app.core.config import settings

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure the root logger once. Later calls only adjust the level."""
    level_name = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level_name)
        return

    logging.basicConfig(
        level=level_name,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    # httpx logs every request at INFO, including the Google key query param
    logging.getLogger("httpx").setLevel(logging.WARNING)
