import os
import sys

from loguru import logger as log

LOG_LEVEL_ENV_VAR = "PIXELBOX_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <7}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a single stderr sink."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL)
    log.remove()
    log.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
