"""
Logging configuration
"""
import logging
import sys
from typing import Optional

from nutrilog.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are only interesting while debugging
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Logger with a single stdout handler. DEBUG when settings.DEBUG,
    otherwise INFO; an explicit ``level`` wins.
    """
    debug = get_settings().DEBUG
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    if level is None:
        level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.DEBUG if debug else logging.WARNING)
    return logger
