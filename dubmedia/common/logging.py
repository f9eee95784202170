# dubmedia/common/logging.py
from __future__ import annotations

import logging

from dubmedia.common.settings import get_settings


def get_logger(name: str = "dubmedia", level: int | str | None = None) -> logging.Logger:
    """
    Return a named logger for the package.
    Level defaults to `Settings.log_level` (env LOG_LEVEL).
    If no handlers are set anywhere, we add a basicConfig once so CLI/script
    callers still see output; applications configuring logging themselves win.
    """
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    if not logging.getLogger().handlers and not logger.handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.setLevel(level)
    return logger
