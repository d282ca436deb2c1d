"""Logging configuration helpers."""

import logging


def configure_logging(level: str | int = logging.INFO) -> None:
    """Configure the ``calorie_wise`` logger with a single stream handler.

    ``level`` accepts a number or a name such as ``"DEBUG"``; calling again
    only changes the level.
    """
    logger = logging.getLogger("calorie_wise")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s: %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
