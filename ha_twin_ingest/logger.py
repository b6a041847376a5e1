import logging
import sys

from colorlog import ColoredFormatter

LOGGER_NAME = "ha_twin_ingest"


def setup_logger(debug_mode=False):
    """
    Attach a colored console handler to the package logger.

    Calling it again only adjusts the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if debug_mode else logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter(
            "%(log_color)s[%(levelname)s] %(message)s",
            log_colors={
                "DEBUG":    "cyan",
                "INFO":     "green",
                "WARNING":  "yellow",
                "ERROR":    "red",
                "CRITICAL": "red,bg_white",
            }
        ))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    if debug_mode:
        logger.debug("Debug mode is active.")
    return logger
