"""
keyframes.logging_setup
~~~~~~~~~~~~~~~~~~~~~~~
Root logger configuration for the application entry point.
Library modules only ever call logging.getLogger(__name__).
"""

import logging

LOG_FORMAT = "[{asctime}|{name}]{levelname}  {message}"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def setup_logging(level: str = "info") -> logging.Logger:
    logger = logging.getLogger()
    logger.setLevel(_LEVELS.get(level.lower(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, style="{", datefmt="%H:%M:%S")
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(console_handler)
    return logger
