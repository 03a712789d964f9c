"""Console logging with colorlog."""

from __future__ import annotations

import logging

import colorlog

INFO_FORMAT = "%(asctime)s|%(log_color)s%(levelname)-5.5s%(reset)s| %(message)s"
DEBUG_FORMAT = (
    "%(asctime)s|%(log_color)s%(levelname)-5.5s%(reset)s|"
    "%(name)-28s|%(lineno)03d| %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def setup_logging(level: str = "info", logger_name: str = "edge_infer") -> logging.Logger:
    """Attach a colored stream handler to *logger_name*. Safe to call twice."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(logger_name)
    logger.setLevel(numeric)

    fmt = DEBUG_FORMAT if numeric <= logging.DEBUG else INFO_FORMAT
    formatter = colorlog.ColoredFormatter(fmt, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)

    for handler in logger.handlers:
        if isinstance(handler, colorlog.StreamHandler):
            handler.setFormatter(formatter)
            return logger

    handler = colorlog.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
