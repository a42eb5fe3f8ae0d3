"""Logging for the CLI: short console lines plus a detailed per-run log file."""

from __future__ import annotations

import logging

from .config import AppConfig

LOGGER_NAME = "story_player"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
FILE_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | "
    "%(funcName)s | %(message)s"
)


def _reset_handlers(target: logging.Logger, *, close: bool) -> None:
    for handler in list(target.handlers):
        target.removeHandler(handler)
        if close:
            handler.close()


def _handler(handler: logging.Handler, level: str, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logging(config: AppConfig) -> logging.Logger:
    """Configure the ``story_player`` logger; module loggers below it propagate here.

    Safe to call again (each CLI run and test does): earlier handlers are
    closed before new ones attach. Python warnings go to the run's log file.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    _reset_handlers(logger, close=True)

    file_handler = _handler(
        logging.FileHandler(config.log_file, encoding="utf-8"),
        config.file_log_level,
        FILE_FORMAT,
    )
    logger.addHandler(_handler(logging.StreamHandler(), config.log_level, CONSOLE_FORMAT))
    logger.addHandler(file_handler)

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    warnings_logger.setLevel(logging.DEBUG)
    warnings_logger.propagate = False
    # The previous file handler was already closed with the package logger.
    _reset_handlers(warnings_logger, close=False)
    warnings_logger.addHandler(file_handler)
    return logger
