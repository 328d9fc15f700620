"""Logging setup shared by the app entry points."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys


def setup_logger(name: str | None = None,
                 log_level: int = logging.INFO,
                 log_dir: str | None = None) -> logging.Logger:
    """
    Configure a logger with console output and, if log_dir is given, a
    rotating log file.

    Args:
        name (str|None): logger name (None for the root logger)
        log_level (int): level for the logger and its handlers
        log_dir (str|None): directory for price_list.log

    Returns:
        The configured logger.
    """

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # already configured (e.g. create_app called twice in one process)
    if logger.handlers:
        return logger

    line_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(line_format)
    logger.addHandler(console_handler)

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(directory / 'price_list.log',
                                           maxBytes=5 * 1024 * 1024,
                                           backupCount=3,
                                           encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(line_format)
        logger.addHandler(file_handler)

    return logger
