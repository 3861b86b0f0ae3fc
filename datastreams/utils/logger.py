# Logger - Centralized Logging System
# Singleton registry so repeated setup calls never stack handlers

"""
Logger Module

Responsibilities:
- Setup named loggers once (singleton registry)
- Console handler, optional rotating file handler
- Log level override via DATASTREAMS_LOG_LEVEL
- Close handlers on interpreter exit
"""

import logging
import os
import sys
import atexit
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LEVEL_ENV_VAR = "DATASTREAMS_LOG_LEVEL"

_configured_loggers: Dict[str, logging.Logger] = {}


def _resolve_level(level: str) -> int:
    override = os.getenv(LEVEL_ENV_VAR)
    name = (override or level or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def setup_logger(name: str = "datastreams", level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Setup logger with console and optional file handler

    Returns the already configured logger when called again with the
    same name, so components can call this from their constructors.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path (rotated at 10MB, 5 backups)

    Returns:
        Configured logger instance
    """
    if name in _configured_loggers:
        return _configured_loggers[name]

    logger = logging.getLogger(name)

    if logger.handlers:
        _configured_loggers[name] = logger
        return logger

    resolved = _resolve_level(level)
    logger.setLevel(resolved)
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(resolved)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    def cleanup_handlers():
        for handler in logger.handlers[:]:
            try:
                handler.close()
                logger.removeHandler(handler)
            except Exception:
                pass  # interpreter is shutting down

    atexit.register(cleanup_handlers)

    _configured_loggers[name] = logger
    return logger


def get_logger(name: str = "datastreams") -> logging.Logger:
    """Get existing logger or create one with defaults"""
    if name in _configured_loggers:
        return _configured_loggers[name]
    return setup_logger(name)


def set_level(level: str, names: Optional[list] = None):
    """
    Change the level of configured loggers at runtime

    Args:
        level: New level name
        names: Logger names to update (all configured loggers if None)
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name, logger in _configured_loggers.items():
        if names is not None and name not in names:
            continue
        logger.setLevel(resolved)
        for handler in logger.handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(resolved)
