# -*- coding: utf-8 -*-
"""Location: ./codemode/services/logging_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Logging Service Implementation.

Text logs always go to stderr; stdout belongs to the MCP stdio transport.
A rotating JSON file handler is added when file logging is configured.
"""

# Standard
import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from typing import Dict, Optional

# Third-Party
from pythonjsonlogger import jsonlogger

# First-Party
from codemode.config import settings
from codemode.models import LogLevel

# Create a text formatter
text_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

# Create a JSON formatter
json_formatter = jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")

# Python logging has no NOTICE/ALERT/EMERGENCY; map them onto the nearest level
_PYTHON_LEVELS: Dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.NOTICE: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
    LogLevel.ALERT: logging.CRITICAL,
    LogLevel.EMERGENCY: logging.CRITICAL,
}

# Global handlers will be created lazily
_file_handler: Optional[RotatingFileHandler] = None
_text_handler: Optional[logging.StreamHandler] = None


def _get_file_handler() -> RotatingFileHandler:
    """Get or create the file handler.

    Returns:
        RotatingFileHandler: The file handler for JSON logging.

    Raises:
        ValueError: If file logging is disabled or no log file specified.
    """
    global _file_handler  # pylint: disable=global-statement
    if _file_handler is None:
        if not settings.log_to_file or not settings.log_file:
            raise ValueError("File logging is disabled or no log file specified")

        if settings.log_folder:
            os.makedirs(settings.log_folder, exist_ok=True)
            log_path = os.path.join(settings.log_folder, settings.log_file)
        else:
            log_path = settings.log_file

        _file_handler = RotatingFileHandler(log_path, maxBytes=1024 * 1024, backupCount=5)
        _file_handler.setFormatter(json_formatter)
    return _file_handler


def _get_text_handler() -> logging.StreamHandler:
    """Get or create the stderr text handler.

    Returns:
        logging.StreamHandler: The stream handler for console logging.
    """
    global _text_handler  # pylint: disable=global-statement
    if _text_handler is None:
        _text_handler = logging.StreamHandler(sys.stderr)
        _text_handler.setFormatter(text_formatter)
    return _text_handler


class LoggingService:
    """Logging service.

    Loggers are shared process-wide, so any instance hands out the same
    configured logger for a given name.

    Examples:
        >>> from codemode.services.logging_service import LoggingService
        >>> import logging
        >>> logger = LoggingService().get_logger("codemode.doctest")
        >>> isinstance(logger, logging.Logger)
        True
        >>> logger.propagate
        False
    """

    _loggers: Dict[str, logging.Logger] = {}
    _level: LogLevel = settings.effective_log_level

    async def initialize(self) -> None:
        """Attach handlers to the package root logger.

        Examples:
            >>> import asyncio
            >>> asyncio.run(LoggingService().initialize())
        """
        root = self.get_logger("codemode")
        if settings.log_to_file and settings.log_file:
            try:
                root.addHandler(_get_file_handler())
                root.info(f"File logging enabled: {settings.log_folder or '.'}/{settings.log_file}")
            except (OSError, ValueError) as e:
                root.warning(f"Failed to initialize file logging: {e}")
        else:
            root.debug("File logging disabled - logging to stderr only")
        root.info("Logging service initialized")

    async def shutdown(self) -> None:
        """Flush and close the file handler, if one was opened.

        Examples:
            >>> import asyncio
            >>> asyncio.run(LoggingService().shutdown())
        """
        global _file_handler  # pylint: disable=global-statement
        if _file_handler is not None:
            for logger in LoggingService._loggers.values():
                logger.removeHandler(_file_handler)
            _file_handler.close()
            _file_handler = None
        if _text_handler is not None:
            _text_handler.flush()

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create logger instance.

        Args:
            name: Logger name

        Returns:
            Logger instance
        """
        if name not in LoggingService._loggers:
            logger = logging.getLogger(name)
            if _get_text_handler() not in logger.handlers:
                logger.addHandler(_get_text_handler())
            if settings.log_to_file and settings.log_file:
                try:
                    handler = _get_file_handler()
                    if handler not in logger.handlers:
                        logger.addHandler(handler)
                except (OSError, ValueError) as e:
                    logging.getLogger(__name__).warning(f"Failed to add file handler to logger {name}: {e}")
            logger.propagate = False
            logger.setLevel(_PYTHON_LEVELS[LoggingService._level])
            LoggingService._loggers[name] = logger

        return LoggingService._loggers[name]

    def set_level(self, level: LogLevel) -> None:
        """Set minimum log level on every logger handed out so far.

        Args:
            level: New log level

        Examples:
            >>> from codemode.models import LogLevel
            >>> service = LoggingService()
            >>> logger = service.get_logger("codemode.doctest.level")
            >>> service.set_level(LogLevel.WARNING)
            >>> logger.level == logging.WARNING
            True
            >>> service.set_level(LogLevel.INFO)
        """
        LoggingService._level = level
        for logger in LoggingService._loggers.values():
            logger.setLevel(_PYTHON_LEVELS[level])
