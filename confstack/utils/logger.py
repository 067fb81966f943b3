"""
Logging Utilities
=================

Centralized logging configuration for confstack and the applications using it.
"""

import logging
import logging.handlers
import os
import sys
from typing import Optional, Any, Union


def setup_logging(
    config: Optional[Any] = None,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    max_file_size: Union[str, int] = "10MB",
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up centralized logging configuration.

    Args:
        config: Configuration dictionary or ConfigurationManager; its
            ``logging`` group (level, file, max_file_size, backup_count)
            overrides the keyword arguments
        log_level: Logging level
        log_file: Log file path
        max_file_size: Maximum log file size
        backup_count: Number of backup files to keep

    Returns:
        Configured logger
    """
    # Parse configuration
    if config:
        logging_config = config.get('logging', {}) or {}
        log_level = logging_config.get('level', log_level)
        log_file = logging_config.get('file', log_file)
        max_file_size = logging_config.get('max_file_size', max_file_size)
        backup_count = logging_config.get('backup_count', backup_count)

    # Convert log level string to logging constant
    numeric_level = getattr(logging, str(log_level).upper(), logging.INFO)

    # Create logs directory if it doesn't exist
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=_parse_size(max_file_size),
            backupCount=int(backup_count),
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    app_logger = logging.getLogger('confstack')
    app_logger.debug(f"Logging initialized - Level: {log_level}, File: {log_file}")

    return app_logger


def _parse_size(size: Union[str, int]) -> int:
    """
    Parse size string to bytes.

    Args:
        size: Size string (e.g., '10MB', '1GB') or a byte count

    Returns:
        Size in bytes
    """
    if isinstance(size, int):
        return size

    size_str = size.upper().strip()

    if size_str.endswith('KB'):
        return int(float(size_str[:-2]) * 1024)
    elif size_str.endswith('MB'):
        return int(float(size_str[:-2]) * 1024 * 1024)
    elif size_str.endswith('GB'):
        return int(float(size_str[:-2]) * 1024 * 1024 * 1024)
    else:
        # Assume bytes
        return int(size_str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


class LoggingContext:
    """
    Context manager for temporary logging configuration.
    """

    def __init__(self, logger: logging.Logger, level: int):
        """
        Initialize logging context.

        Args:
            logger: Logger to modify
            level: Temporary log level
        """
        self.logger = logger
        self.new_level = level
        self.old_level = logger.level

    def __enter__(self):
        """Enter context - set new log level."""
        self.logger.setLevel(self.new_level)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context - restore old log level."""
        self.logger.setLevel(self.old_level)


def with_debug_logging(logger: logging.Logger):
    """Context manager for temporary debug logging."""
    return LoggingContext(logger, logging.DEBUG)


def with_quiet_logging(logger: logging.Logger):
    """Context manager for temporary quiet logging (warnings and above)."""
    return LoggingContext(logger, logging.WARNING)
