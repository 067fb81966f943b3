"""
Utilities Module
================

Logging setup and configuration tree helpers.
"""

from .logger import setup_logging, get_logger, LoggingContext, with_debug_logging, with_quiet_logging
from .config import (
    deep_merge,
    flatten_config,
    get_nested_value,
    has_nested_value,
    set_nested_value,
    unflatten_config,
    unset_nested_value,
)

__all__ = [
    'setup_logging',
    'get_logger',
    'LoggingContext',
    'with_debug_logging',
    'with_quiet_logging',
    'deep_merge',
    'flatten_config',
    'get_nested_value',
    'has_nested_value',
    'set_nested_value',
    'unflatten_config',
    'unset_nested_value',
]
