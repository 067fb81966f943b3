"""
confstack - Layered Configuration
=================================

Resolves application configuration from fragment files, environment overlays,
environment-definition files and runtime overrides, and caches the merged tree.

Modules:
- config: Loaders, cache, configuration manager and command line
- utils: Logging setup and configuration tree helpers
"""

__version__ = "1.0.0"

from .config import (
    ConfigCache,
    ConfigError,
    ConfigurationManager,
    ConfigValidationRule,
    EnvironmentLoader,
    EnvironmentManager,
    FragmentLoader,
    ValidationLevel,
)
from .utils.logger import setup_logging

__all__ = [
    "ConfigCache",
    "ConfigError",
    "ConfigurationManager",
    "ConfigValidationRule",
    "EnvironmentLoader",
    "EnvironmentManager",
    "FragmentLoader",
    "ValidationLevel",
    "setup_logging",
]
