"""Configuration package.

Provides the layered ConfigurationManager plus its building blocks: the
environment file loader, the fragment loader and the configuration cache.
"""
from .config_cache import ConfigCache  # noqa: F401
from .env_loader import EnvironmentLoader  # noqa: F401
from .environment_manager import EnvironmentManager, EnvironmentInfo, detect_environment  # noqa: F401
from .exceptions import *  # noqa: F401,F403
from .fragment_loader import FragmentLoader  # noqa: F401
from .hierarchical_config import ConfigurationManager, ConfigPriority, ResolverState  # noqa: F401
from .validation import ConfigValidationRule, ConfigValidator, ValidationLevel  # noqa: F401
