"""
Configuration Errors
====================

Error kinds raised by the loaders, the cache and the configuration manager.

Every error carries the offending path, line or key when one is known, so
callers can report a precise location without parsing the message.
"""

from typing import Any, Dict, List, Optional


class ConfigError(Exception):
    """Base class for all configuration errors."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        line: Optional[int] = None,
        key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        """
        Initialize error with location context.

        Args:
            message: Human-readable error message
            path: File or directory the error refers to
            line: 1-indexed line number inside ``path``
            key: Configuration or environment key involved
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None
        self.line = line
        self.key = key
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for diagnostics."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "path": self.path,
            "line": self.line,
            "key": self.key,
            "cause": str(self.cause) if self.cause else None,
        }


# Source errors
class SourceNotFound(ConfigError, FileNotFoundError):
    """A required configuration source does not exist."""

    def __init__(self, message: str, **kwargs):
        ConfigError.__init__(self, message, **kwargs)


class UnreadableSource(ConfigError):
    """A source exists but cannot be opened or read."""
    pass


class InvalidFragment(ConfigError):
    """A fragment could not be evaluated or did not produce a mapping."""
    pass


# Environment file errors
class MalformedAssignment(ConfigError):
    """An environment file line has no ``=``."""
    pass


class InvalidVariableName(ConfigError):
    """An environment variable name does not match ``[A-Z_][A-Z0-9_]*``."""
    pass


# Cache errors
class CacheError(ConfigError):
    """Base class for cache artifact errors."""
    pass


class CacheMissing(CacheError):
    """The cache artifact does not exist."""
    pass


class ReadFailure(CacheError):
    """The cache artifact exists but could not be read."""
    pass


class DeserializationFailure(CacheError):
    """The cache artifact does not decode into a configuration tree."""
    pass


class CacheWriteFailure(CacheError):
    """The cache artifact could not be written or moved into place."""
    pass


class DirectoryCreationFailure(CacheError):
    """The cache directory could not be created."""
    pass


# Access and validation errors
class MissingConfigurationKey(ConfigError, LookupError):
    """A required configuration key is absent."""

    def __init__(self, key: str):
        ConfigError.__init__(self, f"Required configuration key [{key}] not found", key=key)


class ConfigValidationError(ConfigError):
    """One or more schema rules failed."""

    def __init__(self, errors: List[str], group: Optional[str] = None):
        message = "Configuration validation failed"
        if group:
            message += f" for group '{group}'"
        message += ": " + "; ".join(errors)
        super().__init__(message, key=group)
        self.errors = list(errors)
        self.group = group


__all__ = [
    "ConfigError",
    "SourceNotFound",
    "UnreadableSource",
    "InvalidFragment",
    "MalformedAssignment",
    "InvalidVariableName",
    "CacheError",
    "CacheMissing",
    "ReadFailure",
    "DeserializationFailure",
    "CacheWriteFailure",
    "DirectoryCreationFailure",
    "MissingConfigurationKey",
    "ConfigValidationError",
]
