"""
Environment Loader
==================

Parses environment-definition files (``KEY=VALUE`` per line, an optional
leading ``export`` allowed) into typed values and answers precedence-aware
lookups:

1. Values set at runtime through :meth:`EnvironmentLoader.set`
2. Values already present in the process environment
3. Values loaded from environment files during this process's lifetime

Every parsed variable is also written to ``os.environ`` so code that reads
the process environment directly sees the same value.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .exceptions import InvalidVariableName, MalformedAssignment, UnreadableSource

logger = logging.getLogger(__name__)

VARIABLE_NAME = re.compile(r'^[A-Z_][A-Z0-9_]*$')

# ${NAME} or $NAME, matched in one pass so substituted text is never rescanned
_EXPANSION = re.compile(r'\$\{([A-Z_][A-Z0-9_]*)\}|\$([A-Z_][A-Z0-9_]*)')
_ESCAPES = re.compile(r'\\([nrt\\"])')
_ESCAPE_MAP = {'n': '\n', 'r': '\r', 't': '\t', '\\': '\\', '"': '"'}
_NUMERIC = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')

_LITERALS = {
    'true': True,
    'false': False,
    'null': None,
}


def is_valid_variable_name(name: str) -> bool:
    """Check a variable name against ``[A-Z_][A-Z0-9_]*``."""
    return bool(VARIABLE_NAME.match(name))


def convert_value(value: Any) -> Any:
    """
    Convert a string from the process environment to a typed value.

    ``true``/``false``/``null`` (any case) become ``True``/``False``/``None``;
    numeric strings become ``float`` when they contain a dot and ``int``
    otherwise. Anything else, and any non-string, is returned unchanged.
    """
    if not isinstance(value, str):
        return value

    lowered = value.lower()
    if lowered in _LITERALS:
        return _LITERALS[lowered]

    if _NUMERIC.match(value):
        return _to_number(value)

    return value


def _to_number(value: str) -> Union[int, float]:
    if '.' in value:
        return float(value)
    try:
        return int(value)
    except ValueError:
        # exponent without a decimal point, e.g. 1e3
        return int(float(value))


def to_environ_string(value: Any) -> str:
    """Render a typed value for ``os.environ``."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _to_expansion_string(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


class EnvironmentLoader:
    """Loads environment files and resolves environment variables."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        """
        Initialize the loader.

        Args:
            environ: Process environment mapping (``os.environ`` if None)
        """
        self._environ = environ
        self._variables: Dict[str, Any] = {}
        self._runtime: Dict[str, Any] = {}
        self._owned: set = set()
        self.loaded_files: List[Path] = []

    @property
    def environ(self) -> Dict[str, str]:
        return os.environ if self._environ is None else self._environ

    # ------------------------------------------------------------------
    def load(self, path: Union[str, os.PathLike]) -> None:
        """
        Load variables from an environment file.

        Missing files are skipped silently; environment files are optional.

        Args:
            path: Path to the environment file

        Raises:
            UnreadableSource: File exists but cannot be read
            MalformedAssignment: A line has no ``=``
            InvalidVariableName: A key is not a valid variable name
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"Environment file not found, skipping: {path}")
            return

        try:
            with path.open('r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise UnreadableSource(
                f"Environment file not readable: {path}", path=str(path), cause=e
            ) from e

        count = 0
        for line_number, line in enumerate(lines, start=1):
            if self._parse_line(line, line_number, path):
                count += 1

        self.loaded_files.append(path)
        logger.debug(f"Loaded {count} environment variables from {path}")

    def load_multiple(self, paths: Iterable[Union[str, os.PathLike]]) -> None:
        """Load several environment files in order; later files win."""
        for path in paths:
            self.load(path)

    def _parse_line(self, line: str, line_number: int, path: Path) -> bool:
        line = line.strip()

        if not line or line.startswith('#'):
            return False

        if line.startswith('export '):
            line = line[len('export '):].lstrip()

        if '=' not in line:
            raise MalformedAssignment(
                f"Invalid environment variable format at line {line_number} in {path}: {line}",
                path=str(path), line=line_number,
            )

        key, value = line.split('=', 1)
        key = key.strip()
        value = value.strip()

        if not is_valid_variable_name(key):
            raise InvalidVariableName(
                f"Invalid environment variable name at line {line_number} in {path}: {key}",
                path=str(path), line=line_number, key=key,
            )

        self._define(key, self.parse_value(value))
        return True

    # ------------------------------------------------------------------
    def parse_value(self, value: str) -> Any:
        """
        Parse the raw right-hand side of an assignment.

        Args:
            value: Raw value text, already stripped

        Returns:
            Typed value
        """
        if self._is_quoted(value):
            quote, content = value[0], value[1:-1]
            if quote == '"':
                return _ESCAPES.sub(lambda m: _ESCAPE_MAP[m.group(1)], content)
            return content

        lowered = value.lower()
        if lowered in _LITERALS:
            return _LITERALS[lowered]
        if lowered == 'empty':
            return ''

        if _NUMERIC.match(value):
            return _to_number(value)

        return self.expand_variables(value)

    @staticmethod
    def _is_quoted(value: str) -> bool:
        return len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'")

    def expand_variables(self, value: str) -> str:
        """Substitute ``${NAME}`` and ``$NAME`` references in a single pass."""
        def replace(match: 're.Match') -> str:
            name = match.group(1) or match.group(2)
            return _to_expansion_string(self.get(name, ''))

        return _EXPANSION.sub(replace, value)

    def _define(self, key: str, value: Any) -> None:
        if key in self.environ and key not in self._owned:
            logger.debug(f"Keeping process environment value for {key}")
            return

        self._variables[key] = value
        self._owned.add(key)
        self.environ[key] = to_environ_string(value)

    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get an environment variable.

        Args:
            key: Variable name
            default: Value returned when the variable is not defined

        Returns:
            Typed value or ``default``
        """
        if key in self._runtime:
            return self._runtime[key]

        if key in self._variables:
            return self._variables[key]

        if key in self.environ:
            value = convert_value(self.environ[key])
            self._variables[key] = value
            return value

        return default

    def set(self, key: str, value: Any) -> None:
        """
        Set a variable at runtime, overriding every other source.

        Raises:
            InvalidVariableName: ``key`` is not a valid variable name
        """
        if not is_valid_variable_name(key):
            raise InvalidVariableName(f"Invalid environment variable name: {key}", key=key)

        self._runtime[key] = value
        self._owned.add(key)
        self.environ[key] = to_environ_string(value)

    def has(self, key: str) -> bool:
        """Check whether a variable is held in the in-memory store."""
        return key in self._runtime or key in self._variables

    def all(self) -> Dict[str, Any]:
        """Get all variables held in the in-memory store."""
        variables = dict(self._variables)
        variables.update(self._runtime)
        return variables

    def clear(self) -> None:
        """Forget all in-memory variables. The process environment is left as is."""
        self._variables.clear()
        self._runtime.clear()
        self._owned.clear()
        self.loaded_files = []


__all__ = [
    "EnvironmentLoader",
    "convert_value",
    "is_valid_variable_name",
    "to_environ_string",
]
