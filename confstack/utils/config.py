"""
Configuration Utilities
========================

Utilities for handling configuration trees: deep merging and dot-path access.
"""

from copy import deepcopy
from typing import Any, Dict, Iterable, List

_MISSING = object()


def split_path(path: str) -> List[str]:
    """Split a dot-path into its segments."""
    return path.split('.') if path else []


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries with override taking precedence.

    Mappings present on both sides are merged recursively; any other value
    from ``override`` replaces the value in ``base``. Neither input is mutated.

    Args:
        base: Earlier (lower priority) tree
        override: Later (higher priority) tree

    Returns:
        New merged dictionary
    """
    result = dict(base)

    for key, value in override.items():
        if (key in result and
                isinstance(result[key], dict) and
                isinstance(value, dict)):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def merge_all(trees: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Deep merge a sequence of trees, later trees winning."""
    merged: Dict[str, Any] = {}
    for tree in trees:
        merged = deep_merge(merged, tree)
    return merged


def _walk(tree: Dict[str, Any], path: str) -> Any:
    value: Any = tree
    for segment in split_path(path):
        if not isinstance(value, dict) or segment not in value:
            return _MISSING
        value = value[segment]
    return value


def get_nested_value(tree: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get nested value using dot notation.

    A non-mapping encountered before the final segment means "not found".

    Args:
        tree: Configuration tree
        path: Dot-delimited path (e.g. ``database.connections.mysql``)
        default: Value returned when the path does not resolve

    Returns:
        Resolved value or ``default``
    """
    if not path:
        return default
    value = _walk(tree, path)
    return default if value is _MISSING else value


def has_nested_value(tree: Dict[str, Any], path: str) -> bool:
    """Check whether a dot-path resolves, even to ``None``."""
    return bool(path) and _walk(tree, path) is not _MISSING


def set_nested_value(tree: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """
    Set a nested value in place, creating intermediate mappings.

    Intermediate segments that hold a non-mapping are replaced by an empty
    mapping; only the leaf at ``path`` is overwritten.

    Args:
        tree: Configuration tree (mutated)
        path: Dot-delimited path
        value: Value to store

    Returns:
        The same tree, for chaining
    """
    parts = split_path(path)
    if not parts:
        raise ValueError("Configuration path must not be empty")

    current = tree
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]

    current[parts[-1]] = value
    return tree


def unset_nested_value(tree: Dict[str, Any], path: str) -> bool:
    """Remove the leaf at ``path``. Returns True when something was removed."""
    parts = split_path(path)
    if not parts:
        return False

    parent = _walk(tree, '.'.join(parts[:-1])) if len(parts) > 1 else tree
    if not isinstance(parent, dict) or parts[-1] not in parent:
        return False

    del parent[parts[-1]]
    return True


def flatten_config(tree: Dict[str, Any], prefix: str = '') -> Dict[str, Any]:
    """
    Flatten a nested tree into ``{dot.path: leaf}`` pairs.

    Empty mappings are kept as leaves so that no key disappears.
    """
    flattened: Dict[str, Any] = {}

    for key, value in tree.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flattened.update(flatten_config(value, path))
        else:
            flattened[path] = value

    return flattened


def unflatten_config(flat: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a flat ``{dot.path: value}`` dict to a hierarchical structure."""
    hierarchical: Dict[str, Any] = {}

    for path, value in flat.items():
        set_nested_value(hierarchical, path, value)

    return hierarchical


def normalize_keys(value: Any) -> Any:
    """
    Coerce a parsed value into the configuration value model.

    Mapping keys become strings and tuples become lists, recursively.
    """
    if isinstance(value, dict):
        return {str(k): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_keys(v) for v in value]
    return value

