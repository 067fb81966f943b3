#!/usr/bin/env python3
"""FragmentLoader: turns configuration fragment files into configuration trees.

A fragment is a file that evaluates to a mapping. Evaluation is dispatched on
the file extension:
- `.yaml` / `.yml`: PyYAML safe loader with an `!env` tag
- `.json`: standard-library json
- anything registered through `register_evaluator`

Directory loads assign each fragment to the key derived from its file stem,
so `config/database.yaml` becomes the `database` group.
"""
from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from .exceptions import InvalidFragment, SourceNotFound, UnreadableSource
from ..utils.config import deep_merge, normalize_keys, set_nested_value

logger = logging.getLogger(__name__)

Evaluator = Callable[[Path], Any]
EnvLookup = Callable[..., Any]


class FragmentYamlLoader(yaml.SafeLoader):
    """Safe YAML loader that keeps timestamps as strings and resolves `!env`."""

    env_lookup: Optional[EnvLookup] = None


# Drop the timestamp resolver so dates stay plain strings
FragmentYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers
            if tag != 'tag:yaml.org,2002:timestamp']
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_env(loader: FragmentYamlLoader, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        name, default = loader.construct_scalar(node), None
    elif isinstance(node, yaml.SequenceNode):
        args = loader.construct_sequence(node, deep=True)
        if not args or len(args) > 2:
            raise yaml.constructor.ConstructorError(
                None, None, "!env expects NAME or [NAME, default]", node.start_mark
            )
        name = args[0]
        default = args[1] if len(args) == 2 else None
    else:
        raise yaml.constructor.ConstructorError(
            None, None, "!env expects NAME or [NAME, default]", node.start_mark
        )

    lookup = loader.env_lookup
    if lookup is None:
        return os.environ.get(str(name), default)
    return lookup(str(name), default)


FragmentYamlLoader.add_constructor('!env', _construct_env)


class FragmentLoader:
    """Loads fragment files and fragment directories."""

    def __init__(self, env_lookup: Optional[EnvLookup] = None):
        self.env_lookup = env_lookup
        self.loaded_files: List[Path] = []
        self._evaluators: Dict[str, Evaluator] = {
            '.yaml': self._evaluate_yaml,
            '.yml': self._evaluate_yaml,
            '.json': self._evaluate_json,
        }

    # ------------------------------------------------------------------
    def register_evaluator(self, extension: str, evaluator: Evaluator) -> None:
        """Register an evaluator for a file extension (e.g. ``.toml``)."""
        if not extension.startswith('.'):
            extension = '.' + extension
        self._evaluators[extension.lower()] = evaluator

    @property
    def extensions(self) -> List[str]:
        return sorted(self._evaluators)

    def is_valid_config_file(self, path: str | os.PathLike[str]) -> bool:
        path = Path(path)
        return path.is_file() and path.suffix.lower() in self._evaluators

    # ------------------------------------------------------------------
    def _evaluate_yaml(self, path: Path) -> Any:
        with path.open('r', encoding='utf-8') as f:
            loader = FragmentYamlLoader(f)
            loader.env_lookup = self.env_lookup
            try:
                return loader.get_single_data()
            finally:
                loader.dispose()

    @staticmethod
    def _evaluate_json(path: Path) -> Any:
        with path.open('r', encoding='utf-8') as f:
            return json.load(f)

    # ------------------------------------------------------------------
    def load(self, path: str | os.PathLike[str]) -> Dict[str, Any]:
        """
        Evaluate a single fragment file.

        Args:
            path: Fragment file path

        Returns:
            Configuration mapping produced by the fragment

        Raises:
            SourceNotFound: File does not exist
            UnreadableSource: Path is not a readable regular file
            InvalidFragment: Unknown extension, parse error or non-mapping result
        """
        path = Path(path)
        if not path.exists():
            raise SourceNotFound(f"Configuration file not found: {path}", path=str(path))
        if not path.is_file() or not os.access(path, os.R_OK):
            raise UnreadableSource(f"Configuration file not readable: {path}", path=str(path))

        evaluator = self._evaluators.get(path.suffix.lower())
        if evaluator is None:
            raise InvalidFragment(
                f"Unsupported configuration file type: {path}", path=str(path)
            )

        try:
            data = evaluator(path)
        except (OSError, UnicodeDecodeError) as e:
            raise UnreadableSource(
                f"Failed to read configuration file {path}: {e}", path=str(path), cause=e
            ) from e
        except (yaml.YAMLError, ValueError) as e:
            raise InvalidFragment(
                f"Failed to parse configuration file {path}: {e}", path=str(path), cause=e
            ) from e

        if not isinstance(data, dict):
            raise InvalidFragment(
                f"Configuration file must evaluate to a mapping: {path} "
                f"(got {type(data).__name__})",
                path=str(path),
            )

        self.loaded_files.append(path)
        logger.debug(f"Loaded configuration fragment {path}")
        return normalize_keys(data)

    # ------------------------------------------------------------------
    def _fragment_files(self, directory: Path) -> List[Path]:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise UnreadableSource(
                f"Configuration directory not readable: {directory}",
                path=str(directory), cause=e,
            ) from e
        return [p for p in entries if self.is_valid_config_file(p)]

    def load_directory(self, directory: str | os.PathLike[str]) -> Dict[str, Any]:
        """
        Load every fragment directly inside ``directory``, keyed by file stem.

        A missing directory yields an empty mapping. Files sharing a stem
        (``app.yaml`` and ``app.json``) are merged in file-name order.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return {}

        config: Dict[str, Any] = {}
        for path in self._fragment_files(directory):
            key = path.stem
            data = self.load(path)
            if isinstance(config.get(key), dict):
                config[key] = deep_merge(config[key], data)
            else:
                config[key] = data

        return config

    def load_directory_recursive(
        self, directory: str | os.PathLike[str], prefix: str = ''
    ) -> Dict[str, Any]:
        """
        Load fragments from ``directory`` and its subdirectories.

        ``config/services/mail.yaml`` is stored under ``services.mail``
        (``<prefix>.services.mail`` when a prefix is given).
        """
        directory = Path(directory)
        if not directory.is_dir():
            return {}

        config: Dict[str, Any] = {}
        self._load_recursive_into(config, directory, prefix)
        return config

    def _load_recursive_into(self, config: Dict[str, Any], directory: Path, prefix: str) -> None:
        for path in self._fragment_files(directory):
            key = f"{prefix}.{path.stem}" if prefix else path.stem
            set_nested_value(config, key, self.load(path))

        for child in self._subdirectories(directory):
            child_prefix = f"{prefix}.{child.name}" if prefix else child.name
            self._load_recursive_into(config, child, child_prefix)

    @staticmethod
    def _subdirectories(directory: Path) -> List[Path]:
        try:
            return sorted((p for p in directory.iterdir() if p.is_dir()), key=lambda p: p.name)
        except OSError as e:
            raise UnreadableSource(
                f"Configuration directory not readable: {directory}",
                path=str(directory), cause=e,
            ) from e

    # ------------------------------------------------------------------
    def get_file_modification_time(self, path: str | os.PathLike[str]) -> float:
        """Modification time of ``path``, 0 when it does not exist."""
        try:
            return Path(path).stat().st_mtime
        except OSError:
            return 0.0

    def get_directory_modification_time(
        self, directory: str | os.PathLike[str], recursive: bool = False
    ) -> float:
        """
        Latest modification time of ``directory`` and its fragment files.

        The directory entries themselves count, so a removed or renamed
        fragment moves the result forward. With ``recursive`` every
        subdirectory walked counts as well.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return 0.0

        candidates = directory.rglob('*') if recursive else directory.iterdir()
        latest = self.get_file_modification_time(directory)
        for path in candidates:
            if (recursive and path.is_dir()) or self.is_valid_config_file(path):
                latest = max(latest, self.get_file_modification_time(path))
        return latest


__all__ = ["FragmentLoader", "FragmentYamlLoader"]
