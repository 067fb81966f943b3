"""
Hierarchical Configuration System
================================

Resolves one configuration tree from layered sources:
1. Base Config: fragments in ``config/``
2. Environment Overlay: fragments in ``config/environments/<env>/``
3. Local Overlay: fragments in ``config/local/``
4. Runtime Override: values applied through ``apply_overrides``

Environment files (``.env``, ``.env.<env>``, ``.env.local``) are loaded
first so fragments can reference their variables. The merged tree of the
first three layers is written to a cache artifact; later loads read the
artifact while it is fresher than every source.
"""

from copy import deepcopy
from enum import Enum
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .config_cache import ConfigCache
from .env_loader import EnvironmentLoader
from .environment_manager import EnvironmentManager
from .exceptions import CacheError, ConfigValidationError, MissingConfigurationKey
from .fragment_loader import FragmentLoader
from .validation import ConfigValidationRule, ConfigValidator, ValidationLevel
from ..utils.config import (
    deep_merge,
    get_nested_value,
    has_nested_value,
    merge_all,
    set_nested_value,
    unflatten_config,
    unset_nested_value,
)

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = ('true', '1', 'yes', 'on')


class ConfigPriority(Enum):
    """Configuration priority levels (higher numbers take precedence)."""
    BASE = 1           # config/
    ENVIRONMENT = 2    # config/environments/<env>/
    LOCAL = 3          # config/local/
    RUNTIME = 4        # apply_overrides (never cached)


class ResolverState(Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    RELOADING = "reloading"


class ConfigurationManager:
    """
    Manages layered configuration with environment files, caching and validation.
    """

    def __init__(self,
                 base_path: Optional[Union[str, Path]] = None,
                 environment: Optional[str] = None,
                 use_cache: bool = True,
                 file_loader: Optional[FragmentLoader] = None,
                 env_loader: Optional[EnvironmentLoader] = None,
                 cache: Optional[ConfigCache] = None,
                 validation_level: ValidationLevel = ValidationLevel.STRICT,
                 argv: Optional[Sequence[str]] = None):
        """
        Initialize configuration manager.

        Args:
            base_path: Project root (discovered from the nearest ``.env`` if None)
            environment: Active environment; overrides ``--env=`` and ``APP_ENV``
            use_cache: Read and write the configuration cache
            file_loader: Fragment loader (created if None)
            env_loader: Environment variable store (created if None)
            cache: Cache store (created on first use if None)
            validation_level: Validation strictness level
            argv: Command-line arguments searched for ``--env=`` (``sys.argv`` if None)
        """
        self.layout = EnvironmentManager(base_path)
        self.base_path = self.layout.project_root
        self.use_cache = use_cache
        self._explicit_environment = environment
        self._argv = argv

        self.env_loader = env_loader or EnvironmentLoader()
        self.file_loader = file_loader or FragmentLoader()
        if self.file_loader.env_lookup is None:
            self.file_loader.env_lookup = self.env_loader.get
        self._cache = cache

        self.validator = ConfigValidator(validation_level)

        # Configuration stack (priority order)
        self.config_stack: Dict[ConfigPriority, Dict[str, Any]] = {}
        self.config: Dict[str, Any] = {}
        self.state = ResolverState.UNLOADED
        self.loaded_from: Optional[str] = None
        self.sources: List[Path] = []

        self.environment = self.layout.detect_environment(
            argv=self._argv, explicit=self._explicit_environment
        )

        logger.debug(f"ConfigurationManager initialized for {self.base_path}")

    @property
    def validation_level(self) -> ValidationLevel:
        return self.validator.validation_level

    @property
    def cache(self) -> ConfigCache:
        if self._cache is None:
            self._cache = ConfigCache(self.base_path, self.environment, self.file_loader)
        return self._cache

    @property
    def is_loaded(self) -> bool:
        return self.state == ResolverState.LOADED

    # ------------------------------------------------------------------
    def load(self, force: bool = False) -> None:
        """
        Resolve the configuration tree.

        Args:
            force: Rebuild from the filesystem even when already loaded or cached
        """
        if self.state == ResolverState.LOADED and not force:
            return

        previous = (self.state, self.config, self.config_stack, self.loaded_from,
                    self.sources, self.environment)
        if self.state == ResolverState.LOADED:
            self.state = ResolverState.RELOADING

        try:
            env_sources = self._load_environment_files()
            tree = None

            if not force and self.use_cache and self.cache.exists():
                try:
                    tree = self.cache.get()
                    self.config_stack = {
                        p: layer for p, layer in self.config_stack.items()
                        if p == ConfigPriority.RUNTIME
                    }
                    self.loaded_from = 'cache'
                    self.sources = env_sources + [self.cache.cache_file_path]
                    self._validate_tree(tree)
                except CacheError as e:
                    logger.warning(f"Configuration cache unusable, rebuilding from files: {e}")
                    tree = None

            if tree is None:
                tree, fragment_sources = self._build_from_filesystem()
                self.loaded_from = 'filesystem'
                self.sources = env_sources + fragment_sources
                self._validate_tree(tree)

                if self.use_cache:
                    try:
                        self.cache.put(tree)
                    except CacheError as e:
                        logger.warning(f"Failed to write configuration cache: {e}")

            overrides = self.config_stack.get(ConfigPriority.RUNTIME, {})
            self.config = deep_merge(tree, overrides)
            self.state = ResolverState.LOADED

        except Exception:
            (self.state, self.config, self.config_stack, self.loaded_from,
             self.sources, self.environment) = previous
            if self._cache is not None:
                self._cache.environment = self.environment
            raise

        logger.info(
            f"Configuration loaded from {self.loaded_from} "
            f"(environment: {self.environment}, groups: {len(self.config)})"
        )

    def _load_environment_files(self) -> List[Path]:
        """Load .env, resolve the environment, then .env.<env> and .env.local."""
        start = len(self.env_loader.loaded_files)

        self.env_loader.load(self.layout.base_env_file)
        self.environment = self.layout.detect_environment(
            argv=self._argv,
            env_lookup=self.env_loader.get,
            explicit=self._explicit_environment,
        )
        if self._cache is not None:
            self._cache.environment = self.environment

        self.env_loader.load(self.layout.environment_env_file(self.environment))
        self.env_loader.load(self.layout.local_env_file)

        return list(self.env_loader.loaded_files[start:])

    def _build_from_filesystem(self):
        """Merge base, environment and local fragments in priority order."""
        start = len(self.file_loader.loaded_files)
        runtime = self.config_stack.get(ConfigPriority.RUNTIME)

        stack: Dict[ConfigPriority, Dict[str, Any]] = {
            ConfigPriority.BASE: self.file_loader.load_directory(self.layout.config_dir),
            ConfigPriority.ENVIRONMENT: self.file_loader.load_directory(
                self.layout.environment_dir(self.environment)
            ),
            ConfigPriority.LOCAL: self.file_loader.load_directory(self.layout.local_dir),
        }
        tree = merge_all(stack[p] for p in sorted(stack, key=lambda x: x.value))

        if runtime is not None:
            stack[ConfigPriority.RUNTIME] = runtime
        self.config_stack = stack

        return tree, list(self.file_loader.loaded_files[start:])

    def _ensure_loaded(self) -> None:
        if self.state == ResolverState.UNLOADED:
            self.load()

    def reload(self) -> None:
        """Rescan every source and rewrite the cache."""
        self.load(force=True)

    def rebuild_cache(self) -> None:
        """
        Rebuild the tree from the filesystem and write it to the cache.

        Unlike ``load``, cache write errors are raised.
        """
        self._load_environment_files()
        tree, _ = self._build_from_filesystem()
        self._validate_tree(tree)
        self.cache.warm_up(tree)

    # ------------------------------------------------------------------
    def apply_overrides(self, overrides: Dict[str, Any]) -> None:
        """
        Apply runtime overrides (highest priority, never cached).

        Args:
            overrides: Nested mapping or ``{dot.path: value}`` pairs
        """
        hierarchical: Dict[str, Any] = {}
        for key, value in overrides.items():
            if '.' in key:
                hierarchical = deep_merge(hierarchical, unflatten_config({key: value}))
            else:
                hierarchical = deep_merge(hierarchical, {key: value})

        current = self.config_stack.get(ConfigPriority.RUNTIME, {})
        self.config_stack[ConfigPriority.RUNTIME] = deep_merge(current, hierarchical)

        if self.state == ResolverState.LOADED:
            self.config = deep_merge(self.config, hierarchical)

        logger.info(f"Applied runtime overrides: {list(overrides.keys())}")

    # ------------------------------------------------------------------
    def get(self, path: str, default: Any = None) -> Any:
        """Get a value by dot path, ``default`` when it does not resolve."""
        self._ensure_loaded()
        return get_nested_value(self.config, path, default)

    def set(self, path: str, value: Any) -> None:
        """Set a value in the in-memory tree. Nothing is persisted."""
        self._ensure_loaded()
        set_nested_value(self.config, path, value)

    def has(self, path: str) -> bool:
        self._ensure_loaded()
        return has_nested_value(self.config, path)

    def forget(self, path: str) -> bool:
        """Remove a key from the in-memory tree."""
        self._ensure_loaded()
        return unset_nested_value(self.config, path)

    def all(self) -> Dict[str, Any]:
        self._ensure_loaded()
        return deepcopy(self.config)

    def get_group(self, name: str) -> Dict[str, Any]:
        """Get a top-level group, ``{}`` when absent or not a mapping."""
        self._ensure_loaded()
        group = self.config.get(name)
        return deepcopy(group) if isinstance(group, dict) else {}

    def env(self, key: str, default: Any = None) -> Any:
        return self.env_loader.get(key, default)

    def is_debug(self) -> bool:
        return self.get_bool('app.debug', False)

    def get_environment(self) -> str:
        return self.get('app.env', self.environment)

    def is_environment(self, *environments: Union[str, Iterable[str]]) -> bool:
        """Check the active environment against one or more names."""
        names: List[str] = []
        for environment in environments:
            if isinstance(environment, str):
                names.append(environment)
            else:
                names.extend(environment)
        return self.get_environment() in names

    # ------------------------------------------------------------------
    def get_required(self, path: str) -> Any:
        """Get a value that must exist."""
        if not self.has(path):
            raise MissingConfigurationKey(path)
        return self.get(path)

    def get_string(self, path: str, default: str = '') -> str:
        value = self.get(path)
        return default if value is None else str(value)

    def get_int(self, path: str, default: int = 0) -> int:
        value = self.get(path)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_float(self, path: str, default: float = 0.0) -> float:
        value = self.get(path)
        if value is None:
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, path: str, default: bool = False) -> bool:
        value = self.get(path)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in TRUTHY_STRINGS
        return bool(value)

    def get_list(self, path: str, default: Optional[List[Any]] = None) -> List[Any]:
        value = self.get(path)
        if isinstance(value, list):
            return value
        return [] if default is None else default

    # ------------------------------------------------------------------
    def register_schema(self, group: str, rules: Iterable[ConfigValidationRule]) -> None:
        """Register validation rules for a configuration group."""
        self.validator.register(group, rules)

    def validate(self) -> List[str]:
        """
        Validate the current tree against every registered schema.

        Returns:
            Warning messages

        Raises:
            ConfigValidationError: A strict rule failed
        """
        self._ensure_loaded()
        return self._validate_tree(self.config)

    def _validate_tree(self, tree: Dict[str, Any]) -> List[str]:
        if not self.validator.schemas:
            return []

        errors, warnings = self.validator.validate(tree)
        if errors:
            logger.error(f"Configuration validation failed with {len(errors)} errors")
            for error in errors:
                logger.error(error)
            raise ConfigValidationError(errors)
        return warnings

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of current configuration hierarchy."""
        return {
            'state': self.state.value,
            'environment': self.environment,
            'base_path': str(self.base_path),
            'loaded_from': self.loaded_from,
            'validation_level': self.validation_level.value,
            'active_priorities': [p.name for p in sorted(self.config_stack, key=lambda x: x.value)],
            'groups': sorted(self.config),
            'sources': [str(p) for p in self.sources],
            'fragments_read': len(self.file_loader.loaded_files),
            'cache': self.cache.get_stats() if self.use_cache else None,
        }


__all__ = ["ConfigurationManager", "ConfigPriority", "ResolverState"]
