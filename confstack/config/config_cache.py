#!/usr/bin/env python3
"""
Configuration Cache
===================

Persists the merged configuration tree to a single artifact and decides
whether that artifact is still fresh.

The artifact is valid while its modification time is not older than any
contributing source: fragment files under ``config/`` (overlays included)
and the environment files ``.env``, ``.env.<environment>`` and ``.env.local``.
The artifact records the project root and the environment it was built for;
an artifact built for another project or environment is not valid.

Writes are atomic: the tree is written to a unique temporary file next to
the artifact, flushed to disk and renamed over the artifact, so readers see
either the previous tree or the new one.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

try:
    import fcntl
except ImportError:  # pragma: no cover - Windows
    fcntl = None

from .exceptions import (
    CacheError,
    CacheMissing,
    CacheWriteFailure,
    DeserializationFailure,
    DirectoryCreationFailure,
    ReadFailure,
)
from .fragment_loader import FragmentLoader

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = 'config.cache'


class ConfigCache:
    """File-backed cache of a resolved configuration tree."""

    def __init__(
        self,
        base_path: Union[str, os.PathLike],
        environment: str = 'production',
        fragment_loader: Optional[FragmentLoader] = None,
        cache_file: str = CACHE_FILE_NAME,
    ):
        """
        Initialize the cache.

        Args:
            base_path: Project root holding ``config/`` and ``storage/``
            environment: Active environment name (selects ``.env.<environment>``)
            fragment_loader: Loader used for fragment modification times
            cache_file: Artifact file name
        """
        self.base_path = Path(base_path)
        self.config_path = self.base_path / 'config'
        self.environment = environment
        self.fragment_loader = fragment_loader or FragmentLoader()
        self.cache_dir = self._determine_cache_directory()
        self.cache_file_path = self.cache_dir / cache_file

    @property
    def project_key(self) -> str:
        """Resolved project root recorded in the artifact."""
        return str(self.base_path.resolve())

    def _determine_cache_directory(self) -> Path:
        for candidate in (self.base_path / 'storage' / 'cache', self.base_path / 'storage'):
            if candidate.is_dir() and os.access(candidate, os.W_OK):
                return candidate
        return Path(tempfile.gettempdir())

    # ------------------------------------------------------------------
    def source_files(self) -> List[Path]:
        """Environment files that contribute to the cached tree."""
        return [
            self.base_path / '.env',
            self.base_path / '.env.local',
            self.base_path / f'.env.{self.environment}',
        ]

    def get_latest_source_modification_time(self) -> float:
        """Latest modification time across every contributing source."""
        loader = self.fragment_loader
        times = [
            loader.get_directory_modification_time(self.config_path, recursive=True),
            loader.get_directory_modification_time(
                self.config_path / 'environments' / self.environment
            ),
            loader.get_directory_modification_time(self.config_path / 'local'),
        ]
        times.extend(loader.get_file_modification_time(p) for p in self.source_files())
        return max(times)

    def exists(self) -> bool:
        """Check whether a fresh artifact is present."""
        return self.cache_file_path.is_file() and self.is_valid()

    def is_valid(self) -> bool:
        """
        Check the artifact is not older than any contributing source and was
        built for this project and the active environment.
        """
        try:
            cache_mtime = self.cache_file_path.stat().st_mtime
        except OSError:
            return False
        if cache_mtime < self.get_latest_source_modification_time():
            return False

        try:
            record = self._read_record()
        except CacheError as e:
            logger.debug(f"Configuration cache not usable: {e}")
            return False
        return (record.get('root') == self.project_key
                and record.get('environment') == self.environment)

    # ------------------------------------------------------------------
    def _read_record(self) -> Dict[str, Any]:
        path = self.cache_file_path
        if not path.is_file():
            raise CacheMissing(f"Configuration cache not found: {path}", path=str(path))

        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ReadFailure(
                f"Failed to read configuration cache: {path}", path=str(path), cause=e
            ) from e

        try:
            record = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise DeserializationFailure(
                f"Invalid configuration cache format: {path}", path=str(path), cause=e
            ) from e

        if not isinstance(record, dict) or not isinstance(record.get('config'), dict):
            raise DeserializationFailure(
                f"Invalid configuration cache format: {path}", path=str(path)
            )
        return record

    def get(self) -> Dict[str, Any]:
        """
        Read the cached tree.

        Raises:
            CacheMissing: Artifact does not exist
            ReadFailure: Artifact could not be read
            DeserializationFailure: Artifact is not a serialized mapping
        """
        tree = self._read_record()['config']
        logger.info(f"Configuration loaded from cache {self.cache_file_path}")
        return tree

    def put(self, tree: Dict[str, Any]) -> None:
        """
        Atomically write ``tree`` to the artifact.

        Raises:
            DirectoryCreationFailure: Cache directory could not be created
            CacheWriteFailure: Serialization, write or rename failed
        """
        try:
            record = {'root': self.project_key, 'environment': self.environment,
                      'config': tree}
            payload = json.dumps(record, ensure_ascii=False).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise CacheWriteFailure(
                f"Failed to serialize configuration for cache: {e}",
                path=str(self.cache_file_path), cause=e,
            ) from e

        self._ensure_cache_directory()

        target = self.cache_file_path
        temp_path = None
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f'.{target.name}.', suffix='.tmp', dir=str(self.cache_dir)
            )
            temp_path = Path(temp_name)
            with os.fdopen(fd, 'wb') as f:
                if fcntl is not None:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, target)
        except OSError as e:
            logger.error(f"Failed atomic cache write to {target}: {e}")
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()
            raise CacheWriteFailure(
                f"Failed to write configuration cache: {target}", path=str(target), cause=e
            ) from e

        logger.info(f"Configuration cache written to {target}")

    def warm_up(self, tree: Dict[str, Any]) -> None:
        """Build the artifact from an already resolved tree."""
        self.put(tree)

    def _ensure_cache_directory(self) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryCreationFailure(
                f"Failed to create cache directory: {self.cache_dir}",
                path=str(self.cache_dir), cause=e,
            ) from e

    # ------------------------------------------------------------------
    def forget(self) -> None:
        """Delete the artifact if present."""
        try:
            self.cache_file_path.unlink()
            logger.info(f"Configuration cache removed: {self.cache_file_path}")
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        self.forget()

    def get_size(self) -> int:
        try:
            return self.cache_file_path.stat().st_size
        except OSError:
            return 0

    def get_modification_time(self) -> float:
        try:
            return self.cache_file_path.stat().st_mtime
        except OSError:
            return 0.0

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics for diagnostics."""
        present = self.cache_file_path.is_file()
        return {
            'exists': present,
            'valid': present and self.is_valid(),
            'size': self.get_size(),
            'modified': self.get_modification_time(),
            'path': str(self.cache_file_path),
        }


__all__ = ["ConfigCache", "CACHE_FILE_NAME"]
