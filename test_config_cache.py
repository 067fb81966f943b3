"""
Tests for the configuration cache artifact.
"""

import os
import tempfile
from pathlib import Path

import pytest

from conftest import age_file, age_sources, write
from confstack.config.config_cache import ConfigCache
from confstack.config.exceptions import (
    CacheMissing,
    CacheWriteFailure,
    DeserializationFailure,
)

TREE = {
    "app": {"name": "Demo", "debug": False, "ratio": 0.5, "tags": ["a", "b"]},
    "database": {"connections": {"mysql": {"port": 3306, "password": None}}},
    "empty": {},
}


@pytest.fixture
def cache(project):
    return ConfigCache(project, environment="staging")


def test_cache_location_prefers_storage_cache(project, tmp_path_factory):
    assert ConfigCache(project).cache_file_path == project / "storage" / "cache" / "config.cache"

    other = tmp_path_factory.mktemp("plain")
    (other / "storage").mkdir()
    assert ConfigCache(other).cache_file_path == other / "storage" / "config.cache"

    bare = tmp_path_factory.mktemp("bare")
    assert ConfigCache(bare).cache_dir == Path(tempfile.gettempdir())


def test_round_trip(cache):
    cache.put(TREE)
    assert cache.get() == TREE


def test_missing_artifact(cache):
    assert cache.exists() is False
    with pytest.raises(CacheMissing):
        cache.get()


def test_corrupt_artifact(cache):
    cache.cache_file_path.write_bytes(b"\x00not json")
    with pytest.raises(DeserializationFailure):
        cache.get()

    cache.cache_file_path.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(DeserializationFailure):
        cache.get()

    cache.cache_file_path.write_text('{"environment": "staging", "config": [1]}', encoding="utf-8")
    with pytest.raises(DeserializationFailure):
        cache.get()
    assert cache.is_valid() is False


def test_validity_follows_source_mtimes(project, cache):
    age_sources(project)
    cache.put(TREE)
    assert cache.exists() is True

    # touching any contributing source invalidates the artifact
    overlay = project / "config" / "environments" / "staging" / "database.yaml"
    os.utime(overlay, None)
    age_file(cache.cache_file_path, 10)
    assert cache.is_valid() is False
    assert cache.exists() is False


def test_env_files_invalidate_cache(project, cache):
    age_sources(project)
    cache.put(TREE)
    age_file(cache.cache_file_path, 10)
    assert cache.is_valid() is True

    write(project / ".env.staging", "APP_NAME=Staging\n")
    assert cache.is_valid() is False


def test_unrelated_environment_does_not_invalidate(project, cache):
    age_sources(project)
    cache.put(TREE)
    age_file(cache.cache_file_path, 10)

    write(project / ".env.testing", "APP_NAME=Testing\n")
    assert cache.is_valid() is True


def test_put_replaces_previous_artifact(cache):
    cache.put(TREE)
    cache.put({"app": {"name": "Second"}})
    assert cache.get() == {"app": {"name": "Second"}}
    leftovers = [p for p in cache.cache_dir.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


def test_failed_rename_keeps_previous_artifact(cache, monkeypatch):
    cache.put(TREE)

    def failing_replace(src, dst):
        raise OSError("rename failed")

    monkeypatch.setattr(os, "replace", failing_replace)
    with pytest.raises(CacheWriteFailure):
        cache.put({"app": {"name": "Broken"}})

    assert cache.get() == TREE
    assert [p.name for p in cache.cache_dir.iterdir()] == ["config.cache"]


def test_unserializable_tree(cache):
    with pytest.raises(CacheWriteFailure):
        cache.put({"app": {"callback": object()}})
    assert not cache.cache_file_path.exists()


def test_missing_cache_directory_is_created(cache):
    cache.cache_dir.rmdir()
    cache.warm_up(TREE)
    assert cache.get() == TREE


def test_forget_and_clear_are_idempotent(cache):
    cache.put(TREE)
    cache.forget()
    assert not cache.cache_file_path.exists()
    cache.forget()
    cache.clear()


def test_stats(cache):
    stats = cache.get_stats()
    assert stats["exists"] is False
    assert stats["size"] == 0

    cache.put(TREE)
    stats = cache.get_stats()
    assert stats["exists"] is True
    assert stats["size"] == cache.get_size() > 0
    assert stats["modified"] == cache.get_modification_time()
    assert stats["path"] == str(cache.cache_file_path)


def test_artifact_from_other_environment_is_invalid(project, cache):
    age_sources(project)
    cache.put(TREE)

    production = ConfigCache(project, environment="production")
    assert cache.exists() is True
    assert production.exists() is False
    assert production.get() == TREE


def test_removed_fragment_invalidates_cache(project, cache):
    age_sources(project)
    cache.put(TREE)
    age_file(cache.cache_file_path, 10)
    assert cache.is_valid() is True

    (project / "config" / "database.yaml").unlink()
    assert cache.is_valid() is False


def test_shared_temp_artifact_is_scoped_to_project(tmp_path_factory, monkeypatch):
    shared = tmp_path_factory.mktemp("shared")
    monkeypatch.setattr(tempfile, "gettempdir", lambda: str(shared))
    first = tmp_path_factory.mktemp("first")
    second = tmp_path_factory.mktemp("second")

    ConfigCache(first).put({"app": {"name": "first"}})

    other = ConfigCache(second)
    assert other.cache_file_path == shared / "config.cache"
    assert other.is_valid() is False
    assert ConfigCache(first).is_valid() is True


def test_temp_file_creation_failure(cache, monkeypatch):
    def failing_mkstemp(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(tempfile, "mkstemp", failing_mkstemp)
    with pytest.raises(CacheWriteFailure):
        cache.put(TREE)
    assert not cache.cache_file_path.exists()
