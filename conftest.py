"""
Shared fixtures for the confstack test modules.
"""

import logging
import os
import textwrap
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_environ(monkeypatch):
    """Give every test its own copy of the process environment."""
    monkeypatch.setattr(os, "environ", dict(os.environ))
    for name in ("APP_ENV", "APP_NAME", "APP_URL", "APP_DEBUG", "DB_HOST", "DB_PORT"):
        monkeypatch.delenv(name, raising=False)
    yield


def write(path: Path, content: str) -> Path:
    """Write dedented text to ``path``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path):
    """A project root with base, environment and local fragments."""
    write(tmp_path / "config" / "app.yaml", """
        name: Demo
        debug: false
        url: !env [APP_URL, "http://localhost"]
    """)
    write(tmp_path / "config" / "database.yaml", """
        default: mysql
        connections:
          mysql:
            host: localhost
            port: 3306
    """)
    write(tmp_path / "config" / "environments" / "staging" / "database.yaml", """
        connections:
          mysql:
            host: staging-db
    """)
    write(tmp_path / "config" / "local" / "app.yaml", """
        debug: true
    """)
    (tmp_path / "storage" / "cache").mkdir(parents=True)
    return tmp_path


def age_file(path: Path, seconds: float) -> None:
    """Move the modification time of ``path`` back by ``seconds``."""
    stat = path.stat()
    os.utime(path, (stat.st_atime - seconds, stat.st_mtime - seconds))


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Drop handlers added by setup_logging and restore the root level."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


def age_sources(root: Path, seconds: float = 100) -> None:
    """Make every source file and directory older than anything written afterwards."""
    for path in root.rglob("*"):
        if "storage" not in path.relative_to(root).parts:
            age_file(path, seconds)
