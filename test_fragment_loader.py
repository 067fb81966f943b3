"""
Tests for fragment evaluation and directory loading.
"""

import json
import os

import pytest

from conftest import age_file, write
from confstack.config.exceptions import InvalidFragment, SourceNotFound, UnreadableSource
from confstack.config.fragment_loader import FragmentLoader


@pytest.fixture
def loader():
    return FragmentLoader()


def test_load_yaml_and_json(loader, tmp_path):
    yaml_file = write(tmp_path / "app.yaml", """
        name: Demo
        ports: [80, 443]
        nested:
          enabled: true
    """)
    json_file = tmp_path / "cache.json"
    json_file.write_text(json.dumps({"driver": "file", "ttl": 60}), encoding="utf-8")

    assert loader.load(yaml_file) == {
        "name": "Demo",
        "ports": [80, 443],
        "nested": {"enabled": True},
    }
    assert loader.load(json_file) == {"driver": "file", "ttl": 60}
    assert loader.loaded_files == [yaml_file, json_file]


def test_non_string_keys_are_normalized(loader, tmp_path):
    fragment = write(tmp_path / "codes.yaml", """
        200: ok
        404: missing
        true: yes-key
    """)
    assert loader.load(fragment) == {"200": "ok", "404": "missing", "True": "yes-key"}


def test_timestamps_stay_strings(loader, tmp_path):
    fragment = write(tmp_path / "release.yaml", """
        date: 2024-01-31
    """)
    assert loader.load(fragment) == {"date": "2024-01-31"}


def test_env_tag_uses_lookup(tmp_path):
    values = {"APP_URL": "https://example.org"}
    loader = FragmentLoader(env_lookup=lambda name, default=None: values.get(name, default))
    fragment = write(tmp_path / "app.yaml", """
        url: !env APP_URL
        mail: !env [MAIL_HOST, smtp.local]
        missing: !env UNDEFINED_NAME
    """)

    assert loader.load(fragment) == {
        "url": "https://example.org",
        "mail": "smtp.local",
        "missing": None,
    }


def test_env_tag_defaults_to_process_environment(loader, tmp_path):
    os.environ["APP_NAME"] = "from-process"
    fragment = write(tmp_path / "app.yaml", """
        name: !env APP_NAME
    """)
    assert loader.load(fragment) == {"name": "from-process"}


def test_missing_file(loader, tmp_path):
    with pytest.raises(SourceNotFound) as excinfo:
        loader.load(tmp_path / "absent.yaml")
    assert isinstance(excinfo.value, FileNotFoundError)


def test_directory_is_unreadable_source(loader, tmp_path):
    (tmp_path / "folder.yaml").mkdir()
    with pytest.raises(UnreadableSource):
        loader.load(tmp_path / "folder.yaml")


@pytest.mark.parametrize("name, content", [
    ("list.yaml", "- a\n- b\n"),
    ("scalar.yaml", "just text\n"),
    ("empty.yaml", ""),
    ("broken.yaml", "key: [unclosed\n"),
    ("broken.json", "{not json"),
    ("notes.txt", "key: value\n"),
])
def test_invalid_fragments(loader, tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    with pytest.raises(InvalidFragment):
        loader.load(path)


def test_register_evaluator(loader, tmp_path):
    def evaluate_ini(path):
        pairs = (line.split("=", 1) for line in path.read_text().splitlines() if line)
        return {key.strip(): value.strip() for key, value in pairs}

    loader.register_evaluator("ini", evaluate_ini)
    fragment = write(tmp_path / "mail.ini", """
        host = smtp.local
        port = 25
    """)

    assert loader.is_valid_config_file(fragment)
    assert loader.load(fragment) == {"host": "smtp.local", "port": "25"}


def test_load_directory(loader, tmp_path):
    write(tmp_path / "app.yaml", "name: Demo\n")
    write(tmp_path / "database.yml", "default: mysql\n")
    write(tmp_path / "README.md", "ignored\n")
    write(tmp_path / "nested" / "mail.yaml", "host: smtp\n")

    assert loader.load_directory(tmp_path) == {
        "app": {"name": "Demo"},
        "database": {"default": "mysql"},
    }


def test_same_stem_files_merge_in_name_order(loader, tmp_path):
    (tmp_path / "app.json").write_text(json.dumps({"name": "json", "debug": False}))
    write(tmp_path / "app.yaml", """
        name: yaml
        url: http://localhost
    """)

    assert loader.load_directory(tmp_path) == {
        "app": {"name": "yaml", "debug": False, "url": "http://localhost"},
    }


def test_load_missing_directory(loader, tmp_path):
    assert loader.load_directory(tmp_path / "absent") == {}
    assert loader.load_directory_recursive(tmp_path / "absent") == {}


def test_load_directory_recursive(loader, tmp_path):
    write(tmp_path / "app.yaml", "name: Demo\n")
    write(tmp_path / "services" / "mail.yaml", "host: smtp\n")
    write(tmp_path / "services" / "queue" / "redis.yaml", "port: 6379\n")

    assert loader.load_directory_recursive(tmp_path) == {
        "app": {"name": "Demo"},
        "services": {
            "mail": {"host": "smtp"},
            "queue": {"redis": {"port": 6379}},
        },
    }
    assert loader.load_directory_recursive(tmp_path, prefix="modules") == {
        "modules": {
            "app": {"name": "Demo"},
            "services": {
                "mail": {"host": "smtp"},
                "queue": {"redis": {"port": 6379}},
            },
        },
    }


def test_directory_modification_time(loader, tmp_path):
    assert loader.get_directory_modification_time(tmp_path / "absent") == 0

    top = write(tmp_path / "app.yaml", "name: Demo\n")
    deep = write(tmp_path / "services" / "mail.yaml", "host: smtp\n")
    age_file(top, 100)
    age_file(deep, 50)
    age_file(tmp_path / "services", 200)
    age_file(tmp_path, 200)

    assert loader.get_directory_modification_time(tmp_path) == top.stat().st_mtime
    assert loader.get_directory_modification_time(tmp_path, recursive=True) == deep.stat().st_mtime
    assert loader.get_file_modification_time(tmp_path / "absent.yaml") == 0


def test_removed_fragment_moves_directory_time_forward(loader, tmp_path):
    write(tmp_path / "app.yaml", "name: Demo\n")
    removed = write(tmp_path / "services" / "mail.yaml", "host: smtp\n")
    for path in (tmp_path / "app.yaml", removed, tmp_path / "services", tmp_path):
        age_file(path, 100)
    before = loader.get_directory_modification_time(tmp_path, recursive=True)

    removed.unlink()

    assert loader.get_directory_modification_time(tmp_path, recursive=True) > before
    assert loader.get_directory_modification_time(tmp_path / "services") > before
