"""Tests for worktimer.config module."""

from pathlib import Path

import pytest
import yaml

from worktimer.config import DEFAULTS, WorkTimerConfig, load_config, set_config_value
from worktimer.errors import InvalidInputError


def test_load_config_no_file(tmp_path):
    """When config file doesn't exist, return defaults without error."""
    config = load_config(config_path=tmp_path / "nonexistent.yaml")
    assert isinstance(config, WorkTimerConfig)
    assert config.default_scope is None
    assert config.port == 8788
    assert config.log_level == "WARNING"


def test_load_config_default_db_path_expanded(tmp_path):
    """Default paths should be expanded (no ~ remaining)."""
    config = load_config(config_path=tmp_path / "nonexistent.yaml")
    assert "~" not in str(config.db_path)
    assert config.db_path == Path(DEFAULTS["db_path"]).expanduser()


def test_load_config_partial_override(tmp_path):
    """A partial config file merges with defaults correctly."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("port: 9999\n")

    config = load_config(config_path=config_file)
    assert config.port == 9999
    # Other defaults still apply
    assert config.default_scope is None
    assert config.db_path == Path(DEFAULTS["db_path"]).expanduser()


def test_load_config_default_scope_and_log_level(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("default_scope: project:myapp\nlog_level: debug\n")

    config = load_config(config_path=config_file)
    assert config.default_scope == "project:myapp"
    assert config.log_level == "DEBUG"


def test_load_config_custom_db_path(tmp_path):
    """Custom db_path from config is expanded."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("db_path: ~/my-data/worktimer.db\n")

    config = load_config(config_path=config_file)
    assert config.db_path == Path("~/my-data/worktimer.db").expanduser()


def test_load_config_unknown_keys_ignored(tmp_path):
    """Unknown keys in the YAML file are silently ignored."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("unknown_key: some_value\nport: 1234\n")

    config = load_config(config_path=config_file)
    assert config.port == 1234
    assert not hasattr(config, "unknown_key")


def test_load_config_creates_db_parent_dir(tmp_path):
    """load_config should create parent directories for db_path."""
    config_file = tmp_path / "config.yaml"
    db_dir = tmp_path / "deep" / "nested" / "dir"
    config_file.write_text(f"db_path: {db_dir}/worktimer.db\n")

    config = load_config(config_path=config_file)
    assert config.db_path.parent.exists()
    assert config.db_path.parent == db_dir


def test_load_config_empty_yaml(tmp_path):
    """An empty YAML file should return defaults."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")

    config = load_config(config_path=config_file)
    assert config.port == 8788
    assert config.default_scope is None


def test_set_config_value_preserves_other_keys(tmp_path):
    config_file = tmp_path / "sub" / "config.yaml"
    assert set_config_value("port", "7000", config_path=config_file) == 7000
    set_config_value("default_scope", "project:demo", config_path=config_file)

    saved = yaml.safe_load(config_file.read_text())
    assert saved == {"port": 7000, "default_scope": "project:demo"}
    assert load_config(config_path=config_file).port == 7000


def test_set_config_value_normalises_log_level(tmp_path):
    config_file = tmp_path / "config.yaml"
    assert set_config_value("log_level", "debug", config_path=config_file) == "DEBUG"
    assert load_config(config_path=config_file).log_level == "DEBUG"


def test_set_config_value_clears_default_scope(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("default_scope: project:old\nport: 9000\n")
    assert set_config_value("default_scope", "none", config_path=config_file) is None
    assert yaml.safe_load(config_file.read_text()) == {"port": 9000}


@pytest.mark.parametrize(
    "key, value",
    [
        ("colour", "blue"),
        ("port", "eighty"),
        ("port", "70000"),
        ("log_level", "chatty"),
        ("default_scope", "myapp"),
    ],
)
def test_set_config_value_rejects_bad_input(tmp_path, key, value):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("port: 9000\n")
    with pytest.raises(InvalidInputError):
        set_config_value(key, value, config_path=config_file)
    assert config_file.read_text() == "port: 9000\n"
