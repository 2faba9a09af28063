"""Configuration loader — reads optional YAML config and merges with defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from worktimer.errors import InvalidInputError
from worktimer.scope import is_valid_scope

CONFIG_PATH = Path("~/.config/worktimer/config.yaml")

DEFAULTS = {
    "db_path": "~/.local/share/worktimer/worktimer.db",
    "default_scope": None,
    "port": 8788,
    "log_level": "WARNING",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class WorkTimerConfig:
    db_path: Path
    default_scope: str | None
    port: int
    log_level: str


def _coerce(key: str, raw: str) -> object:
    if key == "port":
        try:
            port = int(raw)
        except ValueError:
            raise InvalidInputError(f"port must be an integer, got {raw!r}") from None
        if not 0 < port < 65536:
            raise InvalidInputError(f"port out of range: {port}")
        return port
    if key == "log_level":
        level = raw.upper()
        if level not in LOG_LEVELS:
            raise InvalidInputError(f"unknown log level: {raw}")
        return level
    if key == "default_scope":
        if raw.lower() in ("", "none", "null"):
            return None
        if not is_valid_scope(raw):
            raise InvalidInputError(f"invalid scope: {raw}")
    return raw


def set_config_value(key: str, raw: str, config_path: Path | None = None) -> object:
    """Validate one setting and write it to the YAML file, keeping the rest.

    Returns the stored (coerced) value. Unknown keys are rejected.
    """
    if key not in DEFAULTS:
        raise InvalidInputError(
            f"unknown config key: {key} (expected one of {', '.join(DEFAULTS)})"
        )
    value = _coerce(key, raw)

    config_path = (config_path or CONFIG_PATH).expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    stored: dict = {}
    if config_path.is_file():
        with open(config_path) as f:
            loaded = yaml.safe_load(f)
        if isinstance(loaded, dict):
            stored = loaded

    if value is None:
        stored.pop(key, None)
    else:
        stored[key] = value
    with open(config_path, "w") as f:
        yaml.safe_dump(stored, f, default_flow_style=False, sort_keys=True)
    return value



def load_config(config_path: Path | None = None) -> WorkTimerConfig:
    """Load config from ~/.config/worktimer/config.yaml, merged with defaults.

    Expand ~ in db_path and create its parent directory.
    If no config file exists, return defaults (don't error).
    """
    if config_path is None:
        config_path = CONFIG_PATH

    config_path = config_path.expanduser()

    merged = dict(DEFAULTS)

    if config_path.is_file():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
        if isinstance(user_config, dict):
            for key in DEFAULTS:
                if key in user_config:
                    merged[key] = user_config[key]

    db_path = Path(merged["db_path"]).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    default_scope = merged["default_scope"]

    return WorkTimerConfig(
        db_path=db_path,
        default_scope=str(default_scope) if default_scope else None,
        port=int(merged["port"]),
        log_level=str(merged["log_level"]).upper(),
    )
