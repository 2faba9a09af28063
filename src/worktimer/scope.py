"""Scope detection — derive a project scope string from the working directory.

Scopes look like "project:<name>" or "global". Detection order:
  1. find the git root (if any) by walking up
  2. read a project name from a marker file in that directory
  3. fall back to the git directory name
  4. "global"
"""

from __future__ import annotations

import json
import re
import tomllib
from pathlib import Path

GLOBAL_SCOPE = "global"
_PROJECT_PREFIX = "project:"
_VALID_NAME = re.compile(r"^[a-z0-9\-_.]+$")


def find_git_root(start: Path) -> Path | None:
    """Walk up from start until a directory containing .git is found."""
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


def _name_from_package_json(text: str) -> str | None:
    try:
        pkg = json.loads(text)
    except json.JSONDecodeError:
        return None
    name = pkg.get("name") if isinstance(pkg, dict) else None
    if isinstance(name, str) and name != "undefined" and not name.startswith("@types/"):
        return name
    return None


def _table(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _str_or_none(value) -> str | None:
    return value if isinstance(value, str) else None


def _name_from_pyproject(text: str) -> str | None:
    data = tomllib.loads(text)
    return _str_or_none(_table(data, "project").get("name")) or _str_or_none(
        _table(_table(data, "tool"), "poetry").get("name")
    )


def _name_from_cargo(text: str) -> str | None:
    return _str_or_none(_table(tomllib.loads(text), "package").get("name"))


def _name_from_go_mod(text: str) -> str | None:
    match = re.search(r"^module\s+(\S+)", text, re.MULTILINE)
    return match.group(1).rsplit("/", 1)[-1] if match else None


# Marker files in priority order
_PROJECT_MARKERS = (
    ("package.json", _name_from_package_json),
    ("Cargo.toml", _name_from_cargo),
    ("pyproject.toml", _name_from_pyproject),
    ("go.mod", _name_from_go_mod),
)


def sanitize_project_name(name: str) -> str:
    name = name.lower()
    name = re.sub(r"^@", "", name)
    name = name.replace("/", "-")
    name = re.sub(r"[^a-z0-9\-_.]", "", name)
    return name.strip("-")


def detect_scope_with_details(cwd: Path | None = None) -> dict:
    """Detect the scope and report how it was found.

    Returns {scope, project_name, git_root, source}, where source is the
    marker file name, "git", or "none".
    """
    directory = Path(cwd) if cwd is not None else Path.cwd()
    git_root = find_git_root(directory)
    search_dir = git_root or directory

    for filename, extract in _PROJECT_MARKERS:
        marker = search_dir / filename
        if not marker.is_file():
            continue
        try:
            name = extract(marker.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
            continue
        if name and sanitize_project_name(name):
            return {
                "scope": _PROJECT_PREFIX + sanitize_project_name(name),
                "project_name": name,
                "git_root": git_root,
                "source": filename,
            }

    if git_root is not None and sanitize_project_name(git_root.name):
        return {
            "scope": _PROJECT_PREFIX + sanitize_project_name(git_root.name),
            "project_name": git_root.name,
            "git_root": git_root,
            "source": "git",
        }

    return {"scope": GLOBAL_SCOPE, "project_name": None, "git_root": None, "source": "none"}


def detect_scope(cwd: Path | None = None) -> str:
    """Scope string like "project:myapp" for cwd, or "global"."""
    return detect_scope_with_details(cwd)["scope"]


def is_valid_scope(scope: str) -> bool:
    if scope == GLOBAL_SCOPE:
        return True
    if scope.startswith(_PROJECT_PREFIX):
        return bool(_VALID_NAME.match(scope[len(_PROJECT_PREFIX):]))
    return False


def parse_scope(scope: str) -> dict:
    """Split a scope into {type, project_name}; malformed scopes read as global."""
    if scope.startswith(_PROJECT_PREFIX) and len(scope) > len(_PROJECT_PREFIX):
        return {"type": "project", "project_name": scope[len(_PROJECT_PREFIX):]}
    return {"type": "global", "project_name": None}
