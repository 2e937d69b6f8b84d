"""
Configuration for toolhub.

Tunables (retention window, size limits, operation timeout) live in
toolhub.toml, located next to the project root or at TOOLHUB_CONFIG_PATH.
Deployment values such as TOOLHUB_STORAGE_ROOT or APP_ENV come from the
process environment, optionally seeded from a .env file.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

_UNSET = object()

CONFIG_FILE = Path(
    os.environ.get("TOOLHUB_CONFIG_PATH", Path(__file__).resolve().parents[2] / "toolhub.toml")
)


def _load(path: Path) -> dict:
    if not path.is_file():
        raise RuntimeError(f"Configuration file not found: {path}")
    with path.open("rb") as fh:
        return tomllib.load(fh)


_settings = _load(CONFIG_FILE)


def get(*keys: str, fallback: Any = _UNSET) -> Any:
    """Value at a nested key path, e.g. get("delivery", "retention_seconds") -> 240.

    A missing key raises RuntimeError unless ``fallback`` is given.
    """
    node: Any = _settings
    for depth, key in enumerate(keys):
        if isinstance(node, dict) and key in node:
            node = node[key]
            continue
        if fallback is not _UNSET:
            return fallback
        missing = ".".join(keys[: depth + 1])
        raise RuntimeError(f"Missing required config key '{missing}' in {CONFIG_FILE.name}")
    return node


def get_path(*keys: str) -> Path:
    """A path-valued key. Relative values resolve against the config file's directory."""
    path = Path(get(*keys)).expanduser()
    return path if path.is_absolute() else CONFIG_FILE.parent / path


def get_env(name: str) -> str | None:
    value = os.environ.get(name)
    return value or None


def require_env(name: str) -> str:
    """Environment variable that must be set and non-empty."""
    value = get_env(name)
    if value is None:
        raise RuntimeError(f"Required environment variable '{name}' is not set. Add it to your .env file.")
    return value
