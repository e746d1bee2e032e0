"""Load EtwStreamConfig from etwstream.yaml / etwstream.toml if present.

Merges file config with explicit overrides. Overrides win.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml

from etwstream._errors import ConfigError
from etwstream.config import EtwStreamConfig
from etwstream.providers import TraceEventLevel

_KNOWN_KEYS = frozenset({
    "backend", "trace_file", "session_prefix", "default_level", "eager_start",
    "worker_join_timeout", "buffer_timespan", "buffer_count", "event_log_size",
})

CONFIG_FILENAMES = ("etwstream.yaml", "etwstream.yml", "etwstream.toml")


def load_config(root: Path, **overrides: Any) -> EtwStreamConfig:
    """Load EtwStreamConfig for *root*, merging the first config file found.

    Raises:
        ConfigError: If the config file is malformed or a value has the
            wrong type.

    """
    root = Path(root)
    file_config = read_config_file(root)
    merged = {**file_config, **{k: v for k, v in overrides.items() if v is not None}}
    try:
        return EtwStreamConfig(root=root, **_normalize(merged))
    except (TypeError, ValueError, KeyError) as exc:
        msg = f"invalid etwstream configuration: {exc}"
        raise ConfigError(msg) from exc


def read_config_file(root: Path) -> dict[str, Any]:
    """Read the config file in *root*.  Returns an empty dict if there is none."""
    for name in CONFIG_FILENAMES:
        path = root / name
        if not path.is_file():
            continue
        if path.suffix == ".toml":
            return _parse_toml(path)
        return _parse_yaml(path)
    return {}


def _parse_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        msg = f"{path}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_section(path, data)


def _parse_toml(path: Path) -> dict[str, Any]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"{path}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_section(path, data)


def _flatten_section(path: Path, data: object) -> dict[str, Any]:
    """Extract etwstream.* keys and known top-level keys."""
    if not isinstance(data, dict):
        msg = f"{path}: expected a mapping at the top level"
        raise ConfigError(msg)
    result: dict[str, Any] = {}
    for k, v in data.items():
        if k in _KNOWN_KEYS:
            result[k] = v
    section = data.get("etwstream")
    if isinstance(section, dict):
        for k, v in section.items():
            if k not in _KNOWN_KEYS:
                msg = f"{path}: unknown setting etwstream.{k}"
                raise ConfigError(msg)
            result[k] = v
    return result


def _normalize(values: dict[str, Any]) -> dict[str, Any]:
    out = dict(values)
    if "trace_file" in out and not isinstance(out["trace_file"], Path):
        out["trace_file"] = Path(str(out["trace_file"]))
    level = out.get("default_level")
    if isinstance(level, str):
        out["default_level"] = TraceEventLevel[level.upper()]
    elif isinstance(level, int):
        out["default_level"] = TraceEventLevel(level)
    for key in ("worker_join_timeout", "buffer_timespan"):
        if key in out:
            out[key] = float(out[key])
    for key in ("buffer_count", "event_log_size"):
        if key in out:
            out[key] = int(out[key])
    return out
