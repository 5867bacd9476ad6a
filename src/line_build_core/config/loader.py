"""
line-build-core — runtime config loader.

File: src/line_build_core/config/loader.py

Purpose
- Produce the effective config from four layers: built-in defaults, a TOML
  file, ``LINEBUILD_*`` environment variables, and CLI flags (highest wins).

What should be included in this file
- One environment variable per schema field, named
  ``LINEBUILD_<SECTION>_<FIELD>`` and coerced by the field's declared kind.
- Dotted-path CLI overrides.
- Path fields resolved against the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from line_build_core.config.schema import (
    FieldSpec,
    assert_valid_config,
    default_config,
    iter_fields,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "linebuild.toml"
ENV_PREFIX: Final[str] = "LINEBUILD_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load the effective config: CLI > env > file > defaults.

    ``cli_overrides`` maps dotted paths (``"retry.max_attempts"``) to values;
    ``None`` values are ignored. A missing default ``linebuild.toml`` is not an
    error; a missing explicit ``config_path`` is.
    """

    path = (
        Path.cwd() / DEFAULT_CONFIG_FILE
        if config_path is None
        else Path(config_path).expanduser()
    ).resolve()

    # File problems are reported on their own before overrides are applied.
    from_file = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )
    layered = merge_config(from_file, env_overrides(os.environ if environ is None else environ))
    layered = merge_config(layered, _dotted_overrides(cli_overrides or {}))
    return normalize_paths(assert_valid_config(layered), base_dir=path.parent)


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``LINEBUILD_*`` values for every schema field that has one set."""

    layer: dict[str, Any] = {}
    for section, spec in iter_fields():
        name = env_var_name(section, spec.name)
        if name in environ:
            value = _from_env(environ[name].strip(), spec, name, f"{section}.{spec.name}")
            layer.setdefault(section, {})[spec.name] = value
    return layer


def env_var_name(section: str, field_name: str) -> str:
    return f"{ENV_PREFIX}{section.upper()}_{field_name.upper()}"


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative ``path`` fields against ``base_dir``; returns a copy."""

    resolved = merge_config({}, config)
    for section, spec in iter_fields():
        values = resolved.get(section)
        if spec.kind != "path" or not isinstance(values, dict):
            continue
        raw = values.get(spec.name)
        if isinstance(raw, str):
            candidate = Path(os.path.expandvars(raw)).expanduser()
            absolute = candidate if candidate.is_absolute() else base_dir / candidate
            values[spec.name] = Path(os.path.normpath(absolute)).as_posix()
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON of the redacted config."""

    return json.dumps(
        redact_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _from_env(text: str, spec: FieldSpec, name: str, path: str) -> object:
    if spec.kind == "int":
        try:
            return int(text)
        except ValueError:
            raise ConfigLoadError(f"{name} -> {path} must be an integer") from None
    if spec.kind in ("float", "positive_float"):
        try:
            return float(text)
        except ValueError:
            raise ConfigLoadError(f"{name} -> {path} must be a number") from None
    if spec.kind == "bool":
        lowered = text.lower()
        if lowered in _TRUTHY or lowered in _FALSY:
            return lowered in _TRUTHY
        raise ConfigLoadError(
            f"{name} -> {path} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    return text


def _dotted_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        value = overrides[key]
        if value is None:
            continue
        *parents, leaf = [part for part in key.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        node = layer
        for part in parents:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise ConfigLoadError(f"conflicting CLI override key {key!r}")
            node = child
        node[leaf] = value
    return layer


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_overrides",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
