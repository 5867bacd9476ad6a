"""
line-build-core — configuration schema and validation.

File: src/line_build_core/config/schema.py

Purpose
- Declare every configuration section as a table of typed fields and validate
  payloads against it.

What should be included in this file
- Defaults, schema versioning, and migration guidance.
- One field table (``SECTIONS``) shared by validation and the env-var loader.
- Deterministic deep merge and redaction helpers.

Functional requirements
- Validation returns every problem at once as (dotted path, message) pairs.
- Secrets are never embedded; only ``*_env`` keys naming an environment variable.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from line_build_core.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_HEALTH_ERROR_THRESHOLD,
    DEFAULT_REASONING_MAX_TOKENS,
    DEFAULT_REASONING_MODEL,
    DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
    DEFAULT_RETRY_MULTIPLIER,
    DEFAULT_SEMANTIC_MAX_CONCURRENCY,
    SEMANTIC_RETRY_MAX_ATTEMPTS,
    SEMANTIC_RETRY_MAX_DELAY_SECONDS,
)

REASONING_PROVIDERS: Final[tuple[str, ...]] = ("anthropic", "none")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

FieldKind = Literal["int", "float", "positive_float", "bool", "text", "choice", "env_name", "path"]


class MetaConfig(TypedDict):
    schema_version: int


class RetryConfig(TypedDict):
    max_attempts: int
    initial_delay_seconds: float
    max_delay_seconds: float
    multiplier: float


class SemanticConfig(TypedDict):
    max_attempts: int
    initial_delay_seconds: float
    max_delay_seconds: float
    request_timeout_seconds: NotRequired[float]


class ValidationConfig(TypedDict):
    max_concurrent_semantic: int
    structured_only: bool


class HealthConfig(TypedDict):
    error_threshold: int


class ReasoningConfig(TypedDict):
    provider: Literal["anthropic", "none"]
    model: str
    max_tokens: int
    api_key_env: str
    timeout_seconds: NotRequired[float]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stderr: bool
    redact_secrets: bool
    log_file: NotRequired[str]


class LineBuildConfig(TypedDict):
    meta: MetaConfig
    retry: RetryConfig
    semantic: SemanticConfig
    validation: ValidationConfig
    health: HealthConfig
    reasoning: ReasoningConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[LineBuildConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "retry": {
        "max_attempts": DEFAULT_RETRY_MAX_ATTEMPTS,
        "initial_delay_seconds": DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
        "max_delay_seconds": DEFAULT_RETRY_MAX_DELAY_SECONDS,
        "multiplier": DEFAULT_RETRY_MULTIPLIER,
    },
    "semantic": {
        "max_attempts": SEMANTIC_RETRY_MAX_ATTEMPTS,
        "initial_delay_seconds": DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
        "max_delay_seconds": SEMANTIC_RETRY_MAX_DELAY_SECONDS,
    },
    "validation": {
        "max_concurrent_semantic": DEFAULT_SEMANTIC_MAX_CONCURRENCY,
        "structured_only": False,
    },
    "health": {"error_threshold": DEFAULT_HEALTH_ERROR_THRESHOLD},
    "reasoning": {
        "provider": "anthropic",
        "model": DEFAULT_REASONING_MODEL,
        "max_tokens": DEFAULT_REASONING_MAX_TOKENS,
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stderr": True,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One key inside a config section."""

    name: str
    kind: FieldKind
    required: bool = True
    minimum: int | float | None = None
    choices: tuple[str, ...] = ()
    upper: bool = False


SECTIONS: Final[dict[str, tuple[FieldSpec, ...]]] = {
    "meta": (FieldSpec("schema_version", "int", minimum=1),),
    "retry": (
        FieldSpec("max_attempts", "int", minimum=1),
        FieldSpec("initial_delay_seconds", "float", minimum=0.0),
        FieldSpec("max_delay_seconds", "float", minimum=0.0),
        FieldSpec("multiplier", "float", minimum=1.0),
    ),
    "semantic": (
        FieldSpec("max_attempts", "int", minimum=1),
        FieldSpec("initial_delay_seconds", "float", minimum=0.0),
        FieldSpec("max_delay_seconds", "float", minimum=0.0),
        FieldSpec("request_timeout_seconds", "positive_float", required=False),
    ),
    "validation": (
        FieldSpec("max_concurrent_semantic", "int", minimum=1),
        FieldSpec("structured_only", "bool"),
    ),
    "health": (FieldSpec("error_threshold", "int", minimum=1),),
    "reasoning": (
        FieldSpec("provider", "choice", choices=REASONING_PROVIDERS),
        FieldSpec("model", "text"),
        FieldSpec("max_tokens", "int", minimum=1),
        FieldSpec("api_key_env", "env_name"),
        FieldSpec("timeout_seconds", "positive_float", required=False),
    ),
    "observability": (
        FieldSpec("log_level", "choice", choices=LOG_LEVELS, upper=True),
        FieldSpec("log_to_stderr", "bool"),
        FieldSpec("redact_secrets", "bool"),
        FieldSpec("log_file", "path", required=False),
    ),
}

_ENV_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[^a-z0-9]+")

# Whole words that mark a key as secret-bearing, plus multi-word phrases.
_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "apikey", "credential", "credentials", "auth", "passphrase"}
)
_SECRET_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
)

_INVALID: Final = object()


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


def default_config() -> LineBuildConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade linebuild.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade the line-build-core runtime"
        )
    return "schema version is current"


def iter_fields() -> list[tuple[str, FieldSpec]]:
    """Every (section, field) pair in declaration order."""

    return [(section, spec) for section, specs in SECTIONS.items() for spec in specs]


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; keys come out sorted."""

    merged = {key: _clone(base[key]) for key in sorted(base)}
    for key in sorted(overlay):
        value = overlay[key]
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = _clone(value)
    return dict(sorted(merged.items()))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against :data:`SECTIONS` and collect every issue."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=issues.items())

    _check_keys(config, SECTIONS.keys(), SECTIONS.keys(), "", issues)

    normalized: dict[str, Any] = {}
    for section, specs in SECTIONS.items():
        if section not in config:
            continue
        raw = config[section]
        if not isinstance(raw, Mapping):
            issues.add(section, f"expected object, got {type(raw).__name__}")
            continue
        _check_keys(
            raw,
            [spec.name for spec in specs],
            [spec.name for spec in specs if spec.required],
            section,
            issues,
        )
        values: dict[str, Any] = {}
        for spec in specs:
            if spec.name not in raw:
                continue
            parsed = _coerce(spec, raw[spec.name], f"{section}.{spec.name}", issues)
            if parsed is not _INVALID:
                values[spec.name] = parsed
        normalized[section] = values

    version = normalized.get("meta", {}).get("schema_version")
    if version is not None and version != CONFIG_SCHEMA_VERSION:
        issues.add("meta.schema_version", migration_guidance(version))

    retry = normalized.get("retry", {})
    initial = retry.get("initial_delay_seconds")
    ceiling = retry.get("max_delay_seconds")
    if initial is not None and ceiling is not None and ceiling < initial:
        issues.add("retry.max_delay_seconds", "must be >= retry.initial_delay_seconds")

    if issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with secret-looking keys replaced by ``"<redacted>"``."""

    if not isinstance(config, Mapping):
        return {}
    return {
        key: "<redacted>" if is_sensitive_key(key) else _redact(config[key])
        for key in sorted(config)
    }


def is_sensitive_key(key: str) -> bool:
    """True for keys like ``api_key`` or ``authToken``; ``*_env`` keys never count."""

    words = _SEPARATORS.sub("_", _WORD_BOUNDARY.sub(r"\1_\2", key.strip()).lower()).strip("_")
    if words.endswith("_env"):
        return False
    if any(phrase in words for phrase in _SECRET_PHRASES):
        return True
    return any(word in _SECRET_WORDS for word in words.split("_"))


def _check_keys(
    payload: Mapping[str, object],
    allowed: Iterable[str],
    required: Iterable[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    allowed_names = set(allowed)
    prefix = f"{path}." if path else ""
    for key in sorted(str(name) for name in payload):
        if key in allowed_names:
            continue
        if is_sensitive_key(key):
            issues.add(
                prefix + key,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(prefix + key, "unknown field")
    for key in sorted(set(required) - set(payload)):
        issues.add(prefix + key, "missing required field")


def _coerce(spec: FieldSpec, value: object, path: str, issues: _IssueCollector) -> object:
    kind = spec.kind
    if kind == "bool":
        if isinstance(value, bool):
            return value
        issues.add(path, f"expected boolean, got {type(value).__name__}")
        return _INVALID

    if kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            issues.add(path, f"expected integer, got {type(value).__name__}")
            return _INVALID
        return _at_least(spec, value, path, issues)

    if kind in ("float", "positive_float"):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            issues.add(path, f"expected number, got {type(value).__name__}")
            return _INVALID
        number = float(value)
        if not math.isfinite(number):
            issues.add(path, "must be finite")
            return _INVALID
        if kind == "positive_float" and number <= 0.0:
            issues.add(path, "must be > 0")
            return _INVALID
        return _at_least(spec, number, path, issues)

    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return _INVALID
    text = value.strip().upper() if spec.upper else value.strip()
    if not text:
        issues.add(path, "must not be empty")
        return _INVALID
    if kind == "choice" and text not in spec.choices:
        expected = ", ".join(sorted(spec.choices))
        issues.add(path, f"invalid value {text!r}; expected one of: {expected}")
        return _INVALID
    if kind == "env_name" and not _ENV_NAME.fullmatch(text):
        issues.add(path, "must be an env var name (example: ANTHROPIC_API_KEY)")
        return _INVALID
    if kind == "path" and "\x00" in text:
        issues.add(path, "must not contain NUL bytes")
        return _INVALID
    return text


def _at_least(spec: FieldSpec, value: int | float, path: str, issues: _IssueCollector) -> object:
    if spec.minimum is not None and value < spec.minimum:
        issues.add(path, f"must be >= {spec.minimum}")
        return _INVALID
    return value


def _clone(value: object) -> Any:
    if isinstance(value, Mapping):
        return merge_config({}, value)
    return copy.deepcopy(value)


def _redact(value: object) -> object:
    if isinstance(value, Mapping):
        return redact_config(value)
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


__all__ = [
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "FieldSpec",
    "LOG_LEVELS",
    "LineBuildConfig",
    "REASONING_PROVIDERS",
    "SECTIONS",
    "assert_valid_config",
    "default_config",
    "is_sensitive_key",
    "iter_fields",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
