"""
line-build-core — unit tests for config schema and loader

File: tests/unit/config/test_linebuild_config.py

Purpose
- Validate strict schema checks and deterministic loading from defaults, TOML,
  env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var naming and type coercion, including optional keys absent from defaults.
- Embedded secrets rejected; redaction of sensitive keys.
- Path normalization relative to the config file.

Functional requirements
- Works without provider keys or network.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from line_build_core.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_overrides,
    env_var_name,
    load_config,
)
from line_build_core.config.schema import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    is_sensitive_key,
    iter_fields,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")
    return path


def _issues(payload: object) -> dict[str, str]:
    return {issue.path: issue.message for issue in validate_config(payload).issues}


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config == default_config()


def test_default_config_returns_independent_copies() -> None:
    first = default_config()
    first["retry"]["max_attempts"] = 99

    assert default_config()["retry"]["max_attempts"] == 3


def test_validate_reports_paths_for_every_problem() -> None:
    payload = default_config()
    payload["retry"]["max_attempts"] = "three"  # type: ignore[typeddict-item]
    payload["health"]["error_threshold"] = 0
    payload["reasoning"]["provider"] = "openai"
    payload["validation"]["extra"] = 1  # type: ignore[typeddict-unknown-key]
    payload["reasoning"]["api_key"] = "sk-live"  # type: ignore[typeddict-unknown-key]
    del payload["observability"]["log_to_stderr"]  # type: ignore[misc]

    issues = _issues(payload)

    assert issues == {
        "retry.max_attempts": "expected integer, got str",
        "health.error_threshold": "must be >= 1",
        "reasoning.provider": "invalid value 'openai'; expected one of: anthropic, none",
        "validation.extra": "unknown field",
        "reasoning.api_key": (
            "embedded secret values are forbidden; use an *_env key with an env var name"
        ),
        "observability.log_to_stderr": "missing required field",
    }


def test_validate_cross_checks_retry_delays_and_schema_version() -> None:
    payload = default_config()
    payload["retry"]["initial_delay_seconds"] = 2.0
    payload["retry"]["max_delay_seconds"] = 1.0
    payload["meta"]["schema_version"] = 2

    issues = _issues(payload)

    assert issues["retry.max_delay_seconds"] == "must be >= retry.initial_delay_seconds"
    assert issues["meta.schema_version"] == migration_guidance(2)
    assert "newer than supported" in migration_guidance(2)


def test_log_level_is_normalized_to_upper_case() -> None:
    payload = merge_config(default_config(), {"observability": {"log_level": "debug"}})

    assert assert_valid_config(payload)["observability"]["log_level"] == "DEBUG"


def test_assert_valid_config_raises_with_rendered_issues() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config({"meta": {"schema_version": 1}})

    assert str(excinfo.value).startswith("invalid config:\n- health: missing required field")
    assert len(excinfo.value.issues) == 6


def test_redact_config_masks_sensitive_keys_only() -> None:
    redacted = redact_config(
        {"reasoning": {"api_key_env": "ANTHROPIC_API_KEY", "apiKey": "sk-1"}, "token": "abc"}
    )

    assert redacted == {
        "reasoning": {"api_key_env": "ANTHROPIC_API_KEY", "apiKey": "<redacted>"},
        "token": "<redacted>",
    }


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "linebuild.toml",
        """
[retry]
max_attempts = 4
initial_delay_seconds = 0.2

[validation]
max_concurrent_semantic = 2
""",
    )
    environ = {
        "LINEBUILD_RETRY_MAX_ATTEMPTS": "5",
        "LINEBUILD_VALIDATION_MAX_CONCURRENT_SEMANTIC": "6",
        "LINEBUILD_SEMANTIC_MAX_DELAY_SECONDS": "2",
    }

    config = load_config(
        config_path,
        environ=environ,
        cli_overrides={"validation.max_concurrent_semantic": 9, "health.error_threshold": None},
    )

    assert config["retry"]["max_attempts"] == 5
    assert config["retry"]["initial_delay_seconds"] == 0.2
    assert config["retry"]["max_delay_seconds"] == 5.0
    assert config["validation"]["max_concurrent_semantic"] == 9
    assert config["semantic"]["max_delay_seconds"] == 2.0
    assert isinstance(config["semantic"]["max_delay_seconds"], float)
    assert config["health"]["error_threshold"] == 3


def test_loader_env_coerces_booleans_and_optional_keys(tmp_path: Path) -> None:
    config = load_config(
        _write_config(tmp_path / "linebuild.toml", ""),
        environ={
            "LINEBUILD_VALIDATION_STRUCTURED_ONLY": "yes",
            "LINEBUILD_REASONING_PROVIDER": "none",
            "LINEBUILD_SEMANTIC_REQUEST_TIMEOUT_SECONDS": "12",
            "LINEBUILD_OBSERVABILITY_LOG_FILE": "logs/run.jsonl",
        },
    )

    assert config["validation"]["structured_only"] is True
    assert config["reasoning"]["provider"] == "none"
    assert config["semantic"]["request_timeout_seconds"] == 12.0
    assert config["observability"]["log_file"] == (tmp_path / "logs" / "run.jsonl").resolve().as_posix()


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("LINEBUILD_RETRY_MAX_ATTEMPTS", "many", "must be an integer"),
        ("LINEBUILD_RETRY_MULTIPLIER", "fast", "must be a number"),
        ("LINEBUILD_OBSERVABILITY_REDACT_SECRETS", "maybe", "must be a boolean"),
    ],
)
def test_loader_rejects_uncoercible_env(
    tmp_path: Path, name: str, value: str, message: str
) -> None:
    config_path = _write_config(tmp_path / "linebuild.toml", "")

    with pytest.raises(ConfigLoadError, match=message):
        load_config(config_path, environ={name: value})


def test_loader_validates_after_overrides(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "linebuild.toml", "")

    with pytest.raises(ConfigValidationError, match="validation.max_concurrent_semantic"):
        load_config(config_path, environ={}, cli_overrides={"validation.max_concurrent_semantic": 0})


def test_loader_file_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})

    broken = _write_config(tmp_path / "broken.toml", "[retry\nmax_attempts = 1")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(broken, environ={})

    secret = _write_config(tmp_path / "secret.toml", '[reasoning]\napi_key = "sk-ant-123"')
    with pytest.raises(ConfigValidationError, match="embedded secret values are forbidden"):
        load_config(secret, environ={})


def test_missing_default_file_is_not_an_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    assert load_config(environ={}) == default_config()


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config = load_config(_write_config(tmp_path / "linebuild.toml", ""), environ={})

    first = dump_effective_config(config)
    second = dump_effective_config(load_config(tmp_path / "linebuild.toml", environ={}))

    assert first == second
    assert json.loads(first)["reasoning"]["api_key_env"] == "ANTHROPIC_API_KEY"


@pytest.mark.parametrize(
    ("key", "sensitive"),
    [
        ("api_key", True),
        ("authToken", True),
        ("client-secret", True),
        ("api_key_env", False),
        ("max_tokens", False),
        ("redact_secrets", False),
        ("model", False),
    ],
)
def test_sensitive_key_detection(key: str, sensitive: bool) -> None:
    assert is_sensitive_key(key) is sensitive


def test_every_schema_field_has_an_env_var() -> None:
    names = {env_var_name(section, spec.name) for section, spec in iter_fields()}

    assert "LINEBUILD_HEALTH_ERROR_THRESHOLD" in names
    assert "LINEBUILD_REASONING_TIMEOUT_SECONDS" in names
    assert env_overrides({"LINEBUILD_HEALTH_ERROR_THRESHOLD": " 5 ", "UNRELATED": "x"}) == {
        "health": {"error_threshold": 5}
    }
