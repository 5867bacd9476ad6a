"""Command-line interface router for line-build-core."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from line_build_core.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from line_build_core.domain.models import LineBuild, ValidationRule
from line_build_core.graph.guard import (
    CycleError,
    dangling_dependencies,
    find_cycles,
    validate_new_edge,
)
from line_build_core.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    setup_structured_logging,
)
from line_build_core.reasoning.anthropic_client import AnthropicReasoningClient
from line_build_core.reasoning.base import ReasoningClient, ReasoningProviderError
from line_build_core.reliability.retry import RetryPolicy
from line_build_core.ui.render import (
    CLIRenderer,
    create_renderer,
    render_report,
    render_rule_library,
)
from line_build_core.validation.cook_time import default_semantic_rules
from line_build_core.validation.orchestrator import ValidationSettings, validate_build
from line_build_core.validation.rule_library import RuleLibraryError, load_rule_library
from line_build_core.validation.semantic import semantic_rules


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linebuild",
        description=(
            "line-build-core: dependency guard and rule validation for kitchen line builds.\n\n"
            "Common workflows:\n"
            "  linebuild validate build.json --rules rules.yaml\n"
            "  linebuild rules rules.yaml\n"
            "  linebuild check-edge build.json step-3 step-1\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to linebuild TOML config (default: ./linebuild.toml if present).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument("--json", action="store_true", help="Emit JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate a line build against rule libraries",
        description=(
            "Run structured rules, then semantic rules when a reasoning provider is\n"
            "configured. Without --rules the built-in semantic rules are used.\n\n"
            "Examples:\n"
            "  linebuild validate build.json --rules rules.yaml\n"
            "  linebuild validate build.json --rules rules.yaml --structured-only\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("build_path", help="Line build JSON file")
    validate_parser.add_argument(
        "--rules",
        dest="rule_paths",
        action="append",
        default=None,
        help="Rule library (.yaml/.yml/.json); repeatable.",
    )
    validate_parser.add_argument(
        "--structured-only",
        action="store_true",
        default=None,
        help="Skip semantic rules.",
    )
    validate_parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Override validation.max_concurrent_semantic.",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # rules ---------------------------------------------------------------
    rules_parser = subparsers.add_parser(
        "rules",
        parents=[common],
        help="Lint and list rule libraries",
        description=(
            "Load each rule library, report every malformed rule, and list the rest.\n\n"
            "Examples:\n"
            "  linebuild rules rules.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    rules_parser.add_argument("rule_paths", nargs="+", help="Rule library files")
    rules_parser.set_defaults(handler=_cmd_rules)

    # check-edge ----------------------------------------------------------
    edge_parser = subparsers.add_parser(
        "check-edge",
        parents=[common],
        help="Check whether a unit may depend on the given units",
        description=(
            "Exit 0 when the dependency set is admissible, 1 with a reason otherwise.\n\n"
            "Examples:\n"
            "  linebuild check-edge build.json step-3 step-1 step-2\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    edge_parser.add_argument("build_path", help="Line build JSON file")
    edge_parser.add_argument("unit_id", help="Work unit receiving the dependencies")
    edge_parser.add_argument("dependency_ids", nargs="+", help="Candidate predecessor ids")
    edge_parser.set_defaults(handler=_cmd_check_edge)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.structured_only:
        overrides["validation.structured_only"] = True
    if args.max_concurrency is not None:
        overrides["validation.max_concurrent_semantic"] = args.max_concurrency
    config = _load_effective_config(args, overrides)

    build = _load_build(args.build_path)
    rules = _load_rules(args.rule_paths)
    settings = ValidationSettings.from_config(config)

    client: ReasoningClient | None = None
    if not settings.structured_only and semantic_rules(rules):
        client = _build_reasoning_client(config)

    handle = _setup_logging(config)
    try:
        report = asyncio.run(validate_build(build, rules, client=client, settings=settings))
    finally:
        handle.shutdown()

    if args.json:
        _emit_json({"command": "validate", "report": report.to_dict()})
    else:
        renderer = _get_renderer(args)
        render_report(renderer, report)
        for unit_id, missing in dangling_dependencies(build):
            renderer.text(f"  Warning: {unit_id} depends on missing step {missing}")
    return 0 if report.is_valid else 1


def _cmd_rules(args: argparse.Namespace) -> int:
    _load_effective_config(args)
    libraries = []
    for raw_path in args.rule_paths:
        try:
            libraries.append(load_rule_library(raw_path))
        except RuleLibraryError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    if args.json:
        _emit_json({"command": "rules", "libraries": [library.to_dict() for library in libraries]})
        return 0

    renderer = _get_renderer(args)
    for library in libraries:
        render_rule_library(renderer, library)
    return 0


def _cmd_check_edge(args: argparse.Namespace) -> int:
    build = _load_build(args.build_path)
    problem = validate_new_edge(build, args.unit_id, args.dependency_ids)
    reason = problem.reason if problem is not None else None

    if args.json:
        _emit_json(
            {
                "command": "check-edge",
                "unitId": args.unit_id,
                "dependsOn": list(args.dependency_ids),
                "allowed": problem is None,
                "reason": reason,
            }
        )
    else:
        renderer = _get_renderer(args)
        if problem is None:
            renderer.ok(f"{args.unit_id} may depend on {', '.join(args.dependency_ids)}")
        else:
            renderer.fail(f"{args.unit_id}: {reason}")
    return 0 if problem is None else 1


def _cmd_config(args: argparse.Namespace) -> int:
    redacted = redact_config(_load_effective_config(args))
    if args.json:
        _emit_json({"command": "config", "config": redacted})
        return 0
    _get_renderer(args).text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=bool(getattr(args, "verbose", False)))


def _load_effective_config(
    args: argparse.Namespace,
    overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    cli_overrides = dict(overrides or {})
    if args.log_level is not None:
        cli_overrides["observability.log_level"] = args.log_level
    try:
        return load_config(args.config_path, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_build(raw_path: str) -> LineBuild:
    path = Path(raw_path).expanduser()
    try:
        build = LineBuild.from_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CLIError(f"unable to read build {path}: {exc}", exit_code=2) from exc
    except ValueError as exc:
        raise CLIError(f"invalid build {path}: {exc}", exit_code=2) from exc

    cycles = find_cycles(build)
    if cycles:
        raise CLIError(f"invalid build {path}: {CycleError(cycles)}", exit_code=2)
    return build


def _load_rules(rule_paths: Sequence[str] | None) -> tuple[ValidationRule, ...]:
    if not rule_paths:
        return default_semantic_rules()
    rules: list[ValidationRule] = []
    for raw_path in rule_paths:
        try:
            rules.extend(load_rule_library(raw_path).rules)
        except RuleLibraryError as exc:
            raise CLIError(str(exc), exit_code=2) from exc
    return tuple(rules)


def _build_reasoning_client(config: Mapping[str, Any]) -> ReasoningClient | None:
    reasoning = config["reasoning"]
    if reasoning["provider"] == "none":
        return None
    retry = config["retry"]
    client = AnthropicReasoningClient(
        model=reasoning["model"],
        max_tokens=reasoning["max_tokens"],
        api_key_env=reasoning["api_key_env"],
        timeout_seconds=reasoning.get("timeout_seconds"),
        retry=RetryPolicy(
            max_attempts=retry["max_attempts"],
            initial_delay_seconds=retry["initial_delay_seconds"],
            max_delay_seconds=retry["max_delay_seconds"],
            multiplier=retry["multiplier"],
        ),
    )
    try:
        client.ensure_ready()
    except ReasoningProviderError as exc:
        raise CLIError(
            f"{exc.message} (use --structured-only to skip semantic rules)", exit_code=3
        ) from exc
    return client


def _setup_logging(config: Mapping[str, Any]) -> StructuredLoggingHandle:
    observability = config["observability"]
    return setup_structured_logging(
        LoggingConfig(
            level=observability["log_level"],
            log_file=observability.get("log_file"),
            log_to_stderr=observability["log_to_stderr"],
            redact_secrets=observability["redact_secrets"],
        )
    )


__all__ = ["CLIError", "build_parser", "run_cli"]
