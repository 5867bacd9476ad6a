"""
line-build-core — rule library loader

File: src/line_build_core/validation/rule_library.py

Purpose
- Load validation rule sets from YAML or JSON files.

What should be included in this file
- A document shape of either a bare rule list, or a mapping with
  ``schema_version``, ``rules`` and an optional ``builtin`` list naming
  built-in semantic rules to include.
- Full-file validation: every problem is collected before raising.

Functional requirements
- Malformed rules raise ``RuleLibraryError`` listing each problem with its
  location; nothing is partially loaded.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import yaml

from line_build_core.constants import RULE_LIBRARY_SCHEMA_VERSION
from line_build_core.domain.models import (
    SemanticRule,
    StructuredRule,
    ValidationRule,
    rule_from_dict,
)
from line_build_core.validation.cook_time import get_semantic_rule
from line_build_core.validation.rule_definitions import (
    detect_circular_rule_dependencies,
    validate_rule_definition,
)


class RuleLibraryError(ValueError):
    """Raised when a rule library cannot be read or contains malformed rules."""

    problems: tuple[str, ...]

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = tuple(problems)
        lines = "\n".join(f"- {problem}" for problem in self.problems)
        super().__init__(f"Rule library is invalid:\n{lines}")


@dataclass(frozen=True, slots=True)
class RuleLibrary:
    rules: tuple[ValidationRule, ...]
    source: str | None = None
    schema_version: int = RULE_LIBRARY_SCHEMA_VERSION

    @property
    def structured(self) -> tuple[StructuredRule, ...]:
        return tuple(rule for rule in self.rules if isinstance(rule, StructuredRule))

    @property
    def semantic(self) -> tuple[SemanticRule, ...]:
        return tuple(rule for rule in self.rules if isinstance(rule, SemanticRule))

    @property
    def enabled(self) -> tuple[ValidationRule, ...]:
        return tuple(rule for rule in self.rules if rule.enabled)

    def get(self, rule_id: str) -> ValidationRule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "schema_version": self.schema_version,
            "rules": [rule.to_dict() for rule in self.rules],
        }


def parse_rule_library(payload: object, *, source: str = "<memory>") -> RuleLibrary:
    """Validate an already-decoded library document."""

    problems: list[str] = []
    records: Sequence[object] = ()
    builtin_ids: Sequence[object] = ()
    schema_version = RULE_LIBRARY_SCHEMA_VERSION

    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, Mapping):
        raw_version = payload.get("schema_version", RULE_LIBRARY_SCHEMA_VERSION)
        if raw_version != RULE_LIBRARY_SCHEMA_VERSION:
            problems.append(
                f"{source}: unsupported schema_version {raw_version!r}; "
                f"expected {RULE_LIBRARY_SCHEMA_VERSION}"
            )
        unknown = sorted(
            str(key) for key in payload if key not in {"schema_version", "rules", "builtin"}
        )
        if unknown:
            problems.append(f"{source}: unexpected fields: {unknown}")

        raw_rules = payload.get("rules", [])
        if isinstance(raw_rules, list):
            records = raw_rules
        else:
            problems.append(f"{source}: 'rules' must be a list")

        raw_builtin = payload.get("builtin", [])
        if isinstance(raw_builtin, list):
            builtin_ids = raw_builtin
        else:
            problems.append(f"{source}: 'builtin' must be a list of rule ids")
    else:
        problems.append(f"{source}: must be a list or contain a 'rules' list")

    rules: list[ValidationRule] = []
    seen: set[str] = set()

    for index, builtin_id in enumerate(builtin_ids):
        builtin = get_semantic_rule(builtin_id) if isinstance(builtin_id, str) else None
        if builtin is None:
            problems.append(f"{source}.builtin[{index}]: unknown built-in rule {builtin_id!r}")
            continue
        if builtin.id not in seen:
            seen.add(builtin.id)
            rules.append(builtin)

    for index, record in enumerate(records):
        entry_path = f"{source}.rules[{index}]"
        if not isinstance(record, Mapping):
            problems.append(f"{entry_path}: must be an object")
            continue

        malformed = validate_rule_definition(record)
        if malformed is not None:
            problems.append(f"{entry_path}: {malformed.message}")
            continue

        try:
            rule = rule_from_dict(record)
        except ValueError as exc:
            problems.append(f"{entry_path}: {exc}")
            continue

        if rule.id in seen:
            problems.append(f"{entry_path}: duplicate rule id {rule.id!r}")
            continue
        seen.add(rule.id)
        rules.append(rule)

    circular = detect_circular_rule_dependencies(rules)
    if circular is not None:
        problems.append(f"{source}: {circular.message}")

    if problems:
        raise RuleLibraryError(problems)
    return RuleLibrary(rules=tuple(rules), source=source, schema_version=schema_version)


def load_rule_library(path: str | Path) -> RuleLibrary:
    """Read a ``.yaml``/``.yml``/``.json`` rule library from disk."""

    file_path = Path(path)
    source = file_path.as_posix()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuleLibraryError([f"Failed to read rule library {source}: {exc}"]) from exc

    if file_path.suffix.lower() == ".json":
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RuleLibraryError([f"Invalid JSON in {source}: {exc}"]) from exc
    else:
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise RuleLibraryError([f"Invalid YAML in {source}: {exc}"]) from exc

    return parse_rule_library(payload, source=source)


__all__ = ["RuleLibrary", "RuleLibraryError", "load_rule_library", "parse_rule_library"]
