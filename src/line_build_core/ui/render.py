"""Output rendering for the ``linebuild`` CLI.

File: src/line_build_core/ui/render.py

Purpose
- Provide a thin plain-text rendering layer for CLI output.

What should be included in this file
- CLIRenderer class with methods for common output patterns.
- Report renderers for validation runs and rule libraries.

Functional requirements
- Plain-text rendering must always work without external dependencies.
- Output is deterministic for a given report.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from line_build_core.validation.orchestrator import ValidationReport
    from line_build_core.validation.rule_library import RuleLibrary


class CLIRenderer:
    """Thin CLI output renderer writing deterministic plain text."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    def _emit(self, line: str = "") -> None:
        print(line, file=self._stream)

    def heading(self, text: str) -> None:
        self._emit(text)

    def kv(self, key: str, value: object) -> None:
        self._emit(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._emit(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._emit(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._emit(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._emit(f"  {_pad(list(headers))}")
        self._emit(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._emit(f"  {_pad(list(row))}")

    def ok(self, label: str) -> None:
        self._emit(f"  OK  {label}")

    def fail(self, label: str) -> None:
        self._emit(f"  FAIL  {label}")


def render_report(renderer: CLIRenderer, report: ValidationReport) -> None:
    status = report.status
    renderer.heading(f"linebuild validate {status.build_id}")
    renderer.kv("Result", "PASS" if report.is_valid else "FAIL")
    renderer.kv("Checks", f"{report.pass_count} passed, {report.fail_count} failed")
    if report.semantic_skipped:
        renderer.kv("Semantic", f"skipped ({report.skip_reason})")
    renderer.kv("Can promote", "yes" if status.can_promote else "no")

    if report.failures_by_rule:
        renderer.section("Failures:")
        for rule_id, results in report.failures_by_rule.items():
            renderer.text(f"  {rule_id} ({results[0].rule_name})")
            for result in results:
                for failure in result.failures:
                    renderer.text(f"    [{result.work_unit_id}] {failure}")
                if renderer.verbose and result.reasoning:
                    renderer.text(f"      reasoning: {result.reasoning}")


def render_rule_library(renderer: CLIRenderer, library: RuleLibrary) -> None:
    renderer.heading(f"Rule library: {library.source}")
    renderer.kv("Rules", len(library.rules))
    rows = [
        (
            rule.id,
            rule.kind.value,
            "yes" if rule.enabled else "no",
            ", ".join(action.value for action in rule.applies_to) if rule.applies_to else "all",
            rule.name,
        )
        for rule in library.rules
    ]
    renderer.table(("ID", "TYPE", "ENABLED", "APPLIES TO", "NAME"), rows)


def create_renderer(*, verbose: bool = False, stream: TextIO | None = None) -> CLIRenderer:
    return CLIRenderer(verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer", "render_report", "render_rule_library"]
