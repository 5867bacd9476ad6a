"""Extraction of the verdict object embedded in free-form reasoning output.

Kept in one function so a structured-output client can replace the heuristic
without touching the evaluator.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

_GREEDY_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True, slots=True)
class ParsedVerdict:
    passed: bool
    reasoning: str = ""
    failures: tuple[str, ...] = ()


def _candidate_objects(text: str) -> list[dict[str, object]]:
    found: list[dict[str, object]] = []
    greedy = _GREEDY_OBJECT.search(text)
    if greedy is not None:
        try:
            parsed = json.loads(greedy.group(0))
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            found.append(parsed)

    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            parsed, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            found.append(parsed)
    return found


def parse_reasoning_response(text: str) -> ParsedVerdict | None:
    """Return the first JSON object in ``text`` whose ``pass`` is a boolean.

    Surrounding prose is tolerated. ``failures`` that is not a list becomes
    empty; non-string entries are stringified. ``None`` means nothing usable
    was found.
    """

    if not isinstance(text, str) or not text.strip():
        return None

    for candidate in _candidate_objects(text):
        verdict = candidate.get("pass")
        if not isinstance(verdict, bool):
            continue

        raw_failures = candidate.get("failures")
        failures: tuple[str, ...] = ()
        if isinstance(raw_failures, list):
            rendered = (
                item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
                for item in raw_failures
                if item is not None
            )
            failures = tuple(text.strip() for text in rendered if text.strip())

        reasoning = candidate.get("reasoning")
        return ParsedVerdict(
            passed=verdict,
            reasoning=reasoning if isinstance(reasoning, str) else "",
            failures=failures,
        )
    return None


__all__ = ["ParsedVerdict", "parse_reasoning_response"]
