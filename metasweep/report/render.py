from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from metasweep.extraction.types import CanonicalField, InspectionResult, StripOutcome
from metasweep.policy.engine import DEFAULT, Decision
from metasweep.policy.risk import HIGH, MEDIUM
from metasweep.utils.files import atomic_write

BULLET = "•"
ARROW = "→"


def _field_line(item: CanonicalField) -> str:
    return f"  {BULLET} {item.canonical} = {item.value} ({item.risk}) [{item.block}]"


def format_pretty(result: InspectionResult) -> str:
    """Human-readable listing of one inspection result."""

    lines = [f"{result.file} [{result.type.value}]"]
    if not result.fields:
        lines.append("  (no metadata detected)")
    lines.extend(_field_line(item) for item in result.fields)
    if result.risk_tags:
        lines.append(f"  tags: {', '.join(result.risk_tags)}")
    return "\n".join(lines)


def _reason(decision: Decision) -> str:
    if decision.reason == DEFAULT:
        return "no rule matched"
    return f"{decision.reason} {decision.pattern}"


def format_plan(result: InspectionResult, plan: Sequence[tuple[CanonicalField, Decision]]) -> str:
    """One KEEP/DROP line per field, with the rule that decided it."""

    lines = [f"{result.file} [{result.type.value}]"]
    if not plan:
        lines.append("  (no metadata detected)")
    for item, decision in plan:
        lines.append(f"  {decision.label:<4} {item.canonical} ({_reason(decision)})")
    return "\n".join(lines)


def format_summary(outcome: StripOutcome) -> str:
    if not outcome.written:
        return f"Skipped {outcome.source}"
    before, after = len(outcome.before.fields), len(outcome.after.fields)
    return (
        f"Stripped {outcome.source} {ARROW} {outcome.output} "
        f"({before} fields before, {after} after)"
    )


def format_risks(result: InspectionResult) -> str:
    """Explain the high and medium risk fields of one file."""

    lines = [f"{result.file} [{result.type.value}]"]
    risky = [item for item in result.fields if item.risk in (HIGH, MEDIUM)]
    for item in risky:
        lines.append(f"  {item.risk:<6} {item.canonical} = {item.value}")
    if result.risk_tags:
        lines.append(f"  tags: {', '.join(result.risk_tags)}")
    if any(item.risk == HIGH for item in risky):
        lines.append("  verdict: strip before sharing")
    elif risky:
        lines.append("  verdict: review before sharing")
    else:
        lines.append("  verdict: nothing sensitive found")
    return "\n".join(lines)


def _serialize_field(item: CanonicalField) -> dict[str, Any]:
    return {
        "name": item.canonical,
        "value": item.value,
        "risk": item.risk,
        "block": item.block,
        "bytes": item.bytes,
    }


def _serialize_result(result: InspectionResult) -> dict[str, Any]:
    return {
        "file": str(result.file),
        "type": result.type.value,
        "detected": list(result.detected),
        "meta_bytes": result.meta_bytes,
        "fields": [_serialize_field(item) for item in result.fields],
    }


def build_report(results: Iterable[InspectionResult]) -> dict[str, Any]:
    return {"files": [_serialize_result(result) for result in results]}


def render_json(results: Iterable[InspectionResult]) -> str:
    return json.dumps(build_report(results), ensure_ascii=False, indent=2)


def write_report(path: Path, results: Iterable[InspectionResult]) -> Path:
    """Write the JSON report for ``results`` to ``path``."""

    return atomic_write(path, (render_json(results) + "\n").encode("utf-8"))


__all__ = [
    "build_report",
    "format_plan",
    "format_pretty",
    "format_risks",
    "format_summary",
    "render_json",
    "write_report",
]
