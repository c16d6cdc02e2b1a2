from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

INFO = "info"
WARNING = "warning"
ERROR = "error"

_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


def timestamped_stem(prefix: str) -> str:
    """``<prefix>-<UTC stamp>-<8 hex chars>``, unique per run."""

    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S")
    return f"{prefix}-{stamp}-{uuid4().hex[:8]}"


def _shorten_home(text: str) -> str:
    home = str(Path.home())
    if len(home) > 1 and (text == home or text.startswith(home + "/")):
        return "~" + text[len(home) :]
    return text


def _mask(value: Any) -> Any:
    if isinstance(value, Path):
        value = str(value)
    if isinstance(value, str):
        masked = _EMAIL_RE.sub(lambda match: f"{match.group(1)[0]}***@{match.group(2)}", value)
        return _shorten_home(masked)
    if isinstance(value, dict):
        return redact_details(value)
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    return value


def redact_details(details: dict[str, Any]) -> dict[str, Any]:
    """Mask e-mail addresses and the home directory anywhere in ``details``."""

    return {key: _mask(value) for key, value in details.items()}


@dataclass(slots=True)
class AuditEvent:
    level: str
    event: str
    path: Path | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "event": self.event,
            "path": None if self.path is None else _mask(self.path),
            "details": redact_details(self.details),
        }


class AuditTrail:
    """Per-run record of what was inspected, planned, written or skipped.

    Events stay in memory and, when ``log_dir`` is set, are appended to
    ``sweep-<stamp>.jsonl`` there. Callers pass canonical field names, counts
    and digests; metadata values are never recorded.
    """

    def __init__(self, log_dir: Path | None = None) -> None:
        self.path: Path | None = None
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            self.path = log_dir / f"{timestamped_stem('sweep')}.jsonl"
        self._events: list[AuditEvent] = []

    def record(self, level: str, event: str, path: Path | None = None, **details: Any) -> AuditEvent:
        entry = AuditEvent(level=level, event=event, path=path, details=details)
        self._events.append(entry)
        if self.path is not None:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        return entry

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    def errors(self) -> list[AuditEvent]:
        return [entry for entry in self._events if entry.level == ERROR]

    def counts(self) -> Counter[str]:
        """Number of events per event name."""

        return Counter(entry.event for entry in self._events)


__all__ = [
    "AuditEvent",
    "AuditTrail",
    "ERROR",
    "INFO",
    "WARNING",
    "redact_details",
    "timestamped_stem",
]
