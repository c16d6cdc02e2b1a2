from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class FileType(str, Enum):
    """File families the detector can route to a backend."""

    UNKNOWN = "unknown"
    IMAGE = "image"
    PDF = "pdf"
    AUDIO = "audio"
    ZIP = "zip"


@dataclass(frozen=True, slots=True)
class Block:
    """Raw metadata block found inside a file."""

    name: str
    size: int = 0


@dataclass(frozen=True, slots=True)
class DetectedFile:
    """Detector output for a single input, consumed by exactly one backend."""

    path: Path
    type: FileType = FileType.UNKNOWN
    blocks: tuple[Block, ...] = ()


@dataclass(slots=True)
class CanonicalField:
    """A metadata value under its namespaced canonical name, e.g. ``PDF.Title``."""

    canonical: str
    value: str
    risk: str
    block: str
    bytes: int = 0


@dataclass(slots=True)
class InspectionResult:
    """Metadata found in one file."""

    file: Path
    type: FileType = FileType.UNKNOWN
    detected: list[str] = field(default_factory=list)
    risk_tags: list[str] = field(default_factory=list)
    fields: list[CanonicalField] = field(default_factory=list)

    @property
    def meta_bytes(self) -> int:
        return sum(item.bytes for item in self.fields)

    @property
    def names(self) -> list[str]:
        return [item.canonical for item in self.fields]

    def add(self, item: CanonicalField) -> None:
        self.fields.append(item)

    def mark_block(self, name: str) -> None:
        if name not in self.detected:
            self.detected.append(name)


@dataclass(slots=True)
class StripOutcome:
    """Before/after view of a redaction run on one file."""

    source: Path
    output: Path
    before: InspectionResult
    after: InspectionResult
    written: bool = True


__all__ = [
    "Block",
    "CanonicalField",
    "DetectedFile",
    "FileType",
    "InspectionResult",
    "StripOutcome",
]
