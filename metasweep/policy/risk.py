from __future__ import annotations

from collections.abc import Iterable

from metasweep.extraction.types import CanonicalField, InspectionResult
from metasweep.policy.engine import glob_match

HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"
SAFE = "SAFE"

RISK_ORDER = {SAFE: 0, LOW: 1, MEDIUM: 2, HIGH: 3}

_HIGH_NAMES = {"PDF.CreationDate", "PDF.ModDate"}
_MEDIUM_NAMES = {
    "EXIF.SerialNumber",
    "EXIF.Make",
    "EXIF.Model",
    "EXIF.Artist",
    "ID3.TPE1",
    "ID3.TALB",
}
_SAFE_NAMES = {"EXIF.Orientation", "Image.ColorProfile", "Image.DPI"}

# First matching pattern wins.
_RISK_TAGS: tuple[tuple[str, str], ...] = (
    ("EXIF.GPS*", "gps"),
    ("EXIF.SerialNumber", "device_serial"),
    ("EXIF.Make", "device_model"),
    ("EXIF.Model", "device_model"),
    ("XMP.CreatorTool", "software"),
    ("XMP.History*", "software"),
    ("PDF.Creator", "software"),
    ("PDF.Producer", "software"),
    ("EXIF.Software", "software"),
    ("PDF.Author", "author"),
    ("EXIF.Artist", "author"),
    ("ID3.TPE1", "author"),
    ("PDF.CreationDate", "timestamp"),
    ("PDF.ModDate", "timestamp"),
    ("EXIF.DateTime*", "timestamp"),
    ("ZIP.Comment", "comment"),
    ("ZIP.FileComments", "comment"),
)


def risk_for(canonical: str) -> str:
    """Static sensitivity of a canonical field name, independent of any policy."""

    if canonical.startswith("EXIF.GPS") or canonical in _HIGH_NAMES:
        return HIGH
    if canonical in _MEDIUM_NAMES:
        return MEDIUM
    if canonical in _SAFE_NAMES:
        return SAFE
    if canonical.startswith("PDF."):
        return MEDIUM
    return LOW


def risk_tags_for(fields: Iterable[CanonicalField]) -> list[str]:
    tags: list[str] = []
    for item in fields:
        for pattern, tag in _RISK_TAGS:
            if glob_match(pattern, item.canonical):
                if tag not in tags:
                    tags.append(tag)
                break
    return tags


def worst_risk(results: Iterable[InspectionResult]) -> str:
    """Highest risk level among all fields, ``SAFE`` when nothing was found."""

    worst = SAFE
    for result in results:
        for item in result.fields:
            if RISK_ORDER.get(item.risk, 0) > RISK_ORDER[worst]:
                worst = item.risk
    return worst


__all__ = [
    "HIGH",
    "LOW",
    "MEDIUM",
    "RISK_ORDER",
    "SAFE",
    "risk_for",
    "risk_tags_for",
    "worst_risk",
]
