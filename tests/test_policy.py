from __future__ import annotations

import json
from pathlib import Path

import pytest

from metasweep.errors import PolicyError
from metasweep.extraction.types import CanonicalField, FileType, InspectionResult
from metasweep.policy.engine import (
    BUILTIN_POLICIES,
    DEFAULT,
    DROP,
    KEEP,
    Policy,
    decide,
    get_builtin,
    glob_match,
    load_policy,
    read_policy_file,
)
from metasweep.policy.risk import HIGH, LOW, MEDIUM, SAFE, risk_for, risk_tags_for, worst_risk


@pytest.mark.parametrize(
    ("pattern", "text", "expected"),
    [
        ("EXIF.GPS*", "EXIF.GPSLatitude", True),
        ("EXIF.GPS*", "EXIF.Make", False),
        ("PDF.?itle", "PDF.Title", True),
        ("*", "anything", True),
        ("*", "", True),
        ("a*b*c", "axxbyyc", True),
        ("a*b*c", "axxbyy", False),
        ("pdf.title", "PDF.Title", False),
        ("PDF.Title", "PDF.Title.Extra", False),
    ],
)
def test_glob_match(pattern: str, text: str, expected: bool) -> None:
    assert glob_match(pattern, text) is expected


def test_keep_beats_drop() -> None:
    policy = Policy(name="p", keep=("PDF.Title",), drop=("PDF.*",))

    decision = decide(policy, "PDF.Title")

    assert decision.keep is True
    assert decision.reason == KEEP
    assert decision.pattern == "PDF.Title"
    assert decision.label == "KEEP"


def test_explicit_drop_and_default_deny() -> None:
    policy = Policy(name="p", drop=("EXIF.*",))

    explicit = decide(policy, "EXIF.Make")
    fallback = decide(policy, "PDF.Title")

    assert (explicit.keep, explicit.reason, explicit.pattern) == (False, DROP, "EXIF.*")
    assert (fallback.keep, fallback.reason, fallback.pattern) == (False, DEFAULT, None)
    assert fallback.label == "DROP"


def test_builtin_presets() -> None:
    aggressive = BUILTIN_POLICIES["aggressive"]
    safe = BUILTIN_POLICIES["safe"]

    assert decide(aggressive, "EXIF.Orientation").keep
    assert not decide(aggressive, "PDF.Title").keep
    assert decide(safe, "EXIF.GPSLatitude").reason == DROP
    assert decide(safe, "XMP.HistoryWhen").reason == DROP
    assert decide(safe, "Image.DPI").keep


def test_unknown_builtin_raises() -> None:
    with pytest.raises(PolicyError):
        get_builtin("paranoid")


def test_policy_file_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"name": "team", "keep": ["PDF.Title"], "drop": ["*"]}), encoding="utf-8")

    policy = read_policy_file(path)

    assert policy == Policy(name="team", keep=("PDF.Title",), drop=("*",))


def test_policy_file_errors(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text('{"keep": "not-a-list"}', encoding="utf-8")

    with pytest.raises(PolicyError):
        read_policy_file(broken)
    with pytest.raises(PolicyError):
        read_policy_file(tmp_path / "missing.json")


def test_load_policy_overlays_patterns() -> None:
    policy = load_policy(base="safe", keep=["PDF.Author"], drop=["EXIF.Make"])

    assert policy.name == "safe"
    assert decide(policy, "PDF.Author").keep
    assert decide(policy, "EXIF.Make").reason == DROP


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("EXIF.GPSLongitude", HIGH),
        ("PDF.CreationDate", HIGH),
        ("EXIF.SerialNumber", MEDIUM),
        ("ID3.TPE1", MEDIUM),
        ("PDF.Title", MEDIUM),
        ("EXIF.Orientation", SAFE),
        ("Image.ColorProfile", SAFE),
        ("ZIP.Comment", LOW),
        ("XMP.CreatorTool", LOW),
    ],
)
def test_risk_levels(name: str, expected: str) -> None:
    assert risk_for(name) == expected


def _field(name: str) -> CanonicalField:
    return CanonicalField(canonical=name, value="x", risk=risk_for(name), block="test")


def test_risk_tags_are_ordered_and_unique() -> None:
    fields = [_field("PDF.Producer"), _field("EXIF.GPSLatitude"), _field("PDF.Creator"), _field("PDF.Title")]

    assert risk_tags_for(fields) == ["software", "gps"]


def test_worst_risk() -> None:
    low = InspectionResult(file=Path("a"), type=FileType.ZIP, fields=[_field("ZIP.Comment")])
    high = InspectionResult(file=Path("b"), type=FileType.PDF, fields=[_field("PDF.ModDate")])

    assert worst_risk([]) == SAFE
    assert worst_risk([low]) == LOW
    assert worst_risk([low, high]) == HIGH
