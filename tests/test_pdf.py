from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from metasweep.config import Settings
from metasweep.errors import InputTooLargeError
from metasweep.extraction.pdf import (
    DictSpan,
    HeuristicInfoLocator,
    PdfStripMode,
    TrailerInfoLocator,
    apply_replacements,
    decode_literal,
    extract_info_fields,
    find_literal,
    inspect_pdf,
    locate_info_span,
    strip_pdf,
)
from metasweep.extraction.types import DetectedFile, FileType
from metasweep.policy.engine import BUILTIN_POLICIES, Policy

from conftest import SAMPLE_PDF

AGGRESSIVE = BUILTIN_POLICIES["aggressive"]


def _inspect(path: Path, config: Settings | None = None):
    detected = DetectedFile(path=path, type=FileType.PDF)
    return inspect_pdf(detected) if config is None else inspect_pdf(detected, config=config)


def test_trailer_locator_follows_info_reference() -> None:
    span = TrailerInfoLocator().locate(SAMPLE_PDF)

    assert span is not None
    assert SAMPLE_PDF[span.start : span.end] == b"<</Title (Secret)/Author (Bob)>>"


def test_extract_fields_from_trailer_dictionary(sample_pdf: Path) -> None:
    result = _inspect(sample_pdf)

    assert result.detected == ["PDF.Info"]
    assert [(item.canonical, item.value) for item in result.fields] == [
        ("PDF.Title", "Secret"),
        ("PDF.Author", "Bob"),
    ]
    assert all(item.block == "PDF.Info" for item in result.fields)
    assert "author" in result.risk_tags


def test_strip_empties_values_without_moving_structure(sample_pdf: Path, tmp_path: Path) -> None:
    output = tmp_path / "clean.pdf"

    changed = strip_pdf(sample_pdf, output, AGGRESSIVE)

    cleaned = output.read_bytes()
    assert changed is True
    assert b"5 0 obj<</Title ()/Author ()>>endobj" in cleaned
    assert len(cleaned) == len(SAMPLE_PDF) - len(b"Secret") - len(b"Bob")
    assert _inspect(output).fields == []


def test_strip_is_a_fixed_point(sample_pdf: Path, tmp_path: Path) -> None:
    first = tmp_path / "first.pdf"
    second = tmp_path / "second.pdf"
    strip_pdf(sample_pdf, first, AGGRESSIVE)

    changed = strip_pdf(first, second, AGGRESSIVE)

    assert changed is False
    assert second.read_bytes() == first.read_bytes()


def test_keep_pattern_preserves_value(sample_pdf: Path, tmp_path: Path) -> None:
    output = tmp_path / "clean.pdf"
    policy = Policy(name="custom", keep=("PDF.Title",), drop=("*",))

    strip_pdf(sample_pdf, output, policy)

    assert [item.canonical for item in _inspect(output).fields] == ["PDF.Title"]


def test_heuristic_locator_without_trailer() -> None:
    buffer = b"%PDF-1.3\n2 0 obj<</Type/Page>>endobj\n3 0 obj<</Producer (Acme Writer)>>endobj\n"

    assert TrailerInfoLocator().locate(buffer) is None
    span = HeuristicInfoLocator().locate(buffer)
    assert span is not None
    fields = extract_info_fields(buffer, span)
    assert [(item.canonical, item.value) for item in fields] == [("PDF.Producer", "Acme Writer")]


def test_trailer_without_matching_object_falls_back() -> None:
    buffer = b"%PDF-1.3\n3 0 obj<</Author (Eve)>>endobj\ntrailer<</Info 9 0 R>>\n"

    span = locate_info_span(buffer)

    assert span is not None
    assert buffer[span.start : span.end] == b"<</Author (Eve)>>"


def test_object_number_needs_digit_boundary() -> None:
    buffer = b"%PDF-1.3\n15 0 obj<</Title (Wrong)>>endobj\n5 0 obj<</Title (Right)>>endobj\ntrailer<</Info 5 0 R>>\n"

    span = TrailerInfoLocator().locate(buffer)

    assert span is not None
    assert buffer[span.start : span.end] == b"<</Title (Right)>>"


def test_key_match_requires_name_boundary() -> None:
    buffer = b"<</CreatorTool (Tool)/Creator (Person)>>"
    span = DictSpan(start=0, end=len(buffer))

    literal = find_literal(buffer, span, "Creator")

    assert literal is not None
    assert buffer[literal.start : literal.end] == b"(Person)"


def test_non_literal_value_is_ignored() -> None:
    buffer = b"<</Title <FEFF0041>/Author (Ann)>>"
    span = DictSpan(start=0, end=len(buffer))

    assert find_literal(buffer, span, "Title") is None
    assert find_literal(buffer, span, "Author") is not None


def test_nested_parentheses_and_escapes() -> None:
    buffer = rb"<</Title (a (b) c\) d)>>"
    span = DictSpan(start=0, end=len(buffer))

    literal = find_literal(buffer, span, "Title")

    assert literal is not None
    assert decode_literal(buffer[literal.start + 1 : literal.end - 1]) == "a (b) c) d"


def test_key_text_inside_another_literal_is_skipped() -> None:
    buffer = b"<</Title (see /Author list)/Author (Bob)>>"
    span = DictSpan(start=0, end=len(buffer))

    literal = find_literal(buffer, span, "Author")

    assert literal is not None
    assert buffer[literal.start : literal.end] == b"(Bob)"

    shadowed = b"<</Subject (see /Author (x))>>"
    assert find_literal(shadowed, DictSpan(start=0, end=len(shadowed)), "Author") is None


def test_strip_clears_key_mentioned_in_earlier_value(tmp_path: Path) -> None:
    source = tmp_path / "mention.pdf"
    source.write_bytes(
        b"%PDF-1.4\n"
        b"5 0 obj<</Title (see /Author list)/Author (Bob)>>endobj\n"
        b"trailer<</Info 5 0 R>>\n"
        b"%%EOF\n"
    )
    output = tmp_path / "clean.pdf"

    assert strip_pdf(source, output, AGGRESSIVE) is True

    cleaned = output.read_bytes()
    assert b"(Bob)" not in cleaned
    assert b"5 0 obj<</Title ()/Author ()>>endobj" in cleaned
    assert _inspect(output).fields == []


def test_decode_literal_escapes_and_encodings() -> None:
    assert decode_literal(rb"\101\tB\\") == "A\tB\\"
    assert decode_literal(b"\xfe\xff\x00H\x00i") == "Hi"
    assert decode_literal(b"caf\xe9") == "café"


def test_wipe_mode_replaces_dictionary(sample_pdf: Path, tmp_path: Path) -> None:
    output = tmp_path / "wiped.pdf"

    strip_pdf(sample_pdf, output, AGGRESSIVE, mode=PdfStripMode.WIPE)

    assert b"5 0 obj<<>>endobj" in output.read_bytes()
    assert _inspect(output).fields == []


def test_wipe_mode_respects_kept_keys(sample_pdf: Path, tmp_path: Path) -> None:
    output = tmp_path / "wiped.pdf"
    policy = Policy(name="custom", keep=("PDF.Author",), drop=("*",))

    strip_pdf(sample_pdf, output, policy, mode=PdfStripMode.WIPE)

    assert b"<</Title ()/Author (Bob)>>" in output.read_bytes()


def test_apply_replacements_discards_overlaps() -> None:
    buffer = b"0123456789"

    edited = apply_replacements(buffer, [(6, 8, b"X"), (1, 3, b""), (2, 4, b"Y")])

    assert edited == b"0345X89"


def test_oversized_input_reports_nothing(sample_pdf: Path, tmp_path: Path) -> None:
    config = Settings(log_dir=tmp_path / "logs", max_input_bytes=16)

    assert _inspect(sample_pdf, config).fields == []
    with pytest.raises(InputTooLargeError):
        strip_pdf(sample_pdf, tmp_path / "out.pdf", AGGRESSIVE, config=config)
    assert not (tmp_path / "out.pdf").exists()


def test_pillow_written_pdf_title(tmp_path: Path) -> None:
    path = tmp_path / "scan.pdf"
    Image.new("RGB", (8, 8), color=(0, 0, 0)).save(path, "PDF", title="Quarterly")

    result = _inspect(path)

    assert ("PDF.Title", "Quarterly") in [(item.canonical, item.value) for item in result.fields]
