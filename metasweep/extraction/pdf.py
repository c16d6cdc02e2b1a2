"""PDF document-information dictionary: location, extraction and redaction.

The Info dictionary is located by plain byte searches rather than a PDF
tokenizer. ``<<`` and ``>>`` are paired naively (the first ``>>`` after a
``<<`` closes it), so nested dictionaries end a span early. Both location
strategies sit behind :class:`DictionarySpanLocator` so a real parser can be
dropped in later without touching the field engine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from metasweep.config import Settings, settings
from metasweep.errors import InputTooLargeError
from metasweep.extraction.types import CanonicalField, DetectedFile, FileType, InspectionResult
from metasweep.policy.engine import Policy, policy_keep
from metasweep.policy.risk import risk_for, risk_tags_for
from metasweep.utils.files import atomic_write, read_capped

INFO_BLOCK = "PDF.Info"
INFO_KEYS = ("Title", "Author", "Creator", "Producer", "CreationDate", "ModDate")

_WHITESPACE = frozenset(b" \t\r\n\f\v")
# A name ends at whitespace or a delimiter; anything else continues it.
_NAME_TERMINATORS = _WHITESPACE | frozenset(b"()<>[]{}/%")
_OBJECT_HEADER_RE = re.compile(rb"(?<!\d)(\d+)\s+(\d+)\s+obj\b")
_INFO_REF_RE = re.compile(rb"/Info\s*(\d+)\s+(\d+)\s+R")
_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
}


class PdfStripMode(str, Enum):
    """How the Info dictionary is redacted."""

    KEYS = "keys"
    WIPE = "wipe"


@dataclass(frozen=True, slots=True)
class DictSpan:
    """Byte range ``[start, end)`` of a dictionary, ``<<`` through ``>>``."""

    start: int
    end: int


@dataclass(frozen=True, slots=True)
class LiteralSpan:
    """A literal-string value of one Info key, parentheses included."""

    key: str
    start: int
    end: int
    key_length: int

    @property
    def canonical(self) -> str:
        return f"PDF.{self.key}"

    @property
    def is_empty(self) -> bool:
        return self.end - self.start == 2


class DictionarySpanLocator(Protocol):
    name: str

    def locate(self, buffer: bytes) -> DictSpan | None: ...


def _dict_span_after(buffer: bytes, position: int, limit: int | None = None) -> DictSpan | None:
    end_limit = len(buffer) if limit is None else limit
    start = buffer.find(b"<<", position, end_limit)
    if start == -1:
        return None
    close = buffer.find(b">>", start + 2, end_limit)
    if close == -1:
        return None
    return DictSpan(start=start, end=close + 2)


def _object_limit(buffer: bytes, position: int) -> int:
    end = buffer.find(b"endobj", position)
    return len(buffer) if end == -1 else end


class TrailerInfoLocator:
    """Follow ``/Info N G R`` from the last trailer to the object it names."""

    name = "trailer"

    def locate(self, buffer: bytes) -> DictSpan | None:
        # Incremental updates append trailers; the last one is current.
        trailer = buffer.rfind(b"trailer")
        if trailer == -1:
            return None
        trailer_dict = _dict_span_after(buffer, trailer)
        if trailer_dict is None:
            return None
        reference = _INFO_REF_RE.search(buffer, trailer_dict.start, trailer_dict.end)
        if reference is None:
            return None
        number, generation = int(reference.group(1)), int(reference.group(2))
        header_re = re.compile(rb"(?<!\d)%d\s+%d\s+obj\b" % (number, generation))
        header = None
        for header in header_re.finditer(buffer):
            pass
        if header is None:
            return None
        return _dict_span_after(buffer, header.end(), _object_limit(buffer, header.end()))


class HeuristicInfoLocator:
    """Walk objects in file order; the first dictionary with an Info key wins."""

    name = "heuristic"

    def locate(self, buffer: bytes) -> DictSpan | None:
        for header in _OBJECT_HEADER_RE.finditer(buffer):
            span = _dict_span_after(buffer, header.end(), _object_limit(buffer, header.end()))
            if span is not None and _looks_like_info(buffer[span.start : span.end]):
                return span
        return None


DEFAULT_LOCATORS: tuple[DictionarySpanLocator, ...] = (TrailerInfoLocator(), HeuristicInfoLocator())


def _looks_like_info(dictionary: bytes) -> bool:
    return any(b"/" + key.encode("ascii") in dictionary for key in INFO_KEYS)


def locate_info_span(
    buffer: bytes,
    locators: tuple[DictionarySpanLocator, ...] = DEFAULT_LOCATORS,
) -> DictSpan | None:
    """Return the Info dictionary span from the first locator that finds one."""

    for locator in locators:
        span = locator.locate(buffer)
        if span is not None and span.end > span.start:
            return span
    return None


def _literal_close(buffer: bytes, open_at: int, limit: int) -> int | None:
    depth = 0
    index = open_at
    while index < limit:
        byte = buffer[index]
        if byte == 0x5C:  # backslash escapes the next byte
            index += 2
            continue
        if byte == 0x28:
            depth += 1
        elif byte == 0x29:
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return None


def find_literal(buffer: bytes, span: DictSpan, key: str) -> LiteralSpan | None:
    """Locate the literal-string value of ``/key`` inside ``span``.

    Text inside other literal strings is skipped, so ``/Author`` written in a
    title never shadows the real key.
    """

    name = b"/" + key.encode("ascii")
    index = span.start
    while index < span.end:
        byte = buffer[index]
        if byte == 0x28:
            close = _literal_close(buffer, index, span.end)
            if close is None:
                return None
            index = close + 1
            continue
        if byte != 0x2F or not buffer.startswith(name, index, span.end):
            index += 1
            continue
        cursor = index + len(name)
        if cursor < span.end and buffer[cursor] not in _NAME_TERMINATORS:
            index += 1
            continue
        while cursor < span.end and buffer[cursor] in _WHITESPACE:
            cursor += 1
        if cursor < span.end and buffer[cursor] == 0x28:
            close = _literal_close(buffer, cursor, span.end)
            if close is None:
                return None
            return LiteralSpan(key=key, start=cursor, end=close + 1, key_length=len(name))
        # non-literal value; a later definition may still carry a literal
        index = cursor
    return None


def find_info_literals(buffer: bytes, span: DictSpan) -> list[LiteralSpan]:
    literals = []
    for key in INFO_KEYS:
        literal = find_literal(buffer, span, key)
        if literal is not None:
            literals.append(literal)
    return literals


def decode_literal(raw: bytes) -> str:
    """Decode the body of a PDF literal string (escapes, then text encoding)."""

    out = bytearray()
    index = 0
    while index < len(raw):
        byte = raw[index]
        if byte != 0x5C:
            out.append(byte)
            index += 1
            continue
        index += 1
        if index >= len(raw):
            break
        escaped = raw[index]
        if escaped in _ESCAPES:
            out += _ESCAPES[escaped]
            index += 1
        elif 0x30 <= escaped <= 0x37:
            end = index
            while end < len(raw) and end < index + 3 and 0x30 <= raw[end] <= 0x37:
                end += 1
            out.append(int(raw[index:end], 8) & 0xFF)
            index = end
        elif escaped == 0x0D:
            index += 1
            if index < len(raw) and raw[index] == 0x0A:
                index += 1
        elif escaped == 0x0A:
            index += 1
        else:
            out.append(escaped)
            index += 1
    data = bytes(out)
    if data.startswith(b"\xfe\xff"):
        return data[2:].decode("utf-16-be", errors="replace")
    if data.startswith(b"\xef\xbb\xbf"):
        return data[3:].decode("utf-8", errors="replace")
    return data.decode("latin-1")


def _to_field(buffer: bytes, literal: LiteralSpan) -> CanonicalField:
    raw = buffer[literal.start : literal.end]
    return CanonicalField(
        canonical=literal.canonical,
        value=decode_literal(raw[1:-1]),
        risk=risk_for(literal.canonical),
        block=INFO_BLOCK,
        bytes=literal.key_length + len(raw),
    )


def extract_info_fields(buffer: bytes, span: DictSpan) -> list[CanonicalField]:
    """Canonical fields for the non-empty Info values inside ``span``."""

    return [
        _to_field(buffer, literal)
        for literal in find_info_literals(buffer, span)
        if not literal.is_empty
    ]


def apply_replacements(buffer: bytes, edits: list[tuple[int, int, bytes]]) -> bytes:
    """Apply ``(start, end, replacement)`` edits back to front.

    Offsets refer to the original buffer. An edit overlapping an earlier one
    is discarded.
    """

    accepted: list[tuple[int, int, bytes]] = []
    boundary = -1
    for start, end, replacement in sorted(edits, key=lambda edit: edit[0]):
        if start < boundary:
            continue
        accepted.append((start, end, replacement))
        boundary = end
    result = bytearray(buffer)
    for start, end, replacement in reversed(accepted):
        result[start:end] = replacement
    return bytes(result)


def redact_info(
    buffer: bytes,
    span: DictSpan,
    policy: Policy,
    mode: PdfStripMode = PdfStripMode.KEYS,
) -> bytes:
    """Return ``buffer`` with the Info values the policy drops emptied.

    ``WIPE`` replaces the whole dictionary with ``<<>>`` unless the policy
    keeps one of its values, in which case per-key clearing is used instead.
    """

    literals = [literal for literal in find_info_literals(buffer, span) if not literal.is_empty]
    dropped = [literal for literal in literals if not policy_keep(policy, literal.canonical)]
    if mode is PdfStripMode.WIPE and len(dropped) == len(literals):
        return buffer[: span.start] + b"<<>>" + buffer[span.end :]
    return apply_replacements(buffer, [(literal.start, literal.end, b"()") for literal in dropped])


def inspect_pdf(detected: DetectedFile, config: Settings = settings) -> InspectionResult:
    """Report the Info dictionary fields of a PDF."""

    result = InspectionResult(file=detected.path, type=FileType.PDF)
    try:
        buffer = read_capped(detected.path, config.max_input_bytes)
    except (OSError, InputTooLargeError):
        return result
    span = locate_info_span(buffer)
    if span is None:
        return result
    result.mark_block(INFO_BLOCK)
    result.fields.extend(extract_info_fields(buffer, span))
    result.risk_tags = risk_tags_for(result.fields)
    return result


def strip_pdf(
    source: Path,
    destination: Path,
    policy: Policy,
    mode: PdfStripMode = PdfStripMode.KEYS,
    config: Settings = settings,
) -> bool:
    """Write a redacted copy of ``source``; returns whether any byte changed."""

    buffer = read_capped(source, config.max_input_bytes)
    span = locate_info_span(buffer)
    cleaned = buffer if span is None else redact_info(buffer, span, policy, mode)
    atomic_write(destination, cleaned)
    return cleaned != buffer


__all__ = [
    "DEFAULT_LOCATORS",
    "DictSpan",
    "DictionarySpanLocator",
    "HeuristicInfoLocator",
    "INFO_BLOCK",
    "INFO_KEYS",
    "LiteralSpan",
    "PdfStripMode",
    "TrailerInfoLocator",
    "apply_replacements",
    "decode_literal",
    "extract_info_fields",
    "find_info_literals",
    "find_literal",
    "inspect_pdf",
    "locate_info_span",
    "redact_info",
    "strip_pdf",
]
