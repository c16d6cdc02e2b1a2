"""ZIP end-of-central-directory scanning, central directory walk and comment removal.

EOCD layout (22 bytes + comment)::

    0  4  signature 0x06054b50
    4  2  disk number
    6  2  disk with central dir
    8  2  entries on this disk
    10 2  total entries
    12 4  size of central directory
    16 4  offset of central directory
    20 2  comment length
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

from metasweep.config import Settings, settings
from metasweep.errors import InputTooLargeError
from metasweep.extraction.types import CanonicalField, DetectedFile, FileType, InspectionResult
from metasweep.policy.engine import Policy, policy_keep
from metasweep.policy.risk import risk_for, risk_tags_for
from metasweep.utils.files import atomic_write, read_capped

EOCD_SIGNATURE = b"PK\x05\x06"
CENTRAL_SIGNATURE = b"PK\x01\x02"
EOCD_SIZE = 22
CENTRAL_HEADER_SIZE = 46
MAX_COMMENT_LENGTH = 0xFFFF
COMMENT_LENGTH_OFFSET = 20

ZIP_BLOCK = "ZIP"
CENTRAL_DIRECTORY_BLOCK = "ZIP.CentralDirectory"
COMMENT_FIELD = "ZIP.Comment"

_EOCD = struct.Struct("<IHHHHIIH")
_CENTRAL_LENGTHS = struct.Struct("<HHH")  # name, extra, comment at offset 28


@dataclass(frozen=True, slots=True)
class EOCDRecord:
    offset: int
    disk: int
    cd_disk: int
    disk_entries: int
    total_entries: int
    cd_size: int
    cd_offset: int
    comment_len: int

    @property
    def comment_start(self) -> int:
        return self.offset + EOCD_SIZE

    def ends_at(self, length: int) -> bool:
        return self.offset + EOCD_SIZE + self.comment_len == length


@dataclass(slots=True)
class CentralDirectorySummary:
    """Aggregated per-entry metadata sizes; entries are not listed one by one."""

    entries_walked: int = 0
    files_with_extra: int = 0
    extra_bytes: int = 0
    files_with_comment: int = 0
    comment_bytes: int = 0
    complete: bool = True
    end: int = 0


def parse_eocd(buffer: bytes, offset: int) -> EOCDRecord:
    _, disk, cd_disk, disk_entries, total, cd_size, cd_offset, comment_len = _EOCD.unpack_from(
        buffer, offset
    )
    return EOCDRecord(
        offset=offset,
        disk=disk,
        cd_disk=cd_disk,
        disk_entries=disk_entries,
        total_entries=total,
        cd_size=cd_size,
        cd_offset=cd_offset,
        comment_len=comment_len,
    )


def eocd_candidates(buffer: bytes) -> list[int]:
    """Offsets of EOCD signatures in the comment-sized tail, nearest to the end first."""

    last = len(buffer) - EOCD_SIZE
    if last < 0:
        return []
    floor = max(0, last - MAX_COMMENT_LENGTH)
    found: list[int] = []
    position = buffer.rfind(EOCD_SIGNATURE, floor, last + len(EOCD_SIGNATURE))
    while position != -1:
        found.append(position)
        position = buffer.rfind(EOCD_SIGNATURE, floor, position + len(EOCD_SIGNATURE) - 1)
    return found


def _consistent(buffer: bytes, record: EOCDRecord) -> bool:
    if not record.ends_at(len(buffer)):
        return False
    if record.cd_offset + record.cd_size != record.offset:
        return False
    if record.total_entries == 0:
        return True
    summary = walk_central_directory(buffer, record)
    return (
        summary.complete
        and summary.entries_walked == record.total_entries
        and summary.end == record.offset
    )


def find_eocd(buffer: bytes) -> EOCDRecord | None:
    """Locate the EOCD record, rejecting decoys planted in comments or entry data.

    A candidate is consistent when its comment runs to end of file, its central
    directory ends right where the record starts, and every declared entry can be
    walked. Consistent records with entries win over empty ones; ties go to the
    one nearest the end.
    """

    records = [parse_eocd(buffer, offset) for offset in eocd_candidates(buffer)]
    if not records:
        return None
    if len(records) == 1:
        return records[0]
    consistent = [record for record in records if _consistent(buffer, record)]
    populated = [record for record in consistent if record.total_entries > 0]
    # records are ordered nearest to the end first
    if populated:
        return populated[0]
    if consistent:
        return consistent[0]
    for record in records:
        if record.ends_at(len(buffer)):
            return record
    return records[0]


def walk_central_directory(buffer: bytes, record: EOCDRecord) -> CentralDirectorySummary:
    """Sum extra-field and file-comment sizes over the central directory.

    Declared counts and lengths are never trusted past the end of ``buffer``;
    the walk stops at the first bad header and reports what it saw.
    """

    summary = CentralDirectorySummary(end=record.cd_offset)
    position = record.cd_offset
    for _ in range(record.total_entries):
        if position + CENTRAL_HEADER_SIZE > len(buffer):
            summary.complete = False
            break
        if buffer[position : position + len(CENTRAL_SIGNATURE)] != CENTRAL_SIGNATURE:
            summary.complete = False
            break
        name_len, extra_len, comment_len = _CENTRAL_LENGTHS.unpack_from(buffer, position + 28)
        advance = CENTRAL_HEADER_SIZE + name_len + extra_len + comment_len
        if position + advance > len(buffer):
            summary.complete = False
            break
        if extra_len:
            summary.files_with_extra += 1
            summary.extra_bytes += extra_len
        if comment_len:
            summary.files_with_comment += 1
            summary.comment_bytes += comment_len
        summary.entries_walked += 1
        position += advance
        summary.end = position
    return summary


def archive_comment(buffer: bytes, record: EOCDRecord) -> bytes:
    return buffer[record.comment_start : record.comment_start + record.comment_len]


def clear_archive_comment(buffer: bytes, record: EOCDRecord) -> bytes:
    """Zero the comment length and cut the file right after the fixed EOCD."""

    return buffer[: record.offset + COMMENT_LENGTH_OFFSET] + b"\x00\x00"


def inspect_zip(detected: DetectedFile, config: Settings = settings) -> InspectionResult:
    """Report the archive comment and aggregated per-entry metadata."""

    result = InspectionResult(file=detected.path, type=FileType.ZIP)
    try:
        buffer = read_capped(detected.path, config.max_input_bytes)
    except (OSError, InputTooLargeError):
        return result
    record = find_eocd(buffer)
    if record is None:
        return result
    result.mark_block(CENTRAL_DIRECTORY_BLOCK)

    if record.comment_len > 0:
        comment = archive_comment(buffer, record)
        result.mark_block(COMMENT_FIELD)
        result.add(
            CanonicalField(
                canonical=COMMENT_FIELD,
                value=comment.decode("utf-8", errors="replace"),
                risk=risk_for(COMMENT_FIELD),
                block=ZIP_BLOCK,
                bytes=len(comment),
            )
        )

    summary = walk_central_directory(buffer, record)
    if summary.files_with_extra:
        result.add(
            CanonicalField(
                canonical="ZIP.ExtraFields",
                value=f"{summary.files_with_extra} files",
                risk=risk_for("ZIP.ExtraFields"),
                block=ZIP_BLOCK,
                bytes=summary.extra_bytes,
            )
        )
    if summary.files_with_comment:
        result.add(
            CanonicalField(
                canonical="ZIP.FileComments",
                value=f"{summary.files_with_comment} files",
                risk=risk_for("ZIP.FileComments"),
                block=ZIP_BLOCK,
                bytes=summary.comment_bytes,
            )
        )
    result.risk_tags = risk_tags_for(result.fields)
    return result


def strip_zip(
    source: Path,
    destination: Path,
    policy: Policy,
    config: Settings = settings,
) -> bool:
    """Write ``source`` without its archive comment; returns whether bytes changed.

    Per-entry extra fields and comments are left untouched.
    """

    buffer = read_capped(source, config.max_input_bytes)
    record = find_eocd(buffer)
    cleaned = buffer
    if record is not None and record.comment_len > 0 and not policy_keep(policy, COMMENT_FIELD):
        cleaned = clear_archive_comment(buffer, record)
    atomic_write(destination, cleaned)
    return cleaned != buffer


__all__ = [
    "CENTRAL_DIRECTORY_BLOCK",
    "COMMENT_FIELD",
    "CentralDirectorySummary",
    "EOCDRecord",
    "EOCD_SIZE",
    "archive_comment",
    "clear_archive_comment",
    "eocd_candidates",
    "find_eocd",
    "inspect_zip",
    "parse_eocd",
    "strip_zip",
    "walk_central_directory",
]
