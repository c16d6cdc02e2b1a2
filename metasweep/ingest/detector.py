from __future__ import annotations

from pathlib import Path

from metasweep.extraction.types import Block, DetectedFile, FileType

HEADER_SIZE = 16

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_ZIP_THIRD = {3, 5, 7}
_ZIP_FOURTH = {4, 6, 8}
_ZIP_RECORDS = {
    (3, 4): ("ZIP.LocalHeader", 30),
    (5, 6): ("ZIP.EndOfCentralDirectory", 22),
    (7, 8): ("ZIP.SpanMarker", 4),
}


class FileDetector:
    """Classify files by their leading magic bytes, ignoring the extension."""

    def detect(self, path: Path) -> DetectedFile:
        """Return the detected file type; unreadable input is ``UNKNOWN``."""

        try:
            with path.open("rb") as handle:
                head = handle.read(HEADER_SIZE)
        except OSError:
            return DetectedFile(path=path, type=FileType.UNKNOWN)
        kind = classify_header(head)
        return DetectedFile(path=path, type=kind, blocks=header_blocks(kind, head))


def classify_header(head: bytes) -> FileType:
    """Map a file header to a :class:`FileType`."""

    if head[:3] == b"\xff\xd8\xff":
        return FileType.IMAGE
    if head[:8] == _PNG_SIGNATURE:
        return FileType.IMAGE
    if len(head) >= 12 and head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return FileType.IMAGE
    if head.startswith(b"%PDF-"):
        return FileType.PDF
    if head.startswith((b"ID3", b"fLaC")):
        return FileType.AUDIO
    if len(head) >= 4 and head[:2] == b"PK" and head[2] in _ZIP_THIRD and head[3] in _ZIP_FOURTH:
        return FileType.ZIP
    return FileType.UNKNOWN


def _syncsafe(data: bytes) -> int:
    size = 0
    for byte in data:
        size = (size << 7) | (byte & 0x7F)
    return size


def _image_blocks(head: bytes) -> tuple[Block, ...]:
    if head[:3] == b"\xff\xd8\xff":
        blocks = [Block("JPEG.SOI", 2)]
        # First segment after SOI; its length field counts itself.
        if len(head) >= 6 and 0xE0 <= head[3] <= 0xEF:
            blocks.append(Block(f"JPEG.APP{head[3] - 0xE0}", int.from_bytes(head[4:6], "big")))
        return tuple(blocks)
    if head[:8] == _PNG_SIGNATURE:
        blocks = [Block("PNG.Signature", 8)]
        if len(head) >= 16:
            chunk = head[12:16].decode("latin-1")
            blocks.append(Block(f"PNG.{chunk}", int.from_bytes(head[8:12], "big")))
        return tuple(blocks)
    return (Block("RIFF", int.from_bytes(head[4:8], "little")),)


def header_blocks(kind: FileType, head: bytes) -> tuple[Block, ...]:
    """Raw blocks visible in the header bytes of an already classified file."""

    if kind is FileType.IMAGE:
        return _image_blocks(head)
    if kind is FileType.PDF:
        line_end = len(head)
        for terminator in (b"\r", b"\n"):
            found = head.find(terminator)
            if found != -1:
                line_end = min(line_end, found)
        return (Block("PDF.Header", line_end),)
    if kind is FileType.AUDIO:
        if head.startswith(b"ID3") and len(head) >= 10:
            return (Block("ID3v2", 10 + _syncsafe(head[6:10])),)
        if head.startswith(b"fLaC"):
            return (Block("FLAC.Marker", 4),)
        return ()
    if kind is FileType.ZIP:
        name, size = _ZIP_RECORDS.get((head[2], head[3]), ("ZIP.Record", 4))
        return (Block(name, size),)
    return ()


__all__ = ["FileDetector", "HEADER_SIZE", "classify_header", "header_blocks"]
