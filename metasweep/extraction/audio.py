from __future__ import annotations

import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile
from mutagen.easyid3 import EasyID3
from mutagen.flac import FLAC
from mutagen.id3 import ID3NoHeaderError
from mutagen.id3 import delete as delete_id3
from mutagen.oggvorbis import OggVorbis

from metasweep.errors import ProviderError
from metasweep.extraction.types import CanonicalField, DetectedFile, FileType, InspectionResult
from metasweep.policy.engine import Policy, policy_keep
from metasweep.policy.risk import risk_for, risk_tags_for
from metasweep.utils.files import atomic_copy, staged_output

# Easy-tag key and the ID3 frame used as canonical name, in report order.
BASIC_TAGS = (
    ("title", "ID3.TIT2"),
    ("artist", "ID3.TPE1"),
    ("album", "ID3.TALB"),
    ("date", "ID3.TDRC"),
)


def _has_id3_header(path: Path) -> bool:
    with path.open("rb") as handle:
        return handle.read(3) == b"ID3"


def _open_tags(path: Path) -> tuple[str, Mapping[str, Any] | None]:
    if _has_id3_header(path):
        try:
            return "ID3", EasyID3(str(path))
        except ID3NoHeaderError:
            return "ID3", None
    audio = MutagenFile(str(path), easy=True)
    if audio is None:
        return "Tag", None
    block = "Vorbis" if isinstance(audio, (FLAC, OggVorbis)) else "Tag"
    return block, audio.tags


def read_audio_fields(path: Path) -> tuple[str, list[CanonicalField]]:
    """Return the tag block name and its title/artist/album/year fields."""

    try:
        block, tags = _open_tags(path)
    except Exception as error:
        raise ProviderError(f"cannot read audio tags from {path.name}: {error}") from error
    fields: list[CanonicalField] = []
    if not tags:
        return block, fields
    for key, canonical in BASIC_TAGS:
        values = tags.get(key) or []
        value = "; ".join(str(item) for item in values if str(item))
        if not value:
            continue
        fields.append(
            CanonicalField(
                canonical=canonical,
                value=value,
                risk=risk_for(canonical),
                block=block,
                bytes=len(value.encode("utf-8")),
            )
        )
    return block, fields


def inspect_audio(detected: DetectedFile) -> InspectionResult:
    result = InspectionResult(file=detected.path, type=FileType.AUDIO)
    block, fields = read_audio_fields(detected.path)
    if fields:
        result.mark_block(block)
    result.fields.extend(fields)
    result.risk_tags = risk_tags_for(result.fields)
    return result


def _clear_tags(path: Path) -> None:
    if _has_id3_header(path):
        delete_id3(str(path))
        return
    audio = MutagenFile(str(path))
    if audio is not None and audio.tags is not None:
        audio.delete()


def strip_audio(source: Path, destination: Path, policy: Policy) -> bool:
    """Clear every tag when the policy drops any present field.

    The tag library only supports clearing all tags, so a file whose fields
    are all kept is copied unchanged.
    """

    _, fields = read_audio_fields(source)
    if all(policy_keep(policy, item.canonical) for item in fields):
        atomic_copy(source, destination)
        return False
    try:
        with staged_output(destination) as temp_path:
            shutil.copyfile(source, temp_path)
            _clear_tags(temp_path)
    except Exception as error:
        raise ProviderError(f"cannot clear audio tags in {source.name}: {error}") from error
    return True


__all__ = ["BASIC_TAGS", "inspect_audio", "read_audio_fields", "strip_audio"]
