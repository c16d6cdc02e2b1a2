from __future__ import annotations

from pathlib import Path
from typing import Any

import defusedxml.ElementTree as SafeElementTree
import exifread
from defusedxml import DefusedXmlException
from PIL import ExifTags, Image, IptcImagePlugin

from metasweep.errors import ProviderError
from metasweep.extraction.types import CanonicalField, DetectedFile, FileType, InspectionResult
from metasweep.policy.engine import Policy, policy_keep
from metasweep.policy.risk import risk_for, risk_tags_for
from metasweep.utils.files import staged_output

IMAGE_BLOCK = "Image"
COLOR_PROFILE_FIELD = "Image.ColorProfile"
DPI_FIELD = "Image.DPI"

_EXIF_ALIASES = {
    "BodySerialNumber": "SerialNumber",
    "CameraSerialNumber": "SerialNumber",
}
_EXIF_GROUPS_KEPT_AS_PREFIX = {"Thumbnail", "MakerNote"}
_SKIPPED_EXIF_NAMES = {
    "ExifOffset",
    "GPSInfo",
    "InteroperabilityOffset",
    "JPEGThumbnail",
    "TIFFThumbnail",
}
_IFD_POINTERS = {ExifTags.IFD.Exif, ExifTags.IFD.GPSInfo, ExifTags.IFD.Interop}
_XMP_INFO_KEYS = ("xmp", "XML:com.adobe.xmp")
_IPTC_NAMES = {
    (2, 5): "ObjectName",
    (2, 25): "Keywords",
    (2, 55): "DateCreated",
    (2, 80): "Byline",
    (2, 90): "City",
    (2, 95): "ProvinceState",
    (2, 101): "Country",
    (2, 105): "Headline",
    (2, 110): "Credit",
    (2, 115): "Source",
    (2, 116): "CopyrightNotice",
    (2, 120): "Caption",
}


def canonical_exif(name: str, group: str = "") -> str:
    """Map an EXIF tag name (and exifread group) to its canonical ``EXIF.*`` name."""

    name = _EXIF_ALIASES.get(name, name)
    if group in _EXIF_GROUPS_KEPT_AS_PREFIX:
        return f"EXIF.{group}.{name}"
    return f"EXIF.{name}"


def canonical_xmp(name: str) -> str:
    if name.startswith("History"):
        return "XMP.History"
    return f"XMP.{name}"


def canonical_iptc(record: int, dataset: int) -> str:
    return f"IPTC.{_IPTC_NAMES.get((record, dataset), f'{record}:{dataset}')}"


def _field(canonical: str, raw_key: str, value: str, block: str) -> CanonicalField:
    return CanonicalField(
        canonical=canonical,
        value=value,
        risk=risk_for(canonical),
        block=block,
        bytes=len(raw_key) + len(value),
    )


def _collect_exif(path: Path) -> list[CanonicalField]:
    with path.open("rb") as stream:
        tags = exifread.process_file(stream, details=False)
    fields: list[CanonicalField] = []
    for key, value in tags.items():
        group, _, name = key.partition(" ")
        if not name:
            group, name = "", group
        if name in _SKIPPED_EXIF_NAMES:
            continue
        fields.append(_field(canonical_exif(name, group), key, str(value), "EXIF"))
    return fields


def _xmp_packet(image: Image.Image) -> bytes | None:
    for key in _XMP_INFO_KEYS:
        packet = image.info.get(key)
        if packet:
            return packet.encode("utf-8") if isinstance(packet, str) else packet
    return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _collect_xmp(image: Image.Image) -> list[CanonicalField]:
    packet = _xmp_packet(image)
    if packet is None:
        return []
    try:
        root = SafeElementTree.fromstring(packet.strip(b"\x00 \t\r\n"))
    except (SafeElementTree.ParseError, DefusedXmlException):
        return [_field("XMP.Packet", "xmp", f"{len(packet)} bytes, unparsed", "XMP")]
    fields: list[CanonicalField] = []
    for description in root.iter("{http://www.w3.org/1999/02/22-rdf-syntax-ns#}Description"):
        for attribute, value in description.attrib.items():
            name = _local_name(attribute)
            if name == "about":
                continue
            fields.append(_field(canonical_xmp(name), name, value, "XMP"))
        for child in description:
            name = _local_name(child.tag)
            text = " ".join(part.strip() for part in child.itertext() if part.strip())
            fields.append(_field(canonical_xmp(name), name, text, "XMP"))
    return fields


def _collect_iptc(image: Image.Image) -> list[CanonicalField]:
    info = IptcImagePlugin.getiptcinfo(image)
    if not info:
        return []
    fields: list[CanonicalField] = []
    for (record, dataset), raw in info.items():
        values = raw if isinstance(raw, list) else [raw]
        text = "; ".join(item.decode("utf-8", errors="replace") for item in values)
        fields.append(_field(canonical_iptc(record, dataset), f"{record}:{dataset}", text, "IPTC"))
    return fields


def _collect_image_properties(image: Image.Image) -> list[CanonicalField]:
    fields: list[CanonicalField] = []
    icc = image.info.get("icc_profile")
    if icc:
        fields.append(
            CanonicalField(
                canonical=COLOR_PROFILE_FIELD,
                value=f"{len(icc)} byte ICC profile",
                risk=risk_for(COLOR_PROFILE_FIELD),
                block=IMAGE_BLOCK,
                bytes=len(icc),
            )
        )
    dpi = image.info.get("dpi")
    if dpi:
        value = "x".join(str(round(float(part))) for part in dpi)
        fields.append(_field(DPI_FIELD, "dpi", value, IMAGE_BLOCK))
    return fields


def read_image_metadata(path: Path) -> list[CanonicalField]:
    """Return canonical fields in EXIF, XMP, IPTC, Image order."""

    try:
        fields = _collect_exif(path)
        with Image.open(path) as image:
            fields.extend(_collect_xmp(image))
            fields.extend(_collect_iptc(image))
            fields.extend(_collect_image_properties(image))
    except Exception as error:
        raise ProviderError(f"cannot read image metadata from {path.name}: {error}") from error
    return fields


def inspect_image(detected: DetectedFile) -> InspectionResult:
    """Report EXIF, XMP and IPTC metadata plus colour profile and density."""

    result = InspectionResult(file=detected.path, type=FileType.IMAGE)
    for item in read_image_metadata(detected.path):
        result.mark_block(item.block)
        result.add(item)
    result.risk_tags = risk_tags_for(result.fields)
    return result


def _kept_ifd(ifd: dict[int, Any], names: dict[int, str], policy: Policy) -> dict[int, Any]:
    return {
        tag: value
        for tag, value in ifd.items()
        if tag not in _IFD_POINTERS
        and policy_keep(policy, canonical_exif(names.get(tag, f"Tag 0x{tag:04X}")))
    }


def filter_exif(exif: Image.Exif, policy: Policy) -> Image.Exif:
    """Copy of ``exif`` holding only the tags the policy keeps."""

    kept = Image.Exif()
    for tag, value in _kept_ifd(dict(exif.items()), ExifTags.TAGS, policy).items():
        kept[tag] = value
    for pointer, names in ((ExifTags.IFD.Exif, ExifTags.TAGS), (ExifTags.IFD.GPSInfo, ExifTags.GPSTAGS)):
        if pointer not in exif:
            continue
        sub_ifd = _kept_ifd(exif.get_ifd(pointer), names, policy)
        if sub_ifd:
            kept[pointer] = sub_ifd
    return kept


def _save_options(image: Image.Image, policy: Policy) -> dict[str, Any]:
    kept_exif = filter_exif(image.getexif(), policy)
    options: dict[str, Any] = {
        "format": image.format,
        "exif": kept_exif.tobytes() if len(kept_exif) else b"",
        "xmp": b"",
        "icc_profile": None,
    }
    if policy_keep(policy, COLOR_PROFILE_FIELD) and image.info.get("icc_profile"):
        options["icc_profile"] = image.info["icc_profile"]
    if policy_keep(policy, DPI_FIELD) and image.info.get("dpi"):
        options["dpi"] = image.info["dpi"]
    if image.format == "JPEG":
        options["quality"] = "keep"
        options["subsampling"] = "keep"
    elif image.format == "WEBP":
        options["lossless"] = True
    if getattr(image, "n_frames", 1) > 1:
        options["save_all"] = True
    return options


def strip_image(source: Path, destination: Path, policy: Policy) -> bool:
    """Re-save ``source`` with only the metadata the policy keeps.

    XMP and IPTC packets are never carried into the rewritten file.
    """

    try:
        with Image.open(source) as image, staged_output(destination) as temp_path:
            image.save(temp_path, **_save_options(image, policy))
    except Exception as error:
        raise ProviderError(f"cannot rewrite image {source.name}: {error}") from error
    return True


__all__ = [
    "canonical_exif",
    "canonical_iptc",
    "canonical_xmp",
    "filter_exif",
    "inspect_image",
    "read_image_metadata",
    "strip_image",
]
