from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from metasweep.config import Settings, settings
from metasweep.errors import MetasweepError
from metasweep.extraction.archive import inspect_zip, strip_zip
from metasweep.extraction.audio import inspect_audio, strip_audio
from metasweep.extraction.image import inspect_image, strip_image
from metasweep.extraction.pdf import PdfStripMode, inspect_pdf, strip_pdf
from metasweep.extraction.types import (
    CanonicalField,
    DetectedFile,
    FileType,
    InspectionResult,
    StripOutcome,
)
from metasweep.ingest.detector import FileDetector
from metasweep.policy.engine import Decision, Policy, decide
from metasweep.utils.audit import ERROR, INFO, WARNING, AuditTrail
from metasweep.utils.files import derive_output_path, sha256_file


class SweepService:
    """Route files to their backend, inspect them and write redacted copies.

    Every file is processed in isolation: a failure is recorded in the audit
    trail and reported as "nothing found" for that file only.
    """

    def __init__(
        self,
        config: Settings = settings,
        detector: FileDetector | None = None,
        audit: AuditTrail | None = None,
    ) -> None:
        self.config = config
        self.detector = detector or FileDetector()
        self.audit = audit or AuditTrail(config.log_dir)

    def inspect_path(self, path: Path) -> InspectionResult:
        """Detect and inspect one file."""

        detected = self.detector.detect(path)
        self.audit.record(
            INFO,
            "inspect.detected",
            path=path,
            type=detected.type.value,
            blocks=[f"{block.name}:{block.size}" for block in detected.blocks],
        )
        result = self._inspect_detected(detected)
        self.audit.record(
            INFO,
            "inspect.completed",
            path=path,
            fields=result.names,
            meta_bytes=result.meta_bytes,
        )
        return result

    def inspect_many(self, paths: Iterable[Path]) -> list[InspectionResult]:
        return [self.inspect_path(path) for path in paths]

    def plan(self, result: InspectionResult, policy: Policy) -> list[tuple[CanonicalField, Decision]]:
        """Policy decision for every field of ``result``."""

        decisions = [(item, decide(policy, item.canonical)) for item in result.fields]
        self.audit.record(
            INFO,
            "strip.planned",
            path=result.file,
            policy=policy.name,
            drop=[item.canonical for item, decision in decisions if not decision.keep],
        )
        return decisions

    def strip_path(
        self,
        path: Path,
        policy: Policy,
        output: Path | None = None,
        pdf_mode: PdfStripMode | None = None,
    ) -> StripOutcome:
        """Write a copy of ``path`` without the metadata ``policy`` drops."""

        destination = output or derive_output_path(path, suffix=self.config.output_suffix)
        before = self.inspect_path(path)
        if before.type is FileType.UNKNOWN:
            self.audit.record(WARNING, "strip.skipped", path=path, reason="unknown file type")
            return StripOutcome(source=path, output=destination, before=before, after=before, written=False)

        mode = pdf_mode or PdfStripMode(self.config.pdf_strip_mode)
        try:
            changed = self._run_strip(before.type, path, destination, policy, mode)
        except (MetasweepError, OSError) as error:
            self.audit.record(ERROR, "strip.failed", path=path, error=str(error))
            return StripOutcome(source=path, output=destination, before=before, after=before, written=False)

        after = self._inspect_detected(DetectedFile(path=destination, type=before.type))
        removed = [name for name in before.names if name not in after.names]
        self.audit.record(
            INFO,
            "strip.completed",
            path=path,
            output=destination,
            policy=policy.name,
            changed=changed,
            removed=removed,
            sha256=sha256_file(destination),
        )
        return StripOutcome(source=path, output=destination, before=before, after=after)

    def strip_many(
        self,
        paths: Iterable[Path],
        policy: Policy,
        out_dir: Path | None = None,
        in_place: bool = False,
        pdf_mode: PdfStripMode | None = None,
    ) -> list[StripOutcome]:
        outcomes: list[StripOutcome] = []
        for path in paths:
            output = derive_output_path(path, out_dir, in_place, self.config.output_suffix)
            outcomes.append(self.strip_path(path, policy, output=output, pdf_mode=pdf_mode))
        return outcomes

    def _inspect_detected(self, detected: DetectedFile) -> InspectionResult:
        try:
            return self._run_inspection(detected)
        except (MetasweepError, OSError) as error:
            self.audit.record(ERROR, "inspect.failed", path=detected.path, error=str(error))
            return InspectionResult(file=detected.path, type=detected.type)

    def _run_inspection(self, detected: DetectedFile) -> InspectionResult:
        if detected.type is FileType.IMAGE:
            return inspect_image(detected)
        if detected.type is FileType.PDF:
            return inspect_pdf(detected, config=self.config)
        if detected.type is FileType.AUDIO:
            return inspect_audio(detected)
        if detected.type is FileType.ZIP:
            return inspect_zip(detected, config=self.config)
        return InspectionResult(file=detected.path, type=FileType.UNKNOWN)

    def _run_strip(
        self,
        kind: FileType,
        source: Path,
        destination: Path,
        policy: Policy,
        mode: PdfStripMode,
    ) -> bool:
        if kind is FileType.IMAGE:
            return strip_image(source, destination, policy)
        if kind is FileType.PDF:
            return strip_pdf(source, destination, policy, mode=mode, config=self.config)
        if kind is FileType.AUDIO:
            return strip_audio(source, destination, policy)
        return strip_zip(source, destination, policy, config=self.config)


__all__ = ["SweepService"]
