from __future__ import annotations

import sys
import zipfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from metasweep.config import Settings  # noqa: E402
from metasweep.ingest.service import SweepService  # noqa: E402

SAMPLE_PDF = (
    b"%PDF-1.4\n"
    b"1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"5 0 obj<</Title (Secret)/Author (Bob)>>endobj\n"
    b"trailer<</Root 1 0 R/Info 5 0 R>>\n"
    b"%%EOF\n"
)


@pytest.fixture()
def temp_settings(tmp_path: Path) -> Settings:
    return Settings(log_dir=tmp_path / "logs")


@pytest.fixture()
def sweep_service(temp_settings: Settings) -> SweepService:
    return SweepService(config=temp_settings)


@pytest.fixture()
def sample_pdf(tmp_path: Path) -> Path:
    path = tmp_path / "report.pdf"
    path.write_bytes(SAMPLE_PDF)
    return path


@pytest.fixture()
def commented_zip(tmp_path: Path) -> Path:
    path = tmp_path / "bundle.zip"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("notes.txt", "hello")
        archive.comment = b"0123456789"
    return path
