from __future__ import annotations

import json
from pathlib import Path

import pytest
from _pytest.monkeypatch import MonkeyPatch
from typer.testing import CliRunner

from metasweep import __version__
from metasweep.cli import app
from metasweep.config import Settings


@pytest.fixture(autouse=True)
def isolated_settings(temp_settings: Settings, monkeypatch: MonkeyPatch) -> Settings:
    monkeypatch.setattr("metasweep.cli.settings", temp_settings)
    return temp_settings


def test_cli_version_flag() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_cli_inspect_pretty(sample_pdf: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["inspect", str(sample_pdf)])
    assert result.exit_code == 0
    assert "PDF.Title = Secret (MEDIUM) [PDF.Info]" in result.stdout
    assert "overall risk: MEDIUM" in result.stdout


def test_cli_inspect_json_and_report(sample_pdf: Path, tmp_path: Path) -> None:
    report = tmp_path / "report.json"
    runner = CliRunner()
    result = runner.invoke(app, ["inspect", str(sample_pdf), "--format", "json", "--report", str(report)])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["files"][0]["type"] == "pdf"
    assert payload["files"][0]["fields"][0]["name"] == "PDF.Title"
    assert json.loads(report.read_text(encoding="utf-8")) == payload


def test_cli_strip_writes_cleaned_copy(sample_pdf: Path, tmp_path: Path) -> None:
    out_dir = tmp_path / "clean"
    runner = CliRunner()
    result = runner.invoke(app, ["strip", str(sample_pdf), "-o", str(out_dir)])
    assert result.exit_code == 0
    assert "Stripped" in result.stdout
    assert "1 written, 0 skipped, 0 failed" in result.stdout
    assert b"/Title ()" in (out_dir / "report.cleaned.pdf").read_bytes()


def test_cli_strip_dry_run_writes_nothing(sample_pdf: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["strip", str(sample_pdf), "--dry-run", "--safe", "--keep", "PDF.Title"])
    assert result.exit_code == 0
    assert "KEEP PDF.Title (keep PDF.Title)" in result.stdout
    assert "DROP PDF.Author (drop PDF.Author)" in result.stdout
    assert not sample_pdf.with_name("report.cleaned.pdf").exists()


def test_cli_in_place_requires_confirmation(sample_pdf: Path) -> None:
    original = sample_pdf.read_bytes()
    runner = CliRunner()
    result = runner.invoke(app, ["strip", str(sample_pdf), "--in-place"], input="n\n")
    assert result.exit_code == 1
    assert sample_pdf.read_bytes() == original

    result = runner.invoke(app, ["strip", str(sample_pdf), "--in-place", "--yes"])
    assert result.exit_code == 0
    assert b"(Secret)" not in sample_pdf.read_bytes()


def test_cli_bad_policy_file_exits_with_code_2(sample_pdf: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["strip", str(sample_pdf), "--policy-file", str(tmp_path / "missing.json")])
    assert result.exit_code == 2
    assert not sample_pdf.with_name("report.cleaned.pdf").exists()


def test_cli_explain(sample_pdf: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["explain", str(sample_pdf)])
    assert result.exit_code == 0
    assert "MEDIUM PDF.Author = Bob" in result.stdout
    assert "verdict: review before sharing" in result.stdout


def test_cli_policy_listing() -> None:
    runner = CliRunner()
    listing = runner.invoke(app, ["policy"])
    assert listing.exit_code == 0
    assert "aggressive (default)" in listing.stdout
    assert "safe" in listing.stdout

    shown = runner.invoke(app, ["policy", "safe"])
    assert shown.exit_code == 0
    assert "EXIF.GPS*" in shown.stdout

    unknown = runner.invoke(app, ["policy", "paranoid"])
    assert unknown.exit_code == 2
