from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import typer

from metasweep import __version__
from metasweep.config import settings
from metasweep.errors import PolicyError
from metasweep.extraction.pdf import PdfStripMode
from metasweep.ingest.service import SweepService
from metasweep.policy.engine import BUILTIN_POLICIES, Policy, get_builtin, load_policy
from metasweep.policy.risk import worst_risk
from metasweep.report.render import (
    format_plan,
    format_pretty,
    format_risks,
    format_summary,
    render_json,
    write_report,
)
from metasweep.utils.files import collect_targets, derive_output_path

app = typer.Typer(help="Inspect and strip privacy-sensitive file metadata.", add_completion=False)


class OutputFormat(str, Enum):
    PRETTY = "pretty"
    JSON = "json"


def _version_callback(
    ctx: typer.Context,
    param: Any,
    value: bool,
) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def _main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Root entry point."""


def _service() -> SweepService:
    return SweepService(config=settings)


def _targets(paths: list[Path], recursive: bool) -> list[Path]:
    targets = collect_targets(paths, recursive=recursive)
    if not targets:
        typer.echo("No files to process.", err=True)
        raise typer.Exit(code=1)
    return targets


def _policy_or_exit(
    safe: bool,
    policy_file: Path | None,
    keep: list[str] | None,
    drop: list[str] | None,
) -> Policy:
    base = "safe" if safe else settings.default_policy
    try:
        return load_policy(base=base, policy_file=policy_file, keep=keep, drop=drop)
    except PolicyError as error:
        typer.echo(f"Policy error: {error}", err=True)
        raise typer.Exit(code=2) from error


def _report_failures(service: SweepService) -> None:
    for event in service.audit.errors():
        typer.echo(f"warning: {event.event} {event.path}: {event.details.get('error')}", err=True)


@app.command(help="List the metadata found in files.")
def inspect(
    targets: list[Path] = typer.Argument(..., help="Files or directories."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into subdirectories."),
    output_format: OutputFormat = typer.Option(OutputFormat.PRETTY, "--format", help="Output format."),
    report: Path | None = typer.Option(None, "--report", help="Also write a JSON report here."),
) -> None:
    service = _service()
    results = service.inspect_many(_targets(targets, recursive))
    if output_format is OutputFormat.JSON:
        typer.echo(render_json(results))
    else:
        typer.echo("\n\n".join(format_pretty(result) for result in results))
        typer.echo(f"\noverall risk: {worst_risk(results)}")
    if report is not None:
        write_report(report, results)
    _report_failures(service)


@app.command(help="Write copies of files without the metadata the policy drops.")
def strip(
    targets: list[Path] = typer.Argument(..., help="Files or directories."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into subdirectories."),
    out_dir: Path | None = typer.Option(None, "--out-dir", "-o", help="Directory for cleaned copies."),
    in_place: bool = typer.Option(False, "--in-place", help="Overwrite the original files."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before overwriting."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the keep/drop plan and write nothing."),
    safe: bool = typer.Option(False, "--safe", help="Use the safe preset instead of the default."),
    policy_file: Path | None = typer.Option(None, "--policy-file", help="JSON policy file."),
    keep: list[str] | None = typer.Option(None, "--keep", help="Extra keep pattern (repeatable)."),
    drop: list[str] | None = typer.Option(None, "--drop", help="Extra drop pattern (repeatable)."),
    pdf_mode: PdfStripMode | None = typer.Option(None, "--pdf-mode", help="PDF Info redaction mode."),
    output_format: OutputFormat = typer.Option(OutputFormat.PRETTY, "--format", help="Output format."),
    report: Path | None = typer.Option(None, "--report", help="Write a JSON report of the results."),
) -> None:
    if in_place and out_dir is not None:
        raise typer.BadParameter("--in-place and --out-dir are mutually exclusive.")
    run_policy = _policy_or_exit(safe, policy_file, keep, drop)
    paths = _targets(targets, recursive)
    service = _service()

    if dry_run:
        for path in paths:
            result = service.inspect_path(path)
            output = derive_output_path(path, out_dir, in_place, settings.output_suffix)
            typer.echo(format_plan(result, service.plan(result, run_policy)))
            typer.echo(f"  would write {output}")
        return

    if in_place and not yes:
        typer.confirm(f"Overwrite {len(paths)} file(s) in place?", abort=True)

    outcomes = service.strip_many(
        paths, run_policy, out_dir=out_dir, in_place=in_place, pdf_mode=pdf_mode
    )
    after = [outcome.after for outcome in outcomes]
    if output_format is OutputFormat.JSON:
        typer.echo(render_json(after))
    else:
        for outcome in outcomes:
            typer.echo(format_summary(outcome))
        counts = service.audit.counts()
        typer.echo(
            f"{counts['strip.completed']} written, {counts['strip.skipped']} skipped, "
            f"{counts['strip.failed']} failed"
        )
    if report is not None:
        write_report(report, after)
    _report_failures(service)


@app.command(help="Explain the privacy risk of one file.")
def explain(target: Path = typer.Argument(..., help="File to explain.")) -> None:
    service = _service()
    typer.echo(format_risks(service.inspect_path(target)))
    _report_failures(service)


@app.command(help="List the built-in policies or show one of them.")
def policy(name: str | None = typer.Argument(None, help="Built-in policy name.")) -> None:
    if name is None:
        for known in sorted(BUILTIN_POLICIES):
            marker = " (default)" if known == settings.default_policy else ""
            typer.echo(f"{known}{marker}")
        return
    try:
        chosen = get_builtin(name)
    except PolicyError as error:
        typer.echo(f"Policy error: {error}", err=True)
        raise typer.Exit(code=2) from error
    typer.echo(chosen.name)
    typer.echo("  keep: " + ", ".join(chosen.keep))
    typer.echo("  drop: " + ", ".join(chosen.drop))


def main() -> None:  # pragma: no cover - delegated to Typer
    app()


__all__ = ["app", "main"]
