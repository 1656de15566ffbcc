"""Validate CLI command: check that a findings document loads."""

from __future__ import annotations

from pathlib import Path

import click

from scangate.cli.utils import fail_with, success
from scangate.errors import LoadError
from scangate.loader import load


@click.command(
    name="validate",
    help="""\b
Check that a findings document loads, without applying any policy.

Exit codes:
  0: Document is valid
  3: File not found
  5: Malformed document or unknown severity
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("findings", type=click.Path(dir_okay=False, path_type=Path))
def validate_command(findings: Path) -> None:
    """Load FINDINGS and print a per-severity summary."""
    try:
        report = load(findings)
    except LoadError as e:
        fail_with(e)

    counts = " ".join(f"{name}={count}" for name, count in report.counts_by_severity().items())
    success(f"{findings}: {len(report.findings)} findings from {report.tool} ({counts})")
