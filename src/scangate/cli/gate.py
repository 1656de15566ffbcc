"""Gate CLI command.

This module provides the `scangate gate` command: load a scanner's findings,
apply the severity policy, consult the Bypass Authority on violation, print
the verdict, and exit with the verdict's code.

Bypass requests are read from GATE_BYPASS_TOKEN and GATE_BYPASS_REASON here,
at the CLI edge, and passed down explicitly.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
import structlog

from scangate.audit import AuditLog
from scangate.bypass import BypassAuthority
from scangate.cli.utils import exit_code_for_status, fail_with, success, warn
from scangate.config import (
    SUPPORTED_SCANNERS,
    audit_log_path,
    bypass_config,
    bypass_request,
    findings_path_for,
    load_settings,
    resolve_policy,
)
from scangate.errors import ScangateError
from scangate.gate import PolicyGate
from scangate.report import render, write_artifact_metadata
from scangate.schemas.findings import Severity

logger = structlog.get_logger(__name__)


@click.command(
    name="gate",
    help="""\b
Evaluate scan findings against the security policy.

Findings are read from --findings, or from
<scan results dir>/<scanner>-results.json when only --scanner is given.

An emergency bypass is requested by setting both GATE_BYPASS_TOKEN and
GATE_BYPASS_REASON. Every bypass decision is written to the audit log.

Exit codes:
  0: PASS, or BYPASSED with an audited override
  1: FAIL (findings at or above the threshold)
  2: Usage error
  3: Findings file not found
  5: Malformed findings or unknown severity
  6: Invalid policy or gate settings

Examples:
    $ scangate gate -s trivy
    $ scangate gate --findings scan.json --threshold CRITICAL dist/app.tar
    $ GATE_BYPASS_TOKEN=... GATE_BYPASS_REASON="Critical production hotfix" \\
        scangate gate -s grype
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--scanner",
    "-s",
    type=click.Choice(SUPPORTED_SCANNERS),
    default="trivy",
    show_default=True,
    help="Scanner whose results file is evaluated.",
)
@click.option(
    "--findings",
    "-f",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Normalized findings document (overrides --scanner).",
)
@click.option(
    "--policy",
    "-p",
    "policy_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML/JSON policy file [env: GATE_POLICY_FILE].",
)
@click.option(
    "--threshold",
    "-t",
    type=click.Choice([s.value for s in Severity], case_sensitive=False),
    default=None,
    help="Severity threshold, overriding policy file and environment.",
)
@click.option(
    "--audit-log",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Audit log file [env: GATE_AUDIT_LOG].",
)
@click.option(
    "--output-format",
    "-o",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Verdict output format on stdout.",
)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(".env"),
    show_default=True,
    help="Dotenv file with GATE_* settings (ignored when missing).",
)
@click.argument(
    "artifact_path",
    required=False,
    type=click.Path(exists=True, path_type=Path),
)
def gate_command(
    scanner: str,
    findings: Path | None,
    policy_file: Path | None,
    threshold: str | None,
    audit_log: Path | None,
    output_format: str,
    env_file: Path,
    artifact_path: Path | None,
) -> None:
    """Run the policy gate and exit with its verdict."""
    try:
        settings = load_settings(env_file)
        findings_path = findings or findings_path_for(scanner, settings)
        policy = resolve_policy(settings, policy_file=policy_file, threshold=threshold)

        audit = AuditLog(
            audit_log_path(settings, audit_log),
            max_attempts=settings.audit_max_attempts,
            lock_timeout_seconds=settings.audit_lock_timeout,
        )
        authority = BypassAuthority(bypass_config(settings), audit_sink=audit)
        gate = PolicyGate(authority, max_findings_bytes=settings.max_findings_bytes)

        verdict = gate.run(findings_path, policy, bypass_request(settings))
    except ScangateError as e:
        fail_with(e)

    success(render(verdict, output_format))

    if artifact_path is not None:
        try:
            write_artifact_metadata(artifact_path, verdict, policy)
        except OSError as e:
            logger.error("artifact_metadata_failed", artifact=str(artifact_path), error=str(e))
            warn("Could not update artifact metadata", artifact=str(artifact_path))

    sys.exit(exit_code_for_status(verdict.status))
