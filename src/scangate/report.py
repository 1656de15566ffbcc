"""Verdict rendering and artifact metadata.

The verdict is printed to stdout either as a short human-readable summary or
as a single JSON document. When the gate runs against a build artifact, the
verdict is also recorded next to it in <artifact>.metadata.json so later
pipeline stages can see how the artifact was admitted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from scangate.schemas.policy import GatePolicy
from scangate.schemas.verdict import GateStatus, Verdict

logger = structlog.get_logger(__name__)

METADATA_SUFFIX = ".metadata.json"

_STATUS_LINES: dict[GateStatus, str] = {
    GateStatus.PASS: "PASS: no findings at or above threshold",
    GateStatus.FAIL: "FAIL: findings at or above threshold",
    GateStatus.BYPASSED: "BYPASSED: policy violations overridden",
}


def render_text(verdict: Verdict) -> str:
    """Human-readable verdict summary.

    Example:
        >>> print(render_text(verdict))
        Policy gate FAIL: findings at or above threshold
          Scanner:   trivy
          Target:    app:1.0
          Threshold: HIGH
          Findings:  critical=1 high=0 medium=0 low=0 (exempted: 0)
          Violations:
            - CVE-2023-0001 [CRITICAL] openssl
    """
    counts = " ".join(f"{name}={count}" for name, count in verdict.finding_counts.items())
    lines = [
        f"Policy gate {_STATUS_LINES[verdict.status]}",
        f"  Scanner:   {verdict.tool}",
        f"  Target:    {verdict.target}",
        f"  Threshold: {verdict.threshold.value}",
        f"  Findings:  {counts} (exempted: {verdict.exempted_count})",
    ]
    if verdict.violations:
        label = "Overridden" if verdict.status is GateStatus.BYPASSED else "Violations"
        lines.append(f"  {label}:")
        for finding in verdict.violations:
            lines.append(f"    - {finding.id} [{finding.severity.value}] {finding.package}")
    if verdict.bypass_reason is not None:
        lines.append(f"  Bypass reason: {verdict.bypass_reason}")
    if verdict.rejection is not None:
        lines.append(f"  Bypass rejected: {verdict.rejection}")
    return "\n".join(lines)


def render_json(verdict: Verdict) -> str:
    """Verdict as an indented JSON document."""
    return json.dumps(verdict.to_dict(), indent=2)


def render(verdict: Verdict, output_format: str = "text") -> str:
    """Render a verdict in the given format ("text" or "json")."""
    if output_format == "json":
        return render_json(verdict)
    if output_format == "text":
        return render_text(verdict)
    raise ValueError(f"Unsupported output format: {output_format!r}")


def metadata_path_for(artifact_path: str | Path) -> Path:
    """Metadata file recorded beside an artifact."""
    artifact = Path(artifact_path)
    return artifact.with_name(artifact.name + METADATA_SUFFIX)


def write_artifact_metadata(
    artifact_path: str | Path,
    verdict: Verdict,
    policy: GatePolicy,
) -> Path:
    """Record the verdict in <artifact>.metadata.json.

    Existing keys in the metadata file are preserved; only the
    "security_gate" section is replaced.

    Args:
        artifact_path: The gated artifact.
        verdict: Verdict to record.
        policy: Policy the verdict was reached under.

    Returns:
        Path of the metadata file.

    Raises:
        OSError: If the metadata file cannot be written.
    """
    path = metadata_path_for(artifact_path)
    metadata: dict[str, Any] = {}
    if path.exists():
        try:
            existing = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("artifact_metadata_unreadable", path=str(path), error=str(e))
        else:
            if isinstance(existing, dict):
                metadata = existing

    metadata["security_gate"] = {**verdict.to_dict(), "policy": policy.to_summary()}

    path.parent.mkdir(parents=True, exist_ok=True)
    # Write to temp file first, then rename for atomicity
    temp_path = path.with_suffix(".tmp")
    temp_path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
    temp_path.replace(path)

    logger.info("artifact_metadata_written", path=str(path), status=verdict.status.value)
    return path


__all__: list[str] = [
    "METADATA_SUFFIX",
    "metadata_path_for",
    "render",
    "render_json",
    "render_text",
    "write_artifact_metadata",
]
