"""Findings loader for normalized scanner output.

Reads a findings document from disk (or memory), validates it against the
normalized schema, and returns an immutable FindingsReport. Loading is
read-only; nothing is written or cached.

Example:
    >>> from scangate.loader import load
    >>> report = load("scan-results/trivy-results.json")
    >>> report.tool
    'trivy'
    >>> [f.id for f in report.findings]
    ['CVE-2023-0001']
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from scangate.errors import FindingsNotFoundError, MalformedFindingsError, UnknownSeverityError
from scangate.schemas.findings import FindingsReport

logger = structlog.get_logger(__name__)

DEFAULT_MAX_BYTES = 50 * 1024 * 1024
"""Largest findings document accepted (50 MiB)."""


def _format_validation_errors(exc: ValidationError) -> list[str]:
    details: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "<root>"
        details.append(f"{loc}: {err['msg']}")
    return details


def load_text(text: str, source: str = "<memory>") -> FindingsReport:
    """Parse and validate a findings document held in memory.

    Args:
        text: Raw JSON text.
        source: Label used in errors and stored as the report's source_path.

    Returns:
        Validated FindingsReport with findings in document order.

    Raises:
        MalformedFindingsError: If the text is not JSON or does not match the schema.
        UnknownSeverityError: If a finding carries an unrecognized severity.
    """
    log = logger.bind(source=source)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        log.error("findings_parse_failed", error=str(e))
        raise MalformedFindingsError(f"Invalid JSON: {e}", path=source) from e

    if not isinstance(data, dict):
        log.error("findings_not_an_object", type=type(data).__name__)
        raise MalformedFindingsError(
            f"Expected a JSON object, got {type(data).__name__}",
            path=source,
        )

    try:
        report = FindingsReport.model_validate({**data, "source_path": source})
    except UnknownSeverityError as e:
        e.path = source
        log.error("findings_unknown_severity", severity=e.severity, finding=e.finding_id)
        raise
    except ValidationError as e:
        details = _format_validation_errors(e)
        log.error("findings_schema_invalid", errors=details)
        raise MalformedFindingsError(
            "Findings document does not match the expected schema",
            path=source,
            details=details,
        ) from e

    log.info(
        "findings_loaded",
        tool=report.tool,
        target=report.target,
        findings=len(report.findings),
    )
    return report


def load(path: str | Path, max_bytes: int = DEFAULT_MAX_BYTES) -> FindingsReport:
    """Load a findings document from disk.

    Args:
        path: Path to the normalized findings JSON file.
        max_bytes: Reject documents larger than this many bytes.

    Returns:
        Validated FindingsReport.

    Raises:
        FindingsNotFoundError: If the path does not exist or is not a file.
        MalformedFindingsError: If the document cannot be read, is too large,
            is not JSON, or does not match the schema.
        UnknownSeverityError: If a finding carries an unrecognized severity.
    """
    findings_path = Path(path)
    source = str(findings_path)

    if not findings_path.is_file():
        logger.error("findings_not_found", path=source)
        raise FindingsNotFoundError(source)

    size = findings_path.stat().st_size
    if size > max_bytes:
        logger.error("findings_too_large", path=source, size=size, max_bytes=max_bytes)
        raise MalformedFindingsError(
            f"Findings document is {size} bytes, limit is {max_bytes}",
            path=source,
        )

    try:
        text = findings_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFindingsError(f"Findings document is not UTF-8: {e}", path=source) from e
    except OSError as e:
        raise MalformedFindingsError(f"Cannot read findings document: {e}", path=source) from e

    return load_text(text, source=source)


__all__: list[str] = [
    "DEFAULT_MAX_BYTES",
    "load",
    "load_text",
]
