"""Exception hierarchy for scangate.

All exceptions inherit from ScangateError, which carries the CLI exit code
for its error type. A policy violation is not an exception: it is a FAIL
verdict with exit code 1. Load and configuration errors use their own codes
so callers never confuse "broken input" with "vulnerable image".

Exception Hierarchy:
    ScangateError (base)
    ├── LoadError                  # Findings document could not be loaded
    │   ├── FindingsNotFoundError  # Findings path does not exist
    │   ├── MalformedFindingsError # Document does not match the schema
    │   └── UnknownSeverityError   # Severity string outside LOW..CRITICAL
    ├── ConfigurationError         # Invalid policy file or gate settings
    └── AuditWriteError            # Audit entry could not be persisted

Exit Codes:
    0 - PASS or BYPASSED
    1 - Policy FAIL (and AuditWriteError surfaced outside the gate)
    2 - Usage error (reported by click)
    3 - Findings file not found (FindingsNotFoundError)
    5 - Malformed findings or unknown severity (LoadError)
    6 - Configuration error (ConfigurationError)

Example:
    >>> from scangate.errors import FindingsNotFoundError
    >>> raise FindingsNotFoundError("scan-results/trivy-results.json")
    Traceback (most recent call last):
        ...
    FindingsNotFoundError: Findings file not found: scan-results/trivy-results.json
"""

from __future__ import annotations


class ScangateError(Exception):
    """Base exception for all scangate errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1


class LoadError(ScangateError):
    """Raised when a findings document cannot be loaded.

    Load errors are environmental: the gate never reached a verdict.

    Attributes:
        path: Path (or source label) of the findings document.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize LoadError.

        Args:
            message: Description of the load failure.
            path: Path or source label of the findings document.
        """
        self.path = path
        super().__init__(message)


class FindingsNotFoundError(LoadError):
    """Raised when the findings path does not exist.

    Attributes:
        path: The missing path.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, path: str) -> None:
        super().__init__(f"Findings file not found: {path}", path=path)


class MalformedFindingsError(LoadError):
    """Raised when a findings document does not match the expected schema.

    Attributes:
        path: Path or source label of the document.
        details: Individual problems found (field path and message).
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: list[str] | None = None,
    ) -> None:
        """Initialize MalformedFindingsError.

        Args:
            message: Summary of the problem.
            path: Path or source label of the document.
            details: Optional per-field problems.
        """
        self.details = details or []
        full = message
        if self.details:
            full += ": " + "; ".join(self.details)
        super().__init__(full, path=path)


class UnknownSeverityError(LoadError):
    """Raised when a severity string is not one of LOW, MEDIUM, HIGH, CRITICAL.

    Attributes:
        severity: The unrecognized severity string.
        finding_id: Identifier of the finding carrying it, if known.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(
        self,
        severity: str,
        finding_id: str | None = None,
        path: str | None = None,
    ) -> None:
        self.severity = severity
        self.finding_id = finding_id
        where = f" on finding {finding_id}" if finding_id else ""
        super().__init__(f"Unknown severity {severity!r}{where}", path=path)


class ConfigurationError(ScangateError):
    """Raised when the gate configuration or policy file is invalid.

    Attributes:
        source: Where the bad configuration came from (file path or setting).
        exit_code: CLI exit code (6).
    """

    exit_code: int = 6

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        if source:
            message = f"{message} ({source})"
        super().__init__(message)


class AuditWriteError(ScangateError):
    """Raised when an audit entry cannot be appended to the audit log.

    The Bypass Authority converts this into a rejected bypass: an override
    that cannot be recorded is never granted.

    Attributes:
        audit_path: Path of the audit log.
        attempts: Number of append attempts made.
        exit_code: CLI exit code (1).
    """

    exit_code: int = 1

    def __init__(self, audit_path: str, reason: str, attempts: int = 1) -> None:
        self.audit_path = audit_path
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Failed to write audit entry to {audit_path} after {attempts} "
            f"attempt{'s' if attempts != 1 else ''}: {reason}"
        )


__all__: list[str] = [
    "ScangateError",
    "LoadError",
    "FindingsNotFoundError",
    "MalformedFindingsError",
    "UnknownSeverityError",
    "ConfigurationError",
    "AuditWriteError",
]
