"""Findings models for normalized vulnerability-scanner output.

A findings document is the single input format the gate accepts:

    {
        "tool": "trivy",
        "target": "test-app:vulnerable",
        "timestamp": "2026-01-18T12:00:00Z",
        "findings": [
            {"id": "CVE-2023-0001", "severity": "CRITICAL",
             "package": "openssl", "fixedVersion": "3.0.8"}
        ]
    }

Severity strings are matched case-insensitively ("Critical" and "critical"
both normalize to Severity.CRITICAL). Unknown severities raise
UnknownSeverityError rather than a generic validation error.

Example:
    >>> from scangate.schemas.findings import Finding, Severity
    >>> finding = Finding(id="CVE-2023-0001", severity="critical", package="openssl")
    >>> finding.severity is Severity.CRITICAL
    True
    >>> Severity.HIGH < Severity.CRITICAL
    True
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from scangate.errors import UnknownSeverityError


class Severity(str, Enum):
    """Ordered vulnerability severity: LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        """Position of this severity in the ordering (LOW is 0)."""
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: str | Severity, finding_id: str | None = None) -> Severity:
        """Normalize a severity string case-insensitively.

        Args:
            value: Severity string (any case) or Severity member.
            finding_id: Identifier of the finding, used in the error message.

        Returns:
            The matching Severity member.

        Raises:
            UnknownSeverityError: If the string is not a known severity.
        """
        if isinstance(value, Severity):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise UnknownSeverityError(value, finding_id=finding_id) from None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER: tuple[Severity, ...] = (
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
)


class Finding(BaseModel):
    """One reported vulnerability.

    Unknown keys from the scanner (titles, CVSS vectors, ...) are ignored.

    Attributes:
        id: Vulnerability identifier (CVE, GHSA, ...).
        severity: Normalized severity.
        package: Affected component or package name.
        fixed_version: Version that fixes the vulnerability, if any.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Vulnerability identifier")
    severity: Severity = Field(..., description="Normalized severity")
    package: str = Field(..., min_length=1, description="Affected package")
    fixed_version: str | None = Field(
        default=None,
        alias="fixedVersion",
        description="Version that fixes the vulnerability",
    )

    @model_validator(mode="before")
    @classmethod
    def normalize_severity(cls, data: Any) -> Any:
        """Normalize string severities before enum validation.

        Non-string severities are left alone so they fail as type errors.
        """
        if isinstance(data, dict) and isinstance(data.get("severity"), str):
            finding_id = data.get("id") if isinstance(data.get("id"), str) else None
            data = {**data, "severity": Severity.parse(data["severity"], finding_id)}
        return data

    @property
    def has_fix(self) -> bool:
        """Whether a non-blank fixed version is known."""
        return bool(self.fixed_version and self.fixed_version.strip())

    def summary(self) -> dict[str, str]:
        """Compact representation used in audit entries and reports."""
        return {
            "id": self.id,
            "severity": self.severity.value,
            "package": self.package,
        }


class FindingsReport(BaseModel):
    """Ordered findings plus scanner metadata for a single gate run.

    Attributes:
        tool: Scanner that produced the findings.
        target: Scanned target (image reference, path, ...).
        timestamp: When the scan ran, if reported.
        findings: Findings in scanner order.
        source_path: Where the document was loaded from.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    tool: str = Field(..., min_length=1, description="Scanner name")
    target: str = Field(..., min_length=1, description="Scan target")
    timestamp: datetime | None = Field(default=None, description="Scan timestamp")
    findings: tuple[Finding, ...] = Field(..., description="Findings in scanner order")
    source_path: str | None = Field(
        default=None,
        description="Path or label the document was loaded from",
    )

    @field_validator("timestamp")
    @classmethod
    def ensure_timezone_aware(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def counts_by_severity(self) -> dict[str, int]:
        """Count findings per severity, including zero counts."""
        counts = Counter(f.severity for f in self.findings)
        return {sev.value.lower(): counts.get(sev, 0) for sev in reversed(_SEVERITY_ORDER)}


__all__: list[str] = [
    "Severity",
    "Finding",
    "FindingsReport",
]
