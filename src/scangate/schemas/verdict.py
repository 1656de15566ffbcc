"""Evaluation outcome and gate verdict models.

Example:
    >>> from scangate.schemas.verdict import GateStatus, Verdict
    >>> verdict = Verdict(status=GateStatus.PASS, tool="trivy", target="app:1.0")
    >>> verdict.admitted
    True
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scangate.schemas.findings import Finding, Severity


class OutcomeKind(str, Enum):
    """Result of applying a policy to a findings report."""

    CLEAN = "clean"
    """No non-exempt finding reached the threshold."""

    VIOLATION = "violation"
    """At least one non-exempt finding reached the threshold."""


class EvaluationOutcome(BaseModel):
    """Outcome of the Policy Evaluator.

    Attributes:
        kind: CLEAN or VIOLATION.
        violations: Findings at or above the threshold, in scanner order.
        exempted: Findings skipped by the allow-list or ignore_unfixed.
        max_severity: Highest severity among non-exempt findings.
        threshold: Threshold the report was evaluated against.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: OutcomeKind
    violations: tuple[Finding, ...] = Field(default_factory=tuple)
    exempted: tuple[Finding, ...] = Field(default_factory=tuple)
    max_severity: Severity | None = None
    threshold: Severity

    @model_validator(mode="after")
    def check_consistency(self) -> EvaluationOutcome:
        """A violation carries findings; a clean outcome carries none."""
        if self.kind is OutcomeKind.VIOLATION and not self.violations:
            raise ValueError("violation outcome requires at least one finding")
        if self.kind is OutcomeKind.CLEAN and self.violations:
            raise ValueError("clean outcome cannot carry violations")
        return self

    @property
    def is_clean(self) -> bool:
        """Whether no finding violates the policy."""
        return self.kind is OutcomeKind.CLEAN


class GateStatus(str, Enum):
    """Final gate verdict."""

    PASS = "PASS"
    FAIL = "FAIL"
    BYPASSED = "BYPASSED"


class Verdict(BaseModel):
    """Terminal result of a gate run.

    Attributes:
        status: PASS, FAIL, or BYPASSED.
        violations: Violating findings (FAIL) or overridden findings (BYPASSED).
        bypass_reason: Human-supplied justification when BYPASSED.
        rejection: Why a bypass request was rejected, when FAIL followed one.
        tool: Scanner that produced the findings.
        target: Scanned target.
        threshold: Policy threshold applied.
        exempted_count: Number of findings exempted by the policy.
        finding_counts: Findings per severity in the evaluated report.
        decided_at: When the verdict was reached.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: GateStatus
    violations: tuple[Finding, ...] = Field(default_factory=tuple)
    bypass_reason: str | None = None
    rejection: str | None = None
    tool: str
    target: str
    threshold: Severity = Severity.HIGH
    exempted_count: int = Field(default=0, ge=0)
    finding_counts: dict[str, int] = Field(default_factory=dict)
    decided_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_status_fields(self) -> Verdict:
        """Enforce which fields accompany each status."""
        if self.status is GateStatus.BYPASSED and not self.bypass_reason:
            raise ValueError("BYPASSED verdict requires a bypass reason")
        if self.status is not GateStatus.BYPASSED and self.bypass_reason is not None:
            raise ValueError("bypass_reason is only valid for BYPASSED verdicts")
        if self.status is GateStatus.PASS and self.violations:
            raise ValueError("PASS verdict cannot carry violations")
        if self.status is not GateStatus.PASS and not self.violations:
            raise ValueError(f"{self.status.value} verdict requires violating findings")
        return self

    @property
    def admitted(self) -> bool:
        """Whether the artifact may proceed (PASS or BYPASSED)."""
        return self.status is not GateStatus.FAIL

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation used by the json output format."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "tool": self.tool,
            "target": self.target,
            "threshold": self.threshold.value,
            "decided_at": self.decided_at.isoformat(),
            "finding_counts": dict(self.finding_counts),
            "exempted_count": self.exempted_count,
            "violations": [f.summary() for f in self.violations],
        }
        if self.bypass_reason is not None:
            data["bypass_reason"] = self.bypass_reason
        if self.rejection is not None:
            data["bypass_rejection"] = self.rejection
        return data


__all__: list[str] = [
    "OutcomeKind",
    "EvaluationOutcome",
    "GateStatus",
    "Verdict",
]
