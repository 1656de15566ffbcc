"""Pydantic models for findings, policy, verdicts, and audit entries."""

from __future__ import annotations

from scangate.schemas.audit import AuditDecision, AuditEntry
from scangate.schemas.findings import Finding, FindingsReport, Severity
from scangate.schemas.policy import (
    DEFAULT_SEVERITY_THRESHOLD,
    BypassConfig,
    GatePolicy,
    TokenMode,
)
from scangate.schemas.verdict import (
    EvaluationOutcome,
    GateStatus,
    OutcomeKind,
    Verdict,
)

__all__ = [
    # Findings
    "Severity",
    "Finding",
    "FindingsReport",
    # Policy
    "DEFAULT_SEVERITY_THRESHOLD",
    "GatePolicy",
    "BypassConfig",
    "TokenMode",
    # Evaluation
    "OutcomeKind",
    "EvaluationOutcome",
    "GateStatus",
    "Verdict",
    # Audit
    "AuditDecision",
    "AuditEntry",
]
