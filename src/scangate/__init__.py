"""scangate: Policy gate for container vulnerability scan results.

This package provides:
- load: Findings loader for normalized scanner output
- evaluate: Pure severity-policy evaluation
- BypassAuthority: Audited, fail-closed emergency override
- AuditLog: Append-only JSON Lines audit log
- PolicyGate: Orchestrator producing a PASS, FAIL, or BYPASSED verdict
- Errors: Exception hierarchy carrying CLI exit codes (scangate.errors)
- Schemas: Pydantic models (scangate.schemas)

Example:
    >>> from scangate import AuditLog, BypassAuthority, GatePolicy, PolicyGate
    >>> from scangate.schemas import BypassConfig
    >>> authority = BypassAuthority(BypassConfig(), audit_sink=AuditLog("audit.jsonl"))
    >>> verdict = PolicyGate(authority).run("trivy-results.json", GatePolicy())
    >>> verdict.status
    <GateStatus.PASS: 'PASS'>
"""

from __future__ import annotations

from scangate.audit import AuditLog
from scangate.bypass import BypassAuthority, BypassDecision, BypassRequest, DecisionKind
from scangate.errors import (
    AuditWriteError,
    ConfigurationError,
    FindingsNotFoundError,
    LoadError,
    MalformedFindingsError,
    ScangateError,
    UnknownSeverityError,
)
from scangate.evaluator import evaluate
from scangate.gate import GateState, PolicyGate
from scangate.loader import load, load_text
from scangate.schemas import (
    AuditEntry,
    BypassConfig,
    EvaluationOutcome,
    Finding,
    FindingsReport,
    GatePolicy,
    GateStatus,
    Severity,
    Verdict,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Loading and evaluation
    "load",
    "load_text",
    "evaluate",
    # Gate
    "PolicyGate",
    "GateState",
    # Bypass and audit
    "BypassAuthority",
    "BypassDecision",
    "BypassRequest",
    "DecisionKind",
    "AuditLog",
    # Schemas
    "AuditEntry",
    "BypassConfig",
    "EvaluationOutcome",
    "Finding",
    "FindingsReport",
    "GatePolicy",
    "GateStatus",
    "Severity",
    "Verdict",
    # Errors
    "ScangateError",
    "LoadError",
    "FindingsNotFoundError",
    "MalformedFindingsError",
    "UnknownSeverityError",
    "ConfigurationError",
    "AuditWriteError",
]
