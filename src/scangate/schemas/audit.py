"""Audit entry model for bypass decisions.

Every granted or rejected bypass produces exactly one AuditEntry. Entries are
serialized as one JSON object per line in the append-only audit log.

Example:
    >>> from scangate.schemas.audit import AuditDecision, AuditEntry
    >>> entry = AuditEntry.create(
    ...     decision=AuditDecision.GRANTED,
    ...     reason="Critical production hotfix",
    ...     token_fingerprint="sha256:3f1c9a2b7d4e",
    ... )
    >>> entry.to_json_line()
    '{"timestamp": "2026-...", "event": "bypass_decision", "decision": "granted", ...}\\n'
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuditDecision(str, Enum):
    """Bypass decisions that are recorded in the audit log."""

    GRANTED = "granted"
    """Bypass accepted; a policy violation was overridden."""

    REJECTED = "rejected"
    """Bypass refused; the gate verdict stays FAIL."""


class AuditEntry(BaseModel):
    """Immutable record of a bypass decision.

    Attributes:
        timestamp: When the decision was made (UTC).
        decision: GRANTED or REJECTED.
        reason: Bypass justification (granted) or rejection cause (rejected).
        justification: Human-supplied reason as received, if any.
        token_fingerprint: Redacted fingerprint of the presented token.
        overridden_findings: Compact summary of the findings being bypassed.
        tool: Scanner that produced the findings.
        target: Scanned target.
        trace_id: OpenTelemetry trace ID for correlation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: datetime = Field(..., description="Decision time (UTC)")
    decision: AuditDecision = Field(..., description="Granted or rejected")
    reason: str = Field(..., min_length=1, description="Decision reason")
    justification: str | None = Field(
        default=None,
        description="Reason supplied with the bypass request",
    )
    token_fingerprint: str | None = Field(
        default=None,
        description="Redacted token fingerprint, never the raw token",
    )
    overridden_findings: tuple[dict[str, str], ...] = Field(
        default_factory=tuple,
        description="Findings the bypass applies to",
    )
    tool: str | None = None
    target: str | None = None
    trace_id: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def ensure_timezone_aware(cls, v: datetime | str) -> datetime:
        """Ensure timestamp is timezone-aware (UTC)."""
        if isinstance(v, str):
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to a dictionary with optional fields omitted when unset."""
        result: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "event": "bypass_decision",
            "decision": self.decision.value,
            "reason": self.reason,
        }

        if self.justification is not None:
            result["justification"] = self.justification
        if self.token_fingerprint is not None:
            result["token_fingerprint"] = self.token_fingerprint
        if self.overridden_findings:
            result["overridden_findings"] = [dict(f) for f in self.overridden_findings]
            result["overridden_count"] = len(self.overridden_findings)
        if self.tool is not None:
            result["tool"] = self.tool
        if self.target is not None:
            result["target"] = self.target
        if self.trace_id is not None:
            result["trace_id"] = self.trace_id

        return result

    def to_json_line(self) -> str:
        """Serialize as a single newline-terminated JSON line."""
        return json.dumps(self.to_log_dict(), sort_keys=False) + "\n"

    @classmethod
    def create(
        cls,
        decision: AuditDecision,
        reason: str,
        *,
        justification: str | None = None,
        token_fingerprint: str | None = None,
        overridden_findings: tuple[dict[str, str], ...] = (),
        tool: str | None = None,
        target: str | None = None,
        trace_id: str | None = None,
    ) -> AuditEntry:
        """Create an entry stamped with the current UTC time."""
        return cls(
            timestamp=datetime.now(timezone.utc),
            decision=decision,
            reason=reason,
            justification=justification,
            token_fingerprint=token_fingerprint,
            overridden_findings=overridden_findings,
            tool=tool,
            target=target,
            trace_id=trace_id,
        )


__all__: list[str] = [
    "AuditDecision",
    "AuditEntry",
]
