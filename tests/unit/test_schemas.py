"""Unit tests for scangate pydantic models.

Tests severity ordering and parsing, findings validation, policy
normalization, and the status rules enforced on verdicts.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from scangate.errors import UnknownSeverityError
from scangate.schemas.audit import AuditDecision, AuditEntry
from scangate.schemas.findings import Finding, FindingsReport, Severity
from scangate.schemas.policy import BypassConfig, GatePolicy
from scangate.schemas.verdict import EvaluationOutcome, GateStatus, OutcomeKind, Verdict


class TestSeverity:
    """Tests for Severity ordering and parsing."""

    def test_total_order(self) -> None:
        """Test LOW < MEDIUM < HIGH < CRITICAL."""
        assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
        assert Severity.CRITICAL >= Severity.HIGH
        assert Severity.HIGH >= Severity.HIGH
        assert not Severity.MEDIUM >= Severity.HIGH

    def test_ordering_is_by_rank_not_alphabet(self) -> None:
        """Test that CRITICAL ranks above LOW despite sorting before it as text."""
        assert sorted([Severity.CRITICAL, Severity.LOW, Severity.HIGH]) == [
            Severity.LOW,
            Severity.HIGH,
            Severity.CRITICAL,
        ]

    @pytest.mark.parametrize("text", ["critical", "Critical", "CRITICAL", " critical "])
    def test_parse_is_case_insensitive(self, text: str) -> None:
        """Test that any casing normalizes to the enum member."""
        assert Severity.parse(text) is Severity.CRITICAL

    def test_parse_unknown_raises(self) -> None:
        """Test that unknown severities raise UnknownSeverityError."""
        with pytest.raises(UnknownSeverityError) as exc_info:
            Severity.parse("URGENT", finding_id="CVE-1")

        assert exc_info.value.severity == "URGENT"
        assert exc_info.value.finding_id == "CVE-1"
        assert "URGENT" in str(exc_info.value)


class TestFinding:
    """Tests for the Finding model."""

    def test_fixed_version_alias(self) -> None:
        """Test that the fixedVersion JSON key populates fixed_version."""
        finding = Finding.model_validate(
            {"id": "CVE-1", "severity": "high", "package": "curl", "fixedVersion": "8.1"}
        )

        assert finding.fixed_version == "8.1"
        assert finding.severity is Severity.HIGH
        assert finding.has_fix

    def test_blank_fixed_version_has_no_fix(self) -> None:
        """Test that a blank fixed version does not count as a fix."""
        finding = Finding(id="CVE-1", severity=Severity.LOW, package="zlib", fixed_version=" ")
        assert not finding.has_fix

    def test_unknown_severity_propagates(self) -> None:
        """Test that an unknown severity is not wrapped as a generic ValidationError."""
        with pytest.raises(UnknownSeverityError):
            Finding.model_validate({"id": "CVE-1", "severity": "SEVERE", "package": "curl"})

    def test_empty_id_rejected(self) -> None:
        """Test that an empty identifier fails validation."""
        with pytest.raises(ValidationError):
            Finding.model_validate({"id": "", "severity": "LOW", "package": "curl"})

    def test_extra_scanner_fields_ignored(self) -> None:
        """Test that unknown scanner keys are dropped."""
        finding = Finding.model_validate(
            {"id": "CVE-1", "severity": "LOW", "package": "curl", "title": "overflow"}
        )
        assert not hasattr(finding, "title")

    def test_immutable(self) -> None:
        """Test that findings cannot be modified after creation."""
        finding = Finding(id="CVE-1", severity=Severity.LOW, package="zlib")
        with pytest.raises(ValidationError):
            finding.package = "other"  # type: ignore[misc]


class TestFindingsReport:
    """Tests for the FindingsReport model."""

    def test_counts_by_severity_includes_zeros(self) -> None:
        """Test that every severity appears in the counts."""
        report = FindingsReport(
            tool="trivy",
            target="app:1.0",
            findings=(
                Finding(id="a", severity=Severity.HIGH, package="p"),
                Finding(id="b", severity=Severity.HIGH, package="q"),
            ),
        )

        assert report.counts_by_severity() == {"critical": 0, "high": 2, "medium": 0, "low": 0}

    def test_naive_timestamp_treated_as_utc(self) -> None:
        """Test that a timestamp without zone becomes UTC."""
        report = FindingsReport(
            tool="trivy",
            target="app",
            timestamp=datetime(2026, 1, 18, 12, 0, 0),
            findings=(),
        )
        assert report.timestamp is not None
        assert report.timestamp.tzinfo == timezone.utc


class TestGatePolicy:
    """Tests for GatePolicy validation."""

    def test_defaults(self) -> None:
        """Test the default policy fails on HIGH with no exemptions."""
        policy = GatePolicy()

        assert policy.severity_threshold is Severity.HIGH
        assert policy.exceptions == frozenset()
        assert policy.ignore_unfixed is False

    def test_threshold_alias_and_case(self) -> None:
        """Test that severityThreshold is accepted in any case."""
        policy = GatePolicy.model_validate({"severityThreshold": "medium"})
        assert policy.severity_threshold is Severity.MEDIUM

    def test_invalid_threshold_rejected(self) -> None:
        """Test that an unknown threshold fails validation."""
        with pytest.raises(ValidationError, match="Invalid severity threshold"):
            GatePolicy.model_validate({"severityThreshold": "extreme"})

    def test_exceptions_stripped(self) -> None:
        """Test that blank allow-list entries are dropped and names stripped."""
        policy = GatePolicy(exceptions=[" busybox ", "", "  "])  # type: ignore[arg-type]

        assert policy.exceptions == frozenset({"busybox"})
        assert policy.is_exempt_package("busybox")

    def test_unknown_keys_rejected(self) -> None:
        """Test that typos in policy files are reported."""
        with pytest.raises(ValidationError):
            GatePolicy.model_validate({"severity": "HIGH"})

    def test_to_summary(self) -> None:
        """Test the summary used in reports."""
        policy = GatePolicy(severity_threshold=Severity.CRITICAL, exceptions=frozenset({"b", "a"}))

        assert policy.to_summary() == {
            "severity_threshold": "CRITICAL",
            "exceptions": ["a", "b"],
            "ignore_unfixed": False,
        }


class TestBypassConfig:
    """Tests for BypassConfig."""

    def test_configured_requires_non_empty_secret(self) -> None:
        """Test that an empty secret does not count as configured."""
        assert not BypassConfig().configured
        assert not BypassConfig(secret="").configured  # type: ignore[arg-type]
        assert BypassConfig(secret="s3cret").configured  # type: ignore[arg-type]

    def test_secret_hidden_in_repr(self) -> None:
        """Test that the secret never appears in repr."""
        config = BypassConfig(secret="emergency-override-123")  # type: ignore[arg-type]
        assert "emergency-override-123" not in repr(config)


class TestEvaluationOutcome:
    """Tests for EvaluationOutcome consistency rules."""

    def test_violation_requires_findings(self) -> None:
        """Test that a violation outcome without findings is rejected."""
        with pytest.raises(ValidationError):
            EvaluationOutcome(kind=OutcomeKind.VIOLATION, threshold=Severity.HIGH)

    def test_clean_cannot_carry_violations(self) -> None:
        """Test that a clean outcome with findings is rejected."""
        finding = Finding(id="a", severity=Severity.HIGH, package="p")
        with pytest.raises(ValidationError):
            EvaluationOutcome(
                kind=OutcomeKind.CLEAN,
                violations=(finding,),
                threshold=Severity.HIGH,
            )


class TestVerdict:
    """Tests for Verdict status rules."""

    @pytest.fixture
    def finding(self) -> Finding:
        return Finding(id="CVE-1", severity=Severity.CRITICAL, package="openssl")

    def test_pass_is_admitted(self) -> None:
        """Test that PASS admits the artifact."""
        verdict = Verdict(status=GateStatus.PASS, tool="trivy", target="app")
        assert verdict.admitted

    def test_bypassed_requires_reason(self, finding: Finding) -> None:
        """Test that BYPASSED needs a bypass reason."""
        with pytest.raises(ValidationError):
            Verdict(status=GateStatus.BYPASSED, violations=(finding,), tool="t", target="a")

    def test_bypass_reason_only_on_bypassed(self, finding: Finding) -> None:
        """Test that FAIL cannot carry a bypass reason."""
        with pytest.raises(ValidationError):
            Verdict(
                status=GateStatus.FAIL,
                violations=(finding,),
                bypass_reason="hotfix",
                tool="t",
                target="a",
            )

    def test_fail_requires_violations(self) -> None:
        """Test that FAIL needs violating findings."""
        with pytest.raises(ValidationError):
            Verdict(status=GateStatus.FAIL, tool="t", target="a")

    def test_pass_cannot_carry_violations(self, finding: Finding) -> None:
        """Test that PASS has no violations."""
        with pytest.raises(ValidationError):
            Verdict(status=GateStatus.PASS, violations=(finding,), tool="t", target="a")

    def test_to_dict(self, finding: Finding) -> None:
        """Test the JSON-ready representation."""
        verdict = Verdict(
            status=GateStatus.BYPASSED,
            violations=(finding,),
            bypass_reason="Critical production hotfix",
            tool="trivy",
            target="app",
        )

        data = verdict.to_dict()

        assert data["status"] == "BYPASSED"
        assert data["bypass_reason"] == "Critical production hotfix"
        assert data["violations"] == [
            {"id": "CVE-1", "severity": "CRITICAL", "package": "openssl"}
        ]
        assert "bypass_rejection" not in data
        json.dumps(data)


class TestAuditEntry:
    """Tests for AuditEntry serialization."""

    def test_json_line_is_single_line(self) -> None:
        """Test that an entry serializes to exactly one newline-terminated line."""
        entry = AuditEntry.create(
            decision=AuditDecision.GRANTED,
            reason="Critical production hotfix",
            token_fingerprint="sha256:abcdef012345",
            overridden_findings=({"id": "CVE-1", "severity": "CRITICAL", "package": "openssl"},),
        )

        line = entry.to_json_line()
        data = json.loads(line)

        assert line.endswith("\n")
        assert line.count("\n") == 1
        assert data["event"] == "bypass_decision"
        assert data["decision"] == "granted"
        assert data["overridden_count"] == 1

    def test_empty_reason_rejected(self) -> None:
        """Test that every audit entry carries a reason."""
        with pytest.raises(ValidationError):
            AuditEntry.create(decision=AuditDecision.REJECTED, reason="")

    def test_string_timestamp_parsed(self) -> None:
        """Test that Z-suffixed timestamps are parsed as UTC."""
        entry = AuditEntry(
            timestamp="2026-01-18T12:00:00Z",  # type: ignore[arg-type]
            decision=AuditDecision.REJECTED,
            reason="invalid token",
        )
        assert entry.timestamp.tzinfo is not None
