"""Unit tests for the Bypass Authority and token verification.

Tests the fail-closed decision order, one audit entry per decision, token
redaction, and signed-token expiry handling.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import SecretStr
from structlog.testing import capture_logs

from scangate.audit import AuditLog
from scangate.bypass import (
    REASON_AUDIT_FAILED,
    REASON_DISABLED,
    REASON_INVALID_TOKEN,
    REASON_MISSING_REASON,
    REASON_NOT_CONFIGURED,
    REASON_TOKEN_EXPIRED,
    REASON_TOKEN_TTL,
    BypassAuthority,
    BypassRequest,
    DecisionKind,
    SignedTokenVerifier,
    StaticSecretVerifier,
    build_verifier,
    issue_signed_token,
    token_fingerprint,
)
from scangate.errors import AuditWriteError
from scangate.schemas.audit import AuditDecision, AuditEntry
from scangate.schemas.findings import Finding, Severity
from scangate.schemas.policy import BypassConfig

SECRET = "emergency-override-123"
REASON = "Critical production hotfix"
NOW = 1_768_737_600.0


class RecordingSink:
    """In-memory audit sink."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def append(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


class FailingSink:
    """Audit sink whose writes always fail."""

    def __init__(self) -> None:
        self.calls = 0

    def append(self, entry: AuditEntry) -> None:
        self.calls += 1
        raise AuditWriteError("/var/log/audit.jsonl", "disk full", attempts=3)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def violation() -> tuple[Finding, ...]:
    return (Finding(id="CVE-2023-0001", severity=Severity.CRITICAL, package="openssl"),)


def _authority(sink: object, **config: object) -> BypassAuthority:
    settings = {"secret": SecretStr(SECRET), **config}
    return BypassAuthority(BypassConfig(**settings), audit_sink=sink, clock=lambda: NOW)  # type: ignore[arg-type]


def _request(token: str = SECRET, reason: str = REASON) -> BypassRequest:
    return BypassRequest(token=SecretStr(token), reason=reason)


class TestTokenFingerprint:
    """Tests for token_fingerprint()."""

    def test_format(self) -> None:
        """Test sha256 prefix and 12 hex characters."""
        fingerprint = token_fingerprint(SECRET)

        assert fingerprint.startswith("sha256:")
        assert len(fingerprint) == len("sha256:") + 12
        assert SECRET not in fingerprint

    def test_stable(self) -> None:
        """Test that the same token always has the same fingerprint."""
        assert token_fingerprint("abc") == token_fingerprint("abc")
        assert token_fingerprint("abc") != token_fingerprint("abd")


class TestBypassAuthority:
    """Tests for BypassAuthority.authorize()."""

    def test_no_request(self, sink: RecordingSink, violation: tuple[Finding, ...]) -> None:
        """Test that no request means NOT_REQUESTED and nothing audited."""
        decision = _authority(sink).authorize(None, overridden=violation)

        assert decision.kind is DecisionKind.NOT_REQUESTED
        assert sink.entries == []

    def test_valid_request_granted(
        self,
        sink: RecordingSink,
        violation: tuple[Finding, ...],
    ) -> None:
        """Test that a valid token and reason are granted and audited once."""
        decision = _authority(sink).authorize(_request(), overridden=violation)

        assert decision.granted
        assert decision.reason == REASON
        assert len(sink.entries) == 1
        entry = sink.entries[0]
        assert entry.decision is AuditDecision.GRANTED
        assert entry.reason == REASON
        assert entry.overridden_findings == (
            {"id": "CVE-2023-0001", "severity": "CRITICAL", "package": "openssl"},
        )
        assert entry.token_fingerprint == token_fingerprint(SECRET)
        assert decision.audit_entry == entry

    def test_invalid_token_rejected(self, sink: RecordingSink) -> None:
        """Test that a wrong token is rejected and audited."""
        decision = _authority(sink).authorize(_request(token="guess"))

        assert decision.kind is DecisionKind.REJECTED
        assert decision.reason == REASON_INVALID_TOKEN
        assert len(sink.entries) == 1
        assert sink.entries[0].decision is AuditDecision.REJECTED
        assert sink.entries[0].justification == REASON

    @pytest.mark.parametrize("reason", ["", "   ", "\n\t"])
    def test_missing_reason_rejected(self, sink: RecordingSink, reason: str) -> None:
        """Test that an empty or whitespace reason is rejected."""
        decision = _authority(sink).authorize(_request(reason=reason))

        assert decision.kind is DecisionKind.REJECTED
        assert decision.reason == REASON_MISSING_REASON
        assert len(sink.entries) == 1
        assert sink.entries[0].justification is None

    def test_invalid_token_checked_before_reason(self, sink: RecordingSink) -> None:
        """Test that a bad token with no reason reports the token."""
        decision = _authority(sink).authorize(_request(token="guess", reason=""))
        assert decision.reason == REASON_INVALID_TOKEN

    def test_empty_token_rejected(self, sink: RecordingSink) -> None:
        """Test that an empty token never matches."""
        decision = _authority(sink).authorize(_request(token=""))
        assert decision.reason == REASON_INVALID_TOKEN

    def test_disabled(self, sink: RecordingSink) -> None:
        """Test that a disabled authority rejects even a valid request."""
        decision = _authority(sink, enabled=False).authorize(_request())

        assert decision.kind is DecisionKind.REJECTED
        assert decision.reason == REASON_DISABLED
        assert len(sink.entries) == 1

    def test_not_configured(self, sink: RecordingSink) -> None:
        """Test that no secret means every request is rejected."""
        authority = BypassAuthority(BypassConfig(), audit_sink=sink)

        decision = authority.authorize(_request())

        assert decision.reason == REASON_NOT_CONFIGURED
        assert len(sink.entries) == 1

    def test_audit_failure_downgrades_grant(self, violation: tuple[Finding, ...]) -> None:
        """Test that a grant that cannot be recorded becomes a rejection."""
        failing = FailingSink()

        with capture_logs() as logs:
            decision = _authority(failing).authorize(_request(), overridden=violation)

        assert decision.kind is DecisionKind.REJECTED
        assert decision.reason == REASON_AUDIT_FAILED
        assert decision.audit_entry is None
        assert failing.calls == 1
        assert any(e["event"] == "bypass_audit_failed" for e in logs)

    def test_audit_failure_keeps_rejection_cause(self) -> None:
        """Test that an unrecorded rejection keeps its original cause."""
        decision = _authority(FailingSink()).authorize(_request(token="guess"))
        assert decision.reason == REASON_INVALID_TOKEN

    def test_raw_token_never_logged(self, tmp_path: Path) -> None:
        """Test that neither logs nor the audit file contain the raw token."""
        audit_log = AuditLog(tmp_path / "audit.jsonl")
        authority = _authority(audit_log)

        with capture_logs() as logs:
            authority.authorize(_request())
            authority.authorize(_request(reason=""))

        assert SECRET not in repr(logs)
        assert SECRET not in audit_log.path.read_text()
        assert len(audit_log.read_entries()) == 2

    def test_request_repr_hides_token(self) -> None:
        """Test that BypassRequest never renders the token."""
        assert SECRET not in repr(_request())
        assert SECRET not in str(_request().model_dump())


class TestStaticSecretVerifier:
    """Tests for StaticSecretVerifier."""

    def test_match(self) -> None:
        verifier = StaticSecretVerifier(SecretStr(SECRET))
        assert verifier.verify(SECRET) is None

    def test_prefix_does_not_match(self) -> None:
        verifier = StaticSecretVerifier(SecretStr(SECRET))
        assert verifier.verify(SECRET[:-1]) == REASON_INVALID_TOKEN


class TestSignedTokens:
    """Tests for signed token issue and verification."""

    def test_round_trip(self) -> None:
        """Test that a freshly issued token verifies."""
        token = issue_signed_token(SECRET, ttl_seconds=3600, now=NOW)
        verifier = SignedTokenVerifier(SecretStr(SECRET), max_ttl_seconds=86400, clock=lambda: NOW)

        assert verifier.verify(token) is None

    def test_expired(self) -> None:
        """Test that an expired token is rejected."""
        token = issue_signed_token(SECRET, ttl_seconds=60, now=NOW)
        verifier = SignedTokenVerifier(
            SecretStr(SECRET), max_ttl_seconds=86400, clock=lambda: NOW + 61
        )

        assert verifier.verify(token) == REASON_TOKEN_EXPIRED

    def test_lifetime_too_long(self) -> None:
        """Test that tokens outliving the configured maximum are rejected."""
        token = issue_signed_token(SECRET, ttl_seconds=7200, now=NOW)
        verifier = SignedTokenVerifier(SecretStr(SECRET), max_ttl_seconds=3600, clock=lambda: NOW)

        assert verifier.verify(token) == REASON_TOKEN_TTL

    def test_tampered_expiry(self) -> None:
        """Test that extending the expiry invalidates the signature."""
        token = issue_signed_token(SECRET, ttl_seconds=60, now=NOW)
        expiry, signature = token.split(".")
        forged = f"{int(expiry) + 3600}.{signature}"
        verifier = SignedTokenVerifier(SecretStr(SECRET), max_ttl_seconds=86400, clock=lambda: NOW)

        assert verifier.verify(forged) == REASON_INVALID_TOKEN

    @pytest.mark.parametrize(
        "token",
        ["", "no-dot", "abc.def", ".deadbeef", "².abc", "٣.abc", "9" * 5000 + ".abc"],
    )
    def test_malformed(self, token: str) -> None:
        """Test that malformed tokens are invalid."""
        verifier = SignedTokenVerifier(SecretStr(SECRET), max_ttl_seconds=86400, clock=lambda: NOW)
        assert verifier.verify(token) == REASON_INVALID_TOKEN

    @pytest.mark.parametrize("token", ["².abc", "9" * 5000 + ".abc", "9" * 13 + ".abc"])
    def test_malformed_expiry_rejected_and_audited(self, sink: RecordingSink, token: str) -> None:
        """Test that an unparsable expiry is rejected with one audit entry."""
        decision = _authority(sink, token_mode="signed").authorize(_request(token=token))

        assert decision.kind is DecisionKind.REJECTED
        assert decision.reason == REASON_INVALID_TOKEN
        assert len(sink.entries) == 1
        assert sink.entries[0].decision is AuditDecision.REJECTED

    def test_verifier_error_fails_closed(self, sink: RecordingSink) -> None:
        """Test that a verifier raising ValueError counts as an invalid token."""
        authority = _authority(sink, token_mode="signed")

        with patch.object(SignedTokenVerifier, "verify", side_effect=ValueError("bad expiry")):
            decision = authority.authorize(_request())

        assert decision.reason == REASON_INVALID_TOKEN
        assert len(sink.entries) == 1

    def test_static_secret_rejected_in_signed_mode(self, sink: RecordingSink) -> None:
        """Test that the raw secret is not a valid signed token."""
        authority = _authority(sink, token_mode="signed")

        decision = authority.authorize(_request())

        assert decision.reason == REASON_INVALID_TOKEN

    def test_signed_mode_grants(self, sink: RecordingSink) -> None:
        """Test a granted bypass with a signed token."""
        token = issue_signed_token(SECRET, ttl_seconds=600, now=NOW)

        decision = _authority(sink, token_mode="signed").authorize(_request(token=token))

        assert decision.granted

    def test_issue_requires_positive_ttl(self) -> None:
        with pytest.raises(ValueError):
            issue_signed_token(SECRET, ttl_seconds=0)


class TestBuildVerifier:
    """Tests for build_verifier()."""

    def test_requires_secret(self) -> None:
        with pytest.raises(ValueError, match="not configured"):
            build_verifier(BypassConfig())

    def test_selects_mode(self) -> None:
        static = build_verifier(BypassConfig(secret=SecretStr(SECRET)))
        signed = build_verifier(BypassConfig(secret=SecretStr(SECRET), token_mode="signed"))

        assert isinstance(static, StaticSecretVerifier)
        assert isinstance(signed, SignedTokenVerifier)
