"""Bypass Authority: the narrow, audited override path of the gate.

A bypass converts a would-be FAIL into a BYPASSED verdict. The authority
fails closed:

- no request                     -> NOT_REQUESTED (nothing recorded)
- bypass disabled / no secret    -> REJECTED
- token does not verify          -> REJECTED("invalid token")
- empty or whitespace reason     -> REJECTED("missing reason")
- otherwise                      -> GRANTED(reason)

Every REJECTED or GRANTED decision is written to the audit log as exactly one
entry carrying a redacted token fingerprint, never the raw token. If that
write fails, a would-be grant is downgraded to REJECTED("audit write failed").

Two token modes are supported through TokenVerifier:

- "static": the token must equal the configured secret (constant-time).
- "signed": the token is "<expiry-epoch>.<hex HMAC-SHA256(secret, expiry)>",
  minted with issue_signed_token(); it must be unexpired and no longer-lived
  than the configured maximum.

Example:
    >>> from pydantic import SecretStr
    >>> authority = BypassAuthority(
    ...     BypassConfig(secret=SecretStr("emergency-override-123")),
    ...     audit_sink=AuditLog("logs/audit/policy-gate.jsonl"),
    ... )
    >>> request = BypassRequest(
    ...     token=SecretStr("emergency-override-123"),
    ...     reason="Critical production hotfix",
    ... )
    >>> authority.authorize(request, overridden=violations).kind
    <DecisionKind.GRANTED: 'granted'>
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from scangate.audit import AuditSink
from scangate.errors import AuditWriteError
from scangate.schemas.audit import AuditDecision, AuditEntry
from scangate.schemas.findings import Finding, FindingsReport
from scangate.schemas.policy import BypassConfig

logger = structlog.get_logger(__name__)

REASON_INVALID_TOKEN = "invalid token"
REASON_MISSING_REASON = "missing reason"
REASON_TOKEN_EXPIRED = "token expired"
REASON_TOKEN_TTL = "token lifetime exceeds maximum"
REASON_DISABLED = "bypass disabled"
REASON_NOT_CONFIGURED = "bypass not configured"
REASON_AUDIT_FAILED = "audit write failed"

FINGERPRINT_LENGTH = 12
MAX_EXPIRY_DIGITS = 12


def token_fingerprint(token: str) -> str:
    """Redacted, stable identifier for a token.

    Examples:
        >>> token_fingerprint("emergency-override-123")
        'sha256:...'  # 12 hex characters
    """
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    return f"sha256:{digest[:FINGERPRINT_LENGTH]}"


class BypassRequest(BaseModel):
    """A request to override a failing gate.

    Attributes:
        token: Presented bypass token (never rendered in repr or logs).
        reason: Human-supplied justification.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: SecretStr = Field(..., description="Presented bypass token")
    reason: str = Field(default="", description="Justification for the bypass")

    @property
    def fingerprint(self) -> str:
        """Redacted fingerprint of the presented token."""
        return token_fingerprint(self.token.get_secret_value())


class DecisionKind(str, Enum):
    """Possible Bypass Authority decisions."""

    NOT_REQUESTED = "not_requested"
    REJECTED = "rejected"
    GRANTED = "granted"


class BypassDecision(BaseModel):
    """Result of BypassAuthority.authorize.

    Attributes:
        kind: NOT_REQUESTED, REJECTED, or GRANTED.
        reason: Rejection cause (REJECTED) or bypass justification (GRANTED).
        token_fingerprint: Fingerprint of the presented token, if any.
        audit_entry: The persisted audit entry, when one was written.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: DecisionKind
    reason: str | None = None
    token_fingerprint: str | None = None
    audit_entry: AuditEntry | None = None

    @property
    def granted(self) -> bool:
        """Whether the bypass was granted."""
        return self.kind is DecisionKind.GRANTED

    @classmethod
    def not_requested(cls) -> BypassDecision:
        return cls(kind=DecisionKind.NOT_REQUESTED)


class TokenVerifier(Protocol):
    """Checks a presented token against the configured secret."""

    def verify(self, token: str) -> str | None:
        """Return None when the token is valid, otherwise a rejection reason."""
        ...


class StaticSecretVerifier:
    """Accepts exactly the configured shared secret."""

    def __init__(self, secret: SecretStr) -> None:
        self._secret = secret

    def verify(self, token: str) -> str | None:
        expected = self._secret.get_secret_value().encode("utf-8")
        if hmac.compare_digest(token.encode("utf-8"), expected):
            return None
        return REASON_INVALID_TOKEN


def _sign(secret: str, expiry: int) -> str:
    return hmac.new(secret.encode("utf-8"), str(expiry).encode("ascii"), hashlib.sha256).hexdigest()


def issue_signed_token(
    secret: SecretStr | str,
    ttl_seconds: int,
    now: float | None = None,
) -> str:
    """Mint a short-lived signed bypass token.

    Args:
        secret: Configured bypass secret.
        ttl_seconds: Token lifetime.
        now: Current epoch seconds (defaults to time.time()).

    Returns:
        Token in "<expiry-epoch>.<hex signature>" form.
    """
    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be positive")
    raw = secret.get_secret_value() if isinstance(secret, SecretStr) else secret
    expiry = int(now if now is not None else time.time()) + ttl_seconds
    return f"{expiry}.{_sign(raw, expiry)}"


class SignedTokenVerifier:
    """Accepts unexpired HMAC tokens minted by issue_signed_token()."""

    def __init__(
        self,
        secret: SecretStr,
        max_ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._max_ttl = max_ttl_seconds
        self._clock = clock

    def verify(self, token: str) -> str | None:
        expiry_text, sep, signature = token.partition(".")
        if (
            not sep
            or not expiry_text.isascii()
            or not expiry_text.isdigit()
            or len(expiry_text) > MAX_EXPIRY_DIGITS
        ):
            return REASON_INVALID_TOKEN

        expiry = int(expiry_text)
        expected = _sign(self._secret.get_secret_value(), expiry)
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("ascii")):
            return REASON_INVALID_TOKEN

        now = self._clock()
        if expiry <= now:
            return REASON_TOKEN_EXPIRED
        if expiry - now > self._max_ttl:
            return REASON_TOKEN_TTL
        return None


def build_verifier(config: BypassConfig, clock: Callable[[], float] = time.time) -> TokenVerifier:
    """Select the verifier matching config.token_mode.

    Raises:
        ValueError: If no secret is configured.
    """
    if config.secret is None or not config.configured:
        raise ValueError("bypass secret is not configured")
    if config.token_mode == "signed":
        return SignedTokenVerifier(config.secret, config.max_token_ttl_seconds, clock=clock)
    return StaticSecretVerifier(config.secret)


class BypassAuthority:
    """Decides bypass requests and records every decision.

    The authority holds only read-only configuration and an audit sink, so a
    single instance can serve independent gate runs.
    """

    def __init__(
        self,
        config: BypassConfig,
        audit_sink: AuditSink,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._audit_sink = audit_sink
        self._verifier: TokenVerifier | None = (
            build_verifier(config, clock=clock) if config.configured else None
        )

    @property
    def config(self) -> BypassConfig:
        return self._config

    def _check(self, request: BypassRequest) -> str | None:
        if not self._config.enabled:
            return REASON_DISABLED
        if self._verifier is None:
            return REASON_NOT_CONFIGURED
        try:
            rejection = self._verifier.verify(request.token.get_secret_value())
        except ValueError:
            return REASON_INVALID_TOKEN
        if rejection is not None:
            return rejection
        if not request.reason.strip():
            return REASON_MISSING_REASON
        return None

    def authorize(
        self,
        request: BypassRequest | None,
        overridden: Sequence[Finding] = (),
        report: FindingsReport | None = None,
    ) -> BypassDecision:
        """Decide a bypass request and record the decision.

        Args:
            request: The bypass request, or None when none was made.
            overridden: Findings the bypass would override, recorded in the
                audit entry.
            report: Findings report under evaluation, for audit context.

        Returns:
            NOT_REQUESTED, REJECTED (with cause), or GRANTED (with reason).
        """
        if request is None:
            return BypassDecision.not_requested()

        fingerprint = request.fingerprint
        rejection = self._check(request)
        justification = request.reason.strip() or None

        if rejection is None:
            decision, reason = AuditDecision.GRANTED, request.reason.strip()
        else:
            decision, reason = AuditDecision.REJECTED, rejection

        entry = AuditEntry.create(
            decision=decision,
            reason=reason,
            justification=justification,
            token_fingerprint=fingerprint,
            overridden_findings=tuple(f.summary() for f in overridden),
            tool=report.tool if report is not None else None,
            target=report.target if report is not None else None,
        )

        log = logger.bind(token_fingerprint=fingerprint, decision=decision.value)

        try:
            self._audit_sink.append(entry)
        except AuditWriteError as e:
            log.error("bypass_audit_failed", error=str(e))
            return BypassDecision(
                kind=DecisionKind.REJECTED,
                reason=REASON_AUDIT_FAILED if rejection is None else rejection,
                token_fingerprint=fingerprint,
            )

        if rejection is None:
            log.warning("bypass_granted", reason=reason, overridden=len(overridden))
            return BypassDecision(
                kind=DecisionKind.GRANTED,
                reason=reason,
                token_fingerprint=fingerprint,
                audit_entry=entry,
            )

        log.warning("bypass_rejected", rejection=rejection)
        return BypassDecision(
            kind=DecisionKind.REJECTED,
            reason=rejection,
            token_fingerprint=fingerprint,
            audit_entry=entry,
        )


__all__: list[str] = [
    "REASON_AUDIT_FAILED",
    "REASON_DISABLED",
    "REASON_INVALID_TOKEN",
    "REASON_MISSING_REASON",
    "REASON_NOT_CONFIGURED",
    "REASON_TOKEN_EXPIRED",
    "REASON_TOKEN_TTL",
    "BypassAuthority",
    "BypassDecision",
    "BypassRequest",
    "DecisionKind",
    "SignedTokenVerifier",
    "StaticSecretVerifier",
    "TokenVerifier",
    "build_verifier",
    "issue_signed_token",
    "token_fingerprint",
]
