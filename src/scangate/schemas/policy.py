"""Gate policy and bypass configuration models.

Example:
    >>> from scangate.schemas.policy import GatePolicy
    >>> policy = GatePolicy(severityThreshold="high", exceptions=["busybox"])
    >>> policy.severity_threshold
    <Severity.HIGH: 'HIGH'>
    >>> policy.is_exempt_package("busybox")
    True
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from scangate.schemas.findings import Severity

DEFAULT_SEVERITY_THRESHOLD = Severity.HIGH
"""Threshold used when no policy is configured (original gate failed on HIGH and CRITICAL)."""

TokenMode = Literal["static", "signed"]


class GatePolicy(BaseModel):
    """Severity policy applied to a findings report.

    Loaded once per run and read-only during evaluation.

    Attributes:
        severity_threshold: Minimum severity that fails the gate.
        exceptions: Package names exempt from the policy.
        ignore_unfixed: Exempt findings that have no fixed version.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    severity_threshold: Severity = Field(
        default=DEFAULT_SEVERITY_THRESHOLD,
        alias="severityThreshold",
        description="Minimum severity that causes a gate failure",
    )
    exceptions: frozenset[str] = Field(
        default_factory=frozenset,
        description="Package allow-list exempt from the policy",
    )
    ignore_unfixed: bool = Field(
        default=False,
        alias="ignoreUnfixed",
        description="Exempt findings without a fixed version",
    )

    @field_validator("severity_threshold", mode="before")
    @classmethod
    def normalize_threshold(cls, v: Any) -> Any:
        """Accept threshold names in any case."""
        if isinstance(v, str):
            normalized = v.strip().upper()
            valid = [s.value for s in Severity]
            if normalized not in valid:
                msg = f"Invalid severity threshold {v!r}. Valid levels: {valid}"
                raise ValueError(msg)
            return Severity(normalized)
        return v

    @field_validator("exceptions", mode="before")
    @classmethod
    def strip_exceptions(cls, v: Any) -> Any:
        """Drop blank package names and surrounding whitespace."""
        if isinstance(v, (list, tuple, set, frozenset)):
            return [
                item.strip() if isinstance(item, str) else item
                for item in v
                if not (isinstance(item, str) and not item.strip())
            ]
        return v

    def is_exempt_package(self, package: str) -> bool:
        """Check whether a package is on the allow-list."""
        return package in self.exceptions

    def to_summary(self) -> dict[str, Any]:
        """Render the policy for reports and artifact metadata."""
        return {
            "severity_threshold": self.severity_threshold.value,
            "exceptions": sorted(self.exceptions),
            "ignore_unfixed": self.ignore_unfixed,
        }


class BypassConfig(BaseModel):
    """Trust configuration for the Bypass Authority.

    Passed explicitly to the authority so the trust boundary is visible at
    the call site instead of being read from ambient environment variables.

    Attributes:
        enabled: Whether bypass requests can be granted at all.
        secret: Shared secret the token is checked against.
        token_mode: "static" compares the token with the secret; "signed"
            expects a short-lived HMAC token minted from the secret.
        max_token_ttl_seconds: Longest lifetime accepted for signed tokens.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True, description="Allow bypass requests")
    secret: SecretStr | None = Field(default=None, description="Configured bypass secret")
    token_mode: TokenMode = Field(default="static", description="Token verification mode")
    max_token_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        le=7 * 86400,
        description="Maximum lifetime of a signed bypass token",
    )

    @property
    def configured(self) -> bool:
        """Whether a non-empty secret is available."""
        return self.secret is not None and bool(self.secret.get_secret_value())


__all__: list[str] = [
    "DEFAULT_SEVERITY_THRESHOLD",
    "TokenMode",
    "GatePolicy",
    "BypassConfig",
]
