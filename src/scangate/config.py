"""Gate configuration from environment, .env file, and policy files.

Environment variables (prefix GATE_) are read once, at the CLI edge, into
GateSettings. From there the gate receives explicit objects: a GatePolicy, a
BypassConfig, an optional BypassRequest, and a findings path. Nothing below
the CLI reads the environment.

Environment Variables:
    GATE_POLICY_FILE: YAML/JSON policy file.
    GATE_SEVERITY_THRESHOLD: LOW, MEDIUM, HIGH, or CRITICAL.
    GATE_EXCEPTIONS: Comma-separated package allow-list.
    GATE_IGNORE_UNFIXED: Exempt findings without a fixed version.
    GATE_BYPASS_ENABLED: Allow bypass requests (default true).
    GATE_BYPASS_SECRET: Secret bypass tokens are checked against.
    GATE_BYPASS_TOKEN_MODE: "static" (default) or "signed".
    GATE_BYPASS_MAX_TOKEN_TTL: Longest signed-token lifetime in seconds.
    GATE_BYPASS_TOKEN / GATE_BYPASS_REASON: A bypass request; both must be set.
    GATE_SCAN_RESULTS_DIR: Directory holding <scanner>-results.json files.
    GATE_AUDIT_LOG / GATE_AUDIT_DIR: Audit log file, or directory for daily files.

Policy precedence (lowest to highest): built-in defaults, policy file,
GATE_* environment variables, CLI options.

Example:
    >>> settings = load_settings()
    >>> policy = resolve_policy(settings, threshold="CRITICAL")
    >>> policy.severity_threshold
    <Severity.CRITICAL: 'CRITICAL'>
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from scangate.audit import DEFAULT_AUDIT_DIR, DEFAULT_LOCK_TIMEOUT, default_audit_path
from scangate.bypass import BypassRequest
from scangate.errors import ConfigurationError
from scangate.loader import DEFAULT_MAX_BYTES
from scangate.schemas.policy import BypassConfig, GatePolicy

logger = structlog.get_logger(__name__)

SUPPORTED_SCANNERS: tuple[str, ...] = ("trivy", "grype")

DEFAULT_SCAN_RESULTS_DIR = Path("scan-results")


class GateSettings(BaseSettings):
    """Gate settings loaded from GATE_* environment variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="GATE_",
        env_file=".env",
        extra="ignore",
    )

    policy_file: Path | None = Field(default=None, description="Policy file path")
    severity_threshold: str | None = Field(default=None, description="Threshold override")
    exceptions: str | None = Field(
        default=None,
        description="Comma-separated package allow-list",
    )
    ignore_unfixed: bool | None = Field(default=None, description="Exempt unfixed findings")

    bypass_enabled: bool = Field(default=True, description="Allow bypass requests")
    bypass_secret: SecretStr | None = Field(default=None, description="Bypass secret")
    bypass_token_mode: Literal["static", "signed"] = Field(default="static")
    bypass_max_token_ttl: int = Field(default=86400, ge=60, le=7 * 86400)
    bypass_token: SecretStr | None = Field(default=None, description="Presented bypass token")
    bypass_reason: str | None = Field(default=None, description="Bypass justification")

    scan_results_dir: Path = Field(default=DEFAULT_SCAN_RESULTS_DIR)
    audit_log: Path | None = Field(default=None, description="Explicit audit log file")
    audit_dir: Path = Field(default=DEFAULT_AUDIT_DIR)
    audit_max_attempts: int = Field(default=3, ge=1, le=10)
    audit_lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, gt=0)
    max_findings_bytes: int = Field(default=DEFAULT_MAX_BYTES, gt=0)


def load_settings(env_file: str | Path | None = ".env") -> GateSettings:
    """Load settings, converting validation failures into ConfigurationError.

    Args:
        env_file: Dotenv file to read in addition to the environment.
            A missing file is ignored; None disables dotenv loading.
    """
    try:
        return GateSettings(_env_file=env_file)  # type: ignore[call-arg]
    except ValidationError as e:
        problems = "; ".join(
            f"GATE_{'.'.join(str(p) for p in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid gate settings: {problems}") from e


def load_policy_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON policy file into a raw mapping.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or not a mapping.
    """
    policy_path = Path(path)
    if not policy_path.is_file():
        raise ConfigurationError("Policy file not found", source=str(policy_path))
    try:
        data = yaml.safe_load(policy_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse policy file: {e}", source=str(policy_path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Policy file must contain a mapping", source=str(policy_path))
    return data


def resolve_policy(
    settings: GateSettings,
    policy_file: str | Path | None = None,
    threshold: str | None = None,
) -> GatePolicy:
    """Build the run's GatePolicy from file, environment, and CLI overrides.

    Args:
        settings: Loaded gate settings.
        policy_file: Policy file overriding settings.policy_file.
        threshold: CLI threshold override.

    Raises:
        ConfigurationError: If any source yields an invalid policy.
    """
    source = policy_file or settings.policy_file
    raw: dict[str, Any] = load_policy_file(source) if source else {}

    if settings.severity_threshold is not None:
        raw.pop("severity_threshold", None)
        raw["severityThreshold"] = settings.severity_threshold
    if settings.exceptions is not None:
        raw["exceptions"] = [item for item in settings.exceptions.split(",")]
    if settings.ignore_unfixed is not None:
        raw.pop("ignore_unfixed", None)
        raw["ignoreUnfixed"] = settings.ignore_unfixed
    if threshold is not None:
        raw.pop("severity_threshold", None)
        raw["severityThreshold"] = threshold

    try:
        policy = GatePolicy.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(
            f"Invalid policy: {problems}",
            source=str(source) if source else None,
        ) from e

    logger.debug("policy_resolved", source=str(source) if source else None, **policy.to_summary())
    return policy


def bypass_config(settings: GateSettings) -> BypassConfig:
    """Explicit bypass trust configuration from settings."""
    return BypassConfig(
        enabled=settings.bypass_enabled,
        secret=settings.bypass_secret,
        token_mode=settings.bypass_token_mode,
        max_token_ttl_seconds=settings.bypass_max_token_ttl,
    )


def bypass_request(settings: GateSettings) -> BypassRequest | None:
    """Build a BypassRequest when both token and reason are supplied.

    An empty value still counts as supplied, so an empty reason yields a
    request the authority rejects. A token without a reason variable (or the
    reverse) is not a request; it is logged and ignored.
    """
    token, reason = settings.bypass_token, settings.bypass_reason
    if token is None and reason is None:
        return None
    if token is None or reason is None:
        logger.warning(
            "bypass_incomplete",
            token_set=token is not None,
            reason_set=reason is not None,
            detail="GATE_BYPASS_TOKEN and GATE_BYPASS_REASON must be set together",
        )
        return None
    return BypassRequest(token=token, reason=reason)


def findings_path_for(scanner: str, settings: GateSettings) -> Path:
    """Findings file for a scanner: <scan_results_dir>/<scanner>-results.json.

    Raises:
        ConfigurationError: If the scanner is not supported.
    """
    if scanner not in SUPPORTED_SCANNERS:
        raise ConfigurationError(
            f"Unsupported scanner {scanner!r}. Must be one of: {', '.join(SUPPORTED_SCANNERS)}"
        )
    return settings.scan_results_dir / f"{scanner}-results.json"


def audit_log_path(settings: GateSettings, override: str | Path | None = None) -> Path:
    """Audit log file: CLI override, GATE_AUDIT_LOG, or a daily file in GATE_AUDIT_DIR."""
    if override is not None:
        return Path(override)
    if settings.audit_log is not None:
        return settings.audit_log
    return default_audit_path(settings.audit_dir)


__all__: list[str] = [
    "DEFAULT_SCAN_RESULTS_DIR",
    "SUPPORTED_SCANNERS",
    "GateSettings",
    "audit_log_path",
    "bypass_config",
    "bypass_request",
    "findings_path_for",
    "load_policy_file",
    "load_settings",
    "resolve_policy",
]
