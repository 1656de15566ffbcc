"""Gate orchestrator: the top-level state machine of a gate run.

States:
    LOADING -> EVALUATING -> {CLEAN, VIOLATED} -> {FINAL_PASS, FINAL_FAIL, FINAL_BYPASSED}

- A LoadError while LOADING propagates to the caller; it is an input or
  configuration problem, never a security verdict.
- CLEAN goes straight to FINAL_PASS. The Bypass Authority is not consulted;
  a bypass request supplied anyway is logged as unused.
- VIOLATED consults the Bypass Authority: GRANTED ends in FINAL_BYPASSED,
  REJECTED or NOT_REQUESTED end in FINAL_FAIL.

PolicyGate keeps no per-run state. Each run() receives its own findings path,
policy, and bypass request, so one instance can serve independent requests.

Example:
    >>> gate = PolicyGate(authority)
    >>> verdict = gate.run("scan-results/trivy-results.json", GatePolicy())
    >>> verdict.status
    <GateStatus.FAIL: 'FAIL'>
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import structlog

from scangate.bypass import BypassAuthority, BypassRequest
from scangate.evaluator import evaluate
from scangate.loader import DEFAULT_MAX_BYTES, load
from scangate.schemas.findings import FindingsReport
from scangate.schemas.policy import GatePolicy
from scangate.schemas.verdict import EvaluationOutcome, GateStatus, Verdict
from scangate.telemetry import create_span

logger = structlog.get_logger(__name__)


class GateState(str, Enum):
    """States of a single gate run."""

    LOADING = "loading"
    EVALUATING = "evaluating"
    CLEAN = "clean"
    VIOLATED = "violated"
    FINAL_PASS = "final_pass"
    FINAL_FAIL = "final_fail"
    FINAL_BYPASSED = "final_bypassed"


TERMINAL_STATES = frozenset({GateState.FINAL_PASS, GateState.FINAL_FAIL, GateState.FINAL_BYPASSED})

_TRANSITIONS: dict[GateState, frozenset[GateState]] = {
    GateState.LOADING: frozenset({GateState.EVALUATING}),
    GateState.EVALUATING: frozenset({GateState.CLEAN, GateState.VIOLATED}),
    GateState.CLEAN: frozenset({GateState.FINAL_PASS}),
    GateState.VIOLATED: frozenset({GateState.FINAL_FAIL, GateState.FINAL_BYPASSED}),
}


class _Run:
    """Tracks the state of one run and logs each transition."""

    def __init__(self, state: GateState, log: structlog.stdlib.BoundLogger) -> None:
        self.state = state
        self._log = log

    def advance(self, target: GateState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if target not in allowed:
            raise RuntimeError(f"Illegal gate transition {self.state.value} -> {target.value}")
        self._log.debug("gate_transition", from_state=self.state.value, to_state=target.value)
        self.state = target


class PolicyGate:
    """Runs findings through the policy and, on violation, the Bypass Authority."""

    def __init__(
        self,
        authority: BypassAuthority,
        max_findings_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._authority = authority
        self._max_findings_bytes = max_findings_bytes

    def run(
        self,
        findings_path: str | Path,
        policy: GatePolicy,
        bypass_request: BypassRequest | None = None,
    ) -> Verdict:
        """Load a findings file and decide the gate.

        Args:
            findings_path: Normalized findings document.
            policy: Policy for this run.
            bypass_request: Optional override request.

        Returns:
            Terminal Verdict.

        Raises:
            LoadError: If the findings document cannot be loaded.
        """
        path = Path(findings_path)
        log = logger.bind(findings=str(path), threshold=policy.severity_threshold.value)
        run = _Run(GateState.LOADING, log)

        with create_span(
            "scangate.gate.run",
            {
                "scangate.findings_path": str(path),
                "scangate.threshold": policy.severity_threshold.value,
            },
        ) as span:
            report = load(path, max_bytes=self._max_findings_bytes)
            verdict = self._decide(run, report, policy, bypass_request, log)
            span.set_attribute("scangate.verdict", verdict.status.value)
            span.set_attribute("scangate.violations", len(verdict.violations))
        return verdict

    def decide(
        self,
        report: FindingsReport,
        policy: GatePolicy,
        bypass_request: BypassRequest | None = None,
    ) -> Verdict:
        """Decide the gate for an already loaded report."""
        log = logger.bind(
            findings=report.source_path,
            threshold=policy.severity_threshold.value,
        )
        run = _Run(GateState.LOADING, log)
        with create_span(
            "scangate.gate.decide",
            {"scangate.threshold": policy.severity_threshold.value},
        ) as span:
            verdict = self._decide(run, report, policy, bypass_request, log)
            span.set_attribute("scangate.verdict", verdict.status.value)
        return verdict

    def _decide(
        self,
        run: _Run,
        report: FindingsReport,
        policy: GatePolicy,
        bypass_request: BypassRequest | None,
        log: structlog.stdlib.BoundLogger,
    ) -> Verdict:
        run.advance(GateState.EVALUATING)
        outcome = evaluate(report, policy)

        if outcome.is_clean:
            run.advance(GateState.CLEAN)
            if bypass_request is not None:
                log.warning(
                    "bypass_unused",
                    token_fingerprint=bypass_request.fingerprint,
                    detail="no policy violation to bypass",
                )
            run.advance(GateState.FINAL_PASS)
            log.info(
                "gate_passed",
                findings=len(report.findings),
                exempted=len(outcome.exempted),
                max_severity=outcome.max_severity.value if outcome.max_severity else None,
            )
            return self._verdict(GateStatus.PASS, report, outcome)

        run.advance(GateState.VIOLATED)
        log.warning(
            "gate_violation",
            violations=len(outcome.violations),
            max_severity=outcome.max_severity.value if outcome.max_severity else None,
        )

        decision = self._authority.authorize(
            bypass_request,
            overridden=outcome.violations,
            report=report,
        )

        if decision.granted:
            run.advance(GateState.FINAL_BYPASSED)
            log.warning(
                "gate_bypassed",
                reason=decision.reason,
                token_fingerprint=decision.token_fingerprint,
                overridden=[f.id for f in outcome.violations],
            )
            return self._verdict(
                GateStatus.BYPASSED,
                report,
                outcome,
                bypass_reason=decision.reason,
            )

        run.advance(GateState.FINAL_FAIL)
        log.error(
            "gate_failed",
            violations=[f.id for f in outcome.violations],
            bypass=decision.kind.value,
            rejection=decision.reason,
        )
        return self._verdict(
            GateStatus.FAIL,
            report,
            outcome,
            rejection=decision.reason,
        )

    @staticmethod
    def _verdict(
        status: GateStatus,
        report: FindingsReport,
        outcome: EvaluationOutcome,
        *,
        bypass_reason: str | None = None,
        rejection: str | None = None,
    ) -> Verdict:
        return Verdict(
            status=status,
            violations=outcome.violations,
            bypass_reason=bypass_reason,
            rejection=rejection,
            tool=report.tool,
            target=report.target,
            threshold=outcome.threshold,
            exempted_count=len(outcome.exempted),
            finding_counts=report.counts_by_severity(),
        )


__all__: list[str] = [
    "TERMINAL_STATES",
    "GateState",
    "PolicyGate",
]
