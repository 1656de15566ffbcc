"""Policy evaluation over a findings report.

evaluate() is a pure function: it reads the report and policy, performs no
I/O, and returns a new EvaluationOutcome. Evaluating the same inputs twice
yields equal outcomes.

Violations keep the scanner's original order so output is reproducible.
"""

from __future__ import annotations

from scangate.schemas.findings import Finding, FindingsReport
from scangate.schemas.policy import GatePolicy
from scangate.schemas.verdict import EvaluationOutcome, OutcomeKind


def is_exempt(finding: Finding, policy: GatePolicy) -> bool:
    """Check whether the policy exempts a finding.

    A finding is exempt when its package is on the allow-list, or when
    ignore_unfixed is set and no fixed version is known.
    """
    if policy.is_exempt_package(finding.package):
        return True
    return policy.ignore_unfixed and not finding.has_fix


def evaluate(report: FindingsReport, policy: GatePolicy) -> EvaluationOutcome:
    """Apply a severity policy to a findings report.

    Args:
        report: Loaded findings.
        policy: Threshold and exemptions to apply.

    Returns:
        VIOLATION outcome listing every non-exempt finding whose severity is
        at or above the threshold, in report order; CLEAN otherwise.

    Examples:
        >>> outcome = evaluate(report, GatePolicy(severity_threshold="HIGH"))
        >>> outcome.kind
        <OutcomeKind.VIOLATION: 'violation'>
        >>> [f.id for f in outcome.violations]
        ['CVE-2023-0001']
    """
    threshold = policy.severity_threshold
    violations: list[Finding] = []
    exempted: list[Finding] = []
    max_severity = None

    for finding in report.findings:
        if is_exempt(finding, policy):
            exempted.append(finding)
            continue

        if max_severity is None or finding.severity > max_severity:
            max_severity = finding.severity

        if finding.severity >= threshold:
            violations.append(finding)

    return EvaluationOutcome(
        kind=OutcomeKind.VIOLATION if violations else OutcomeKind.CLEAN,
        violations=tuple(violations),
        exempted=tuple(exempted),
        max_severity=max_severity,
        threshold=threshold,
    )


__all__: list[str] = [
    "evaluate",
    "is_exempt",
]
