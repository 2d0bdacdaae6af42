"""Gate evaluation for merge-request blocking.

Applies ignore entries to the deduplicated findings and decides pass/fail
against the policy's severity threshold and secret rule. Evaluation is a
pure function of its arguments: expired ignore entries are reported through
``GateResult.warnings`` rather than logged here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date
from fnmatch import fnmatchcase
from typing import AbstractSet, Dict, Iterable, List, Optional, Tuple

from ...schemas import GatePolicy, IgnoreEntry, IgnoreKind
from ...types import (
    SEVERITY_LEVELS,
    FileLocation,
    Finding,
    GateDecision,
    GateResult,
    PolicyViolation,
    Severity,
    SourceTool,
)

SEVERITY_RULE = "max_severity_allowed"
SECRETS_RULE = "fail_on_new_secrets"


@dataclass(frozen=True)
class GateEvaluation:
    findings: Tuple[Finding, ...]
    summary_counts: Dict[Severity, int]
    result: GateResult


def evaluate_gate(
    findings: Iterable[Finding],
    policy: GatePolicy,
    *,
    today: date,
    baseline: Optional[AbstractSet[str]] = None,
) -> GateEvaluation:
    """Evaluate findings against the gate policy.

    Args:
        findings: Deduplicated findings for one run.
        policy: Threshold, secret rule and ignore entries.
        today: Date used to decide whether ignore entries have expired.
        baseline: Fingerprints from an earlier report; gitleaks findings in
            it are not "new" secrets.

    Returns:
        GateEvaluation with suppression applied, counts of non-suppressed
        findings per severity and the gate result.
    """
    active_entries: List[IgnoreEntry] = []
    warnings: List[str] = []
    for entry in policy.ignore_entries:
        if entry.is_expired(today):
            warnings.append(
                f"Ignore entry {entry.describe()} expired on {entry.expires.isoformat()}; "
                "it no longer suppresses findings"
            )
        else:
            active_entries.append(entry)

    evaluated: List[Finding] = []
    for finding in findings:
        entry = _first_match(finding, active_entries)
        if entry is not None:
            finding = replace(finding, suppressed=True, suppressed_by=entry.describe())
        evaluated.append(finding)

    counts: Dict[Severity, int] = {level: 0 for level in reversed(SEVERITY_LEVELS)}
    for finding in evaluated:
        if not finding.suppressed:
            counts[finding.severity] += 1

    threshold = policy.max_severity_allowed
    unsuppressed = [finding for finding in evaluated if not finding.suppressed]
    over_threshold = [f for f in unsuppressed if f.severity.rank > threshold.rank]
    new_secrets: List[Finding] = []
    if policy.fail_on_new_secrets:
        known = baseline or frozenset()
        new_secrets = [
            f
            for f in unsuppressed
            if SourceTool.gitleaks in f.tools and f.fingerprint not in known
        ]

    rule: Optional[str] = None
    if over_threshold:
        rule = SEVERITY_RULE
    elif new_secrets:
        rule = SECRETS_RULE

    offending: Dict[str, Finding] = {}
    for finding in over_threshold + new_secrets:
        offending.setdefault(finding.fingerprint, finding)

    result = GateResult(
        decision=GateDecision.failed if rule else GateDecision.passed,
        threshold=threshold,
        rule=rule,
        violations=tuple(_violation(finding) for finding in offending.values()),
        warnings=tuple(warnings),
    )
    return GateEvaluation(findings=tuple(evaluated), summary_counts=counts, result=result)


def matches_entry(finding: Finding, entry: IgnoreEntry) -> bool:
    if entry.source_tool is not None and entry.source_tool not in finding.tools:
        return False
    if entry.kind == IgnoreKind.rule_id:
        pattern = entry.pattern.upper()
        return any(
            fnmatchcase(candidate.upper(), pattern)
            for candidate in (finding.rule_id, *finding.aliases)
        )
    if entry.kind == IgnoreKind.regex:
        return re.search(entry.pattern, finding.message) is not None
    if entry.kind == IgnoreKind.path_prefix:
        if not isinstance(finding.location, FileLocation):
            return False
        return finding.location.path.startswith(_clean_prefix(entry.pattern))
    if entry.kind == IgnoreKind.fingerprint:
        return finding.fingerprint == entry.pattern.lower()
    return False


def _first_match(finding: Finding, entries: List[IgnoreEntry]) -> Optional[IgnoreEntry]:
    for entry in entries:
        if matches_entry(finding, entry):
            return entry
    return None


def _clean_prefix(pattern: str) -> str:
    prefix = pattern.replace("\\", "/")
    if prefix.startswith("./"):
        prefix = prefix[2:]
    return prefix.lstrip("/")


def _violation(finding: Finding) -> PolicyViolation:
    return PolicyViolation(
        fingerprint=finding.fingerprint,
        rule_id=finding.rule_id,
        severity=finding.severity,
        location=finding.location.display(),
        tools=finding.tools,
    )
