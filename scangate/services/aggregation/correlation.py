"""Merge findings that several tools report for the same issue.

Findings are grouped by fingerprint. Everything the merged record exposes
except ``message`` and ``notes`` is independent of input order: severity is
the maximum in the group, tools, CWE ids and aliases are unions in a fixed
order, and the location comes from the lowest tool in canonical order.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from ...types import Finding


def correlate(findings: Iterable[Finding]) -> List[Finding]:
    groups: Dict[str, List[Finding]] = {}
    for finding in findings:
        groups.setdefault(finding.fingerprint, []).append(finding)

    merged = [_merge(group) for group in groups.values()]
    return sort_findings(merged)


def sort_findings(findings: Iterable[Finding]) -> List[Finding]:
    return sorted(findings, key=lambda f: (-f.severity.rank, f.fingerprint))


def _merge(group: List[Finding]) -> Finding:
    if len(group) == 1:
        return group[0]

    first = group[0]
    tools = sorted({tool for finding in group for tool in finding.tools}, key=lambda t: t.order)
    anchor = min(group, key=_anchor_key)

    notes: List[str] = []
    for finding in group:
        for text in (finding.message, *finding.notes):
            if text and text != first.message and text not in notes:
                notes.append(text)

    return Finding(
        source_tool=tools[0],
        rule_id=first.rule_id,
        severity=max((finding.severity for finding in group), key=lambda s: s.rank),
        location=anchor.location,
        message=first.message,
        cwe_ids=_union(finding.cwe_ids for finding in group),
        aliases=_union(finding.aliases for finding in group),
        source_tools=tuple(tools),
        notes=tuple(notes),
        native_severities=_union(finding.native_severities for finding in group),
    )


def _anchor_key(finding: Finding):
    # Lowest canonical tool first, then the most detailed locator, then a
    # total order on the locator text so ties never depend on input order.
    return (
        min(tool.order for tool in finding.tools),
        -finding.location.detail(),
        repr(finding.location),
    )


def _union(values: Iterable[Iterable[str]]) -> tuple:
    return tuple(sorted({item for group in values for item in group}))
