from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import FrozenSet, List, Union

from pydantic import ValidationError

from ...errors import PolicyConfigError, ReportWriteError
from ...schemas import (
    FileLocationRead,
    FindingRead,
    GateResultRead,
    PackageLocationRead,
    PolicyViolationRead,
    ReportDocument,
    ToolRunRead,
)
from ...types import (
    SEVERITY_LEVELS,
    AggregatedReport,
    FileLocation,
    Finding,
    Severity,
)

SEVERITY_BADGES = {
    Severity.critical: "CRITICAL",
    Severity.high: "HIGH",
    Severity.medium: "MEDIUM",
    Severity.low: "LOW",
    Severity.info: "INFO",
}


def build_document(report: AggregatedReport) -> ReportDocument:
    gate = report.gate_result
    return ReportDocument(
        run_id=report.run_id,
        generated_at=report.generated_at,
        partial=report.partial,
        gate_result=GateResultRead(
            decision=gate.decision.value,
            threshold=gate.threshold,
            rule=gate.rule,
            exit_code=gate.exit_code,
            violations=[
                PolicyViolationRead(
                    fingerprint=v.fingerprint,
                    rule_id=v.rule_id,
                    severity=v.severity,
                    location=v.location,
                    tools=list(v.tools),
                )
                for v in gate.violations
            ],
        ),
        summary_counts={
            level.value: report.summary_counts.get(level, 0)
            for level in reversed(SEVERITY_LEVELS)
        },
        tool_runs=[
            ToolRunRead(
                tool=run.tool,
                label=run.label,
                status=run.status,
                finding_count=run.finding_count,
                error=run.error,
            )
            for run in report.tool_runs
        ],
        warnings=list(report.warnings),
        findings=[_finding_read(finding) for finding in report.findings],
    )


def render_json(report: AggregatedReport) -> str:
    return build_document(report).model_dump_json(indent=2) + "\n"


def render_summary(report: AggregatedReport, *, max_findings: int = 50) -> str:
    """Markdown summary sized for a single merge-request comment."""
    gate = report.gate_result
    lines: List[str] = []
    status = "PASSED" if gate.passed else "FAILED"
    lines.append(f"## Security gate {status}")
    lines.append("")
    if gate.passed:
        lines.append(
            f"No unsuppressed findings above **{gate.threshold.value}**."
        )
    else:
        lines.append(
            f"Failed on `{gate.rule}` (threshold: **{gate.threshold.value}**), "
            f"{len(gate.violations)} offending finding(s):"
        )
        lines.append("")
        for violation in gate.violations[:max_findings]:
            tools = ", ".join(tool.value for tool in violation.tools)
            lines.append(
                f"- **{SEVERITY_BADGES[violation.severity]}** `{violation.rule_id}` "
                f"at `{violation.location}` ({tools})"
            )
        if len(gate.violations) > max_findings:
            lines.append(f"- ... and {len(gate.violations) - max_findings} more")
    lines.append("")

    if report.partial:
        missing = ", ".join(
            f"{run.tool.value} ({run.status})" for run in report.failed_tools
        )
        lines.append(f"> **Partial run:** no findings from {missing}.")
        lines.append("")

    lines.append("| Severity | Count |")
    lines.append("| --- | ---: |")
    for level in reversed(SEVERITY_LEVELS):
        lines.append(f"| {level.value} | {report.summary_counts.get(level, 0)} |")
    lines.append("")

    active = [finding for finding in report.findings if not finding.suppressed]
    shown = 0
    for level in reversed(SEVERITY_LEVELS):
        group = [finding for finding in active if finding.severity == level]
        if not group or shown >= max_findings:
            continue
        lines.append(f"### {level.value.capitalize()} ({len(group)})")
        lines.append("")
        for finding in group:
            if shown >= max_findings:
                break
            lines.append(_summary_line(finding))
            shown += 1
        lines.append("")
    if len(active) > shown:
        lines.append(f"_{len(active) - shown} more finding(s) in the full report._")
        lines.append("")

    suppressed = [finding for finding in report.findings if finding.suppressed]
    if suppressed:
        lines.append(f"<details><summary>{len(suppressed)} suppressed finding(s)</summary>")
        lines.append("")
        for finding in suppressed[:max_findings]:
            lines.append(f"{_summary_line(finding)} (ignored by `{finding.suppressed_by}`)")
        lines.append("")
        lines.append("</details>")
        lines.append("")

    if report.warnings:
        lines.append("**Warnings**")
        lines.append("")
        for warning in report.warnings:
            lines.append(f"- {warning}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def write_report(path: Union[str, Path], content: Union[str, bytes]) -> Path:
    """Atomically write an artifact; the temp file never outlives a failure."""
    target = Path(path)
    data = content.encode("utf-8") if isinstance(content, str) else content
    tmp_name = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
        )
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        raise ReportWriteError(f"Cannot write report {target}: {exc}") from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
    return target


def load_baseline_fingerprints(path: Union[str, Path]) -> FrozenSet[str]:
    """Fingerprints recorded in an earlier JSON report."""
    try:
        document = ReportDocument.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise PolicyConfigError(f"Invalid baseline report {path}: {exc}") from exc
    return frozenset(finding.fingerprint for finding in document.findings)


def _finding_read(finding: Finding) -> FindingRead:
    location = finding.location
    if isinstance(location, FileLocation):
        location_read: Union[FileLocationRead, PackageLocationRead] = FileLocationRead(
            path=location.path,
            line_start=location.line_start,
            line_end=location.line_end,
        )
    else:
        location_read = PackageLocationRead(
            name=location.name,
            version=location.version,
            image_digest=location.image_digest,
            ecosystem=location.ecosystem,
            purl=location.purl,
        )
    return FindingRead(
        fingerprint=finding.fingerprint,
        rule_id=finding.rule_id,
        severity=finding.severity,
        source_tools=list(finding.tools),
        location=location_read,
        message=finding.message,
        notes=list(finding.notes),
        cwe_ids=list(finding.cwe_ids),
        aliases=list(finding.aliases),
        native_severities=list(finding.native_severities),
        suppressed=finding.suppressed,
        suppressed_by=finding.suppressed_by,
    )


def _summary_line(finding: Finding) -> str:
    tools = ", ".join(tool.value for tool in finding.tools)
    return f"- `{finding.rule_id}` at `{finding.location.display()}` ({tools})"
