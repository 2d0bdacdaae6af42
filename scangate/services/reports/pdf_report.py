from __future__ import annotations

from io import BytesIO
from typing import Dict, List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, StyleSheet1, getSampleStyleSheet
from reportlab.platypus import (
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from ...types import SEVERITY_LEVELS, AggregatedReport, Finding, Severity

MAX_DETAILED_FINDINGS = 40
MESSAGE_LIMIT = 420

SEVERITY_COLORS: Dict[Severity, colors.Color] = {
    Severity.critical: colors.HexColor("#991b1b"),
    Severity.high: colors.HexColor("#c2410c"),
    Severity.medium: colors.HexColor("#a16207"),
    Severity.low: colors.HexColor("#1d4ed8"),
    Severity.info: colors.HexColor("#4b5563"),
}
VERDICT_COLORS = {True: colors.HexColor("#166534"), False: colors.HexColor("#991b1b")}
GRID = colors.HexColor("#cbd5e1")


def build_report_pdf(report: AggregatedReport) -> bytes:
    """Render the aggregated report as a printable PDF.

    Layout: gate verdict banner, severity count table, per-tool run table,
    then unsuppressed findings grouped by severity and the suppressed ones.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=42,
        rightMargin=42,
        topMargin=40,
        bottomMargin=40,
        title=f"Security gate {report.run_id or ''}".strip(),
    )
    styles = _styles()
    story: List = [
        Paragraph("Security gate", styles["Title"]),
        Paragraph(
            f"Run {_plain(report.run_id or 'n/a')} &middot; "
            f"{report.generated_at.isoformat(timespec='seconds')}",
            styles["GateMeta"],
        ),
        Spacer(1, 8),
        _verdict_banner(report, styles, doc.width),
        Spacer(1, 14),
        _counts_table(report),
        Spacer(1, 14),
        Paragraph("Tool runs", styles["GateSection"]),
        _tool_runs_table(report, styles),
        Spacer(1, 14),
    ]

    active = [finding for finding in report.findings if not finding.suppressed]
    suppressed = [finding for finding in report.findings if finding.suppressed]
    story.extend(_findings_section(active, styles))
    if suppressed:
        story.append(Paragraph(f"Suppressed ({len(suppressed)})", styles["GateSection"]))
        for finding in suppressed[:MAX_DETAILED_FINDINGS]:
            story.append(
                Paragraph(
                    f"{_plain(finding.rule_id)} at {_plain(finding.location.display())}, "
                    f"ignored by {_plain(finding.suppressed_by)}",
                    styles["GateSmall"],
                )
            )

    if report.warnings:
        story.append(Paragraph("Warnings", styles["GateSection"]))
        for warning in report.warnings:
            story.append(Paragraph(_plain(warning), styles["GateSmall"]))

    footer = _footer(report)
    doc.build(story, onFirstPage=footer, onLaterPages=footer)
    return buffer.getvalue()


def _styles() -> StyleSheet1:
    sheet = getSampleStyleSheet()
    base = sheet["BodyText"]
    sheet.add(ParagraphStyle("GateMeta", parent=base, fontSize=9, textColor=colors.grey))
    sheet.add(
        ParagraphStyle(
            "GateSection", parent=sheet["Heading2"], fontSize=12, spaceBefore=8, spaceAfter=4
        )
    )
    sheet.add(ParagraphStyle("GateBody", parent=base, fontSize=9.5, leading=12.5))
    sheet.add(ParagraphStyle("GateSmall", parent=base, fontSize=8.5, leading=11))
    sheet.add(
        ParagraphStyle(
            "GateVerdict", parent=base, fontSize=13, leading=17, textColor=colors.white
        )
    )
    return sheet


def _verdict_banner(report: AggregatedReport, styles: StyleSheet1, width: float) -> Table:
    gate = report.gate_result
    text = f"<b>{'PASSED' if gate.passed else 'FAILED'}</b> at threshold {gate.threshold.value}"
    if gate.rule:
        text += f" ({_plain(gate.rule)}, {len(gate.violations)} violation(s))"
    if report.partial:
        text += " &middot; partial run"
    banner = Table([[Paragraph(text, styles["GateVerdict"])]], colWidths=[width])
    banner.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, -1), VERDICT_COLORS[gate.passed]),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    return banner


def _counts_table(report: AggregatedReport) -> Table:
    levels = list(reversed(SEVERITY_LEVELS))
    table = Table(
        [
            [level.value for level in levels],
            [str(report.summary_counts.get(level, 0)) for level in levels],
        ],
        hAlign="LEFT",
    )
    commands = [
        ("GRID", (0, 0), (-1, -1), 0.5, GRID),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ]
    for column, level in enumerate(levels):
        commands.append(("TEXTCOLOR", (column, 0), (column, 0), SEVERITY_COLORS[level]))
    table.setStyle(TableStyle(commands))
    return table


def _tool_runs_table(report: AggregatedReport, styles: StyleSheet1) -> Table:
    rows = [["Tool", "Input", "Status", "Findings"]]
    for run in report.tool_runs:
        status = run.status if run.error is None else f"{run.status}: {run.error}"
        rows.append(
            [
                run.tool.value,
                Paragraph(_plain(run.label), styles["GateSmall"]),
                Paragraph(_plain(status), styles["GateSmall"]),
                str(run.finding_count),
            ]
        )
    table = Table(rows, colWidths=[70, 170, 190, 60], hAlign="LEFT")
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, GRID),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _findings_section(findings: List[Finding], styles: StyleSheet1) -> List:
    if not findings:
        return [Paragraph("No unsuppressed findings.", styles["GateBody"])]

    blocks: List = []
    shown = findings[:MAX_DETAILED_FINDINGS]
    for level in reversed(SEVERITY_LEVELS):
        group = [finding for finding in shown if finding.severity == level]
        if not group:
            continue
        heading = ParagraphStyle(
            f"GateSection-{level.value}",
            parent=styles["GateSection"],
            textColor=SEVERITY_COLORS[level],
        )
        blocks.append(Paragraph(f"{level.value.capitalize()} ({len(group)})", heading))
        for finding in group:
            tools = ", ".join(tool.value for tool in finding.tools)
            blocks.append(
                KeepTogether(
                    [
                        Paragraph(
                            f"<b>{_plain(finding.rule_id)}</b> at "
                            f"{_plain(finding.location.display())} [{_plain(tools)}]",
                            styles["GateBody"],
                        ),
                        Paragraph(_plain(finding.message, MESSAGE_LIMIT), styles["GateSmall"]),
                        Spacer(1, 5),
                    ]
                )
            )
    if len(findings) > MAX_DETAILED_FINDINGS:
        blocks.append(
            Paragraph(
                f"{len(findings) - MAX_DETAILED_FINDINGS} more finding(s) in the JSON report.",
                styles["GateSmall"],
            )
        )
    return blocks


def _plain(value, limit: int = 0) -> str:
    text = " ".join(str(value or "").split()) or "n/a"
    if limit and len(text) > limit:
        text = text[: limit - 3] + "..."
    return escape(text)


def _footer(report: AggregatedReport):
    label = f"scangate run {report.run_id}" if report.run_id else "scangate"

    def draw(canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 7.5)
        canvas.setFillColor(colors.grey)
        canvas.drawString(doc.leftMargin, 22, label)
        canvas.drawRightString(doc.pagesize[0] - doc.rightMargin, 22, str(doc.page))
        canvas.restoreState()

    return draw
