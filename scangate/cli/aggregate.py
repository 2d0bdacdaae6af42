#!/usr/bin/env python3
"""Aggregate scanner reports and gate the merge request.

Usage:
    python -m scangate.cli.aggregate --input trivy=trivy.json --input grype=grype.json \
        [--policy gate.json] [--ignore-file .trivyignore] [--output report.json]

Exit codes:
    0 - Gate passed
    1 - Gate failed (offending findings listed in the summary)
    2 - Error (invalid policy, unreadable baseline, report not written, run cancelled)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence

from pydantic import ValidationError

from ..config import AggregatorSettings, get_settings
from ..errors import PolicyConfigError, ReportWriteError, UnknownSeverityError
from ..schemas import GatePolicy
from ..services.aggregation import (
    ToolInput,
    build_policy,
    load_ignore_file,
    load_policy,
    run_aggregation,
)
from ..services.reports import (
    build_report_pdf,
    load_baseline_fingerprints,
    render_json,
    render_summary,
    write_report,
)
from ..types import AggregatedReport, SourceTool

logger = logging.getLogger(__name__)


def tool_input(value: str) -> ToolInput:
    tool_name, sep, path = value.partition("=")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"expected TOOL=PATH, got {value!r}")
    try:
        tool = SourceTool(tool_name.strip().lower())
    except ValueError:
        choices = ", ".join(tool.value for tool in SourceTool)
        raise argparse.ArgumentTypeError(
            f"unknown tool {tool_name!r} (choose from {choices})"
        ) from None
    return ToolInput(tool=tool, path=Path(path), label=path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scangate",
        description="Merge security scanner reports into one report and gate decision",
    )
    parser.add_argument(
        "--input",
        action="append",
        type=tool_input,
        default=[],
        metavar="TOOL=PATH",
        help="Tool report to aggregate; repeat for each report",
    )
    parser.add_argument("--policy", type=Path, help="JSON gate policy")
    parser.add_argument(
        "--ignore-file",
        action="append",
        type=Path,
        default=[],
        help="Trivy style ignore file (repeatable)",
    )
    parser.add_argument(
        "--baseline",
        type=Path,
        help="Previous JSON report; its secrets are not treated as new",
    )
    parser.add_argument("--output", type=Path, help="Write the JSON report here")
    parser.add_argument("--summary", type=Path, help="Write the Markdown summary here")
    parser.add_argument("--pdf", type=Path, help="Write a PDF report here")
    parser.add_argument("--run-id", help="Commit or pipeline id recorded in the report")
    parser.add_argument("--workers", type=int, help="Parser threads (default: CPU count)")
    parser.add_argument("--timeout", type=float, help="Per-report parse timeout in seconds")
    parser.add_argument("--source-root", help="Checkout path to strip from absolute paths")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on severities missing from the mapping tables",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if not args.input:
        print("ERROR: at least one --input TOOL=PATH is required", file=sys.stderr)
        return 2

    try:
        settings = _settings_from_args(args)
        policy = load_policy(args.policy) if args.policy else GatePolicy()
        extra_entries = []
        for ignore_path in args.ignore_file:
            extra_entries.extend(load_ignore_file(ignore_path))
        policy = build_policy(policy, extra_entries)
        baseline = load_baseline_fingerprints(args.baseline) if args.baseline else None

        report = asyncio.run(
            _run(args.input, policy, settings, run_id=args.run_id, baseline=baseline)
        )

        summary = render_summary(report, max_findings=settings.summary_max_findings)
        if args.output:
            write_report(args.output, render_json(report))
        if args.summary:
            write_report(args.summary, summary)
        if args.pdf:
            write_report(args.pdf, build_report_pdf(report))
    except (PolicyConfigError, UnknownSeverityError, ReportWriteError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except ValidationError as exc:
        print(f"ERROR: invalid settings: {exc}", file=sys.stderr)
        return 2
    except asyncio.CancelledError:
        print("ERROR: run cancelled", file=sys.stderr)
        return 2

    _print_result(report)
    return report.gate_result.exit_code


async def _run(
    inputs: List[ToolInput],
    policy: GatePolicy,
    settings: AggregatorSettings,
    *,
    run_id: Optional[str],
    baseline: Optional[FrozenSet[str]],
) -> AggregatedReport:
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(
        run_aggregation(
            inputs, policy, settings=settings, run_id=run_id, baseline=baseline
        )
    )
    # A pipeline abort arrives as SIGTERM; cancel cooperatively.
    handler_installed = False
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGTERM handler unavailable on this platform")
    try:
        return await task
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGTERM)


def _settings_from_args(args: argparse.Namespace) -> AggregatorSettings:
    settings = get_settings()
    overrides = {}
    if args.workers is not None:
        overrides["workers"] = args.workers
    if args.timeout is not None:
        overrides["parse_timeout_seconds"] = args.timeout
    if args.source_root:
        overrides["source_root"] = args.source_root
    if args.strict:
        overrides["strict_severity"] = True
    if not overrides:
        return settings
    # Rebuild through validation so overrides obey the same bounds as env values.
    return AggregatorSettings(**{**settings.model_dump(), **overrides})


def _print_result(report: AggregatedReport) -> None:
    gate = report.gate_result
    status = "PASS" if gate.passed else "FAIL"
    print(
        f"Gate: {status} (threshold={gate.threshold.value}, "
        f"findings={len(report.findings)}, violations={len(gate.violations)}, "
        f"partial={str(report.partial).lower()})"
    )
    if not gate.passed:
        print("\nViolations:")
        for violation in gate.violations[:10]:  # Show first 10
            tools = ",".join(tool.value for tool in violation.tools)
            print(
                f"  [{violation.severity.value.upper()}] {violation.rule_id} "
                f"({violation.location}) [{tools}]"
            )
        if len(gate.violations) > 10:
            print(f"  ... and {len(gate.violations) - 10} more")
    for run in report.failed_tools:
        print(f"  not included: {run.tool.value} ({run.label}): {run.error}")


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
