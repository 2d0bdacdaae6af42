from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import AbstractSet, Callable, Iterable, List, Optional

from ...config import AggregatorSettings, get_settings
from ...errors import ParseError, ParseTimeoutError
from ...schemas import GatePolicy
from ...types import AggregatedReport, RawFinding, SourceTool, ToolRun
from ..parsers import parse_tool_output
from .correlation import correlate
from .gate import evaluate_gate
from .normalizer import normalize_finding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInput:
    """One tool report to aggregate: a file on disk or bytes already read."""

    tool: SourceTool
    path: Optional[Path] = None
    content: Optional[bytes] = None
    label: Optional[str] = None

    @property
    def display_label(self) -> str:
        if self.label:
            return self.label
        if self.path is not None:
            return str(self.path)
        return self.tool.value


@dataclass
class ParseOutcome:
    run: ToolRun
    findings: List[RawFinding] = field(default_factory=list)


async def run_aggregation(
    inputs: Iterable[ToolInput],
    policy: GatePolicy,
    *,
    settings: Optional[AggregatorSettings] = None,
    run_id: Optional[str] = None,
    baseline: Optional[AbstractSet[str]] = None,
    strict: Optional[bool] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> AggregatedReport:
    settings = settings or get_settings()
    strict = settings.strict_severity if strict is None else strict
    items = list(inputs)

    started = time.monotonic()
    slots = await _parse_all(items, settings)
    logger.info(
        "Parsed %d tool reports in %.2fs", len(items), time.monotonic() - started
    )

    raw_findings: List[RawFinding] = []
    tool_runs: List[ToolRun] = []
    warnings: List[str] = []
    partial = False
    for outcome in slots:
        tool_runs.append(outcome.run)
        if outcome.run.status == "ok":
            raw_findings.extend(outcome.findings)
            continue
        partial = True
        message = (
            f"{outcome.run.tool.value} ({outcome.run.label}) did not contribute: "
            f"{outcome.run.error}"
        )
        logger.warning("%s", message)
        warnings.append(message)

    normalized = [
        normalize_finding(raw, strict=strict, source_root=settings.source_root)
        for raw in raw_findings
    ]
    merged = correlate(normalized)
    evaluation = evaluate_gate(
        merged,
        policy,
        today=today or date.today(),
        baseline=baseline,
    )
    for warning in evaluation.result.warnings:
        logger.warning("%s", warning)
    warnings.extend(evaluation.result.warnings)

    report = AggregatedReport(
        run_id=run_id,
        generated_at=now or datetime.now(timezone.utc),
        findings=evaluation.findings,
        summary_counts=evaluation.summary_counts,
        gate_result=evaluation.result,
        partial=partial,
        warnings=tuple(warnings),
        tool_runs=tuple(tool_runs),
    )
    logger.info(
        "Gate %s: %d raw findings merged into %d (partial=%s)",
        report.gate_result.decision.value,
        len(raw_findings),
        len(report.findings),
        partial,
    )
    return report


async def _parse_all(
    items: List[ToolInput], settings: AggregatorSettings
) -> List[ParseOutcome]:
    # One slot and one cancel event per input; slots keep input order so the
    # aggregate phase never depends on completion order.
    slots: List[Optional[ParseOutcome]] = [None] * len(items)
    cancel_events = [threading.Event() for _ in items]
    executor = ThreadPoolExecutor(
        max_workers=settings.workers, thread_name_prefix="scangate-parse"
    )
    free_threads = asyncio.Semaphore(settings.workers)
    try:
        await asyncio.gather(
            *(
                _parse_into_slot(
                    index,
                    item,
                    slots,
                    cancel_events[index],
                    executor,
                    free_threads,
                    settings.parse_timeout_seconds,
                )
                for index, item in enumerate(items)
            )
        )
    except asyncio.CancelledError:
        logger.warning("Aggregation cancelled; stopping %d parsers", len(items))
        for event in cancel_events:
            event.set()
        raise
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return [slot for slot in slots if slot is not None]


async def _parse_into_slot(
    index: int,
    item: ToolInput,
    slots: List[Optional[ParseOutcome]],
    cancel_event: threading.Event,
    executor: ThreadPoolExecutor,
    free_threads: asyncio.Semaphore,
    timeout_seconds: float,
) -> None:
    loop = asyncio.get_running_loop()
    try:
        # The timeout covers the parse itself, not the wait for a free thread.
        await free_threads.acquire()
        job = executor.submit(read_and_parse, item, cancel_event)
        job.add_done_callback(_release_on_done(loop, free_threads))
        findings = await asyncio.wait_for(asyncio.wrap_future(job), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        cancel_event.set()
        error = ParseTimeoutError(
            item.tool.value,
            f"timed out after {timeout_seconds:g}s",
            label=item.display_label,
        )
        slots[index] = _failed(item, "timeout", error)
        return
    except ParseError as exc:
        slots[index] = _failed(item, "error", exc)
        return
    except asyncio.CancelledError:
        cancel_event.set()
        raise

    slots[index] = ParseOutcome(
        run=ToolRun(
            tool=item.tool,
            label=item.display_label,
            status="ok",
            finding_count=len(findings),
        ),
        findings=findings,
    )


def _release_on_done(
    loop: asyncio.AbstractEventLoop, free_threads: asyncio.Semaphore
) -> Callable[[Future], None]:
    # A timed-out parser keeps its thread until it notices the cancel event,
    # so the slot is handed back only when the worker actually returns.
    def _release(_job: Future) -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(free_threads.release)

    return _release


def read_and_parse(item: ToolInput, cancel_event: threading.Event) -> List[RawFinding]:
    if item.content is not None:
        data = item.content
    elif item.path is not None:
        try:
            data = Path(item.path).read_bytes()
        except OSError as exc:
            raise ParseError(item.tool.value, f"cannot read {item.path}: {exc}") from exc
    else:
        raise ParseError(item.tool.value, "input has neither path nor content")

    try:
        return parse_tool_output(item.tool, data, cancel_event=cancel_event)
    except (TypeError, ValueError, KeyError, AttributeError, IndexError) as exc:
        # Schema drift in untrusted reports degrades like any malformed input.
        raise ParseError(item.tool.value, f"unexpected report structure: {exc}") from exc


def _failed(item: ToolInput, status: str, error: ParseError) -> ParseOutcome:
    return ParseOutcome(
        run=ToolRun(
            tool=item.tool,
            label=item.display_label,
            status=status,
            error=error.detail,
        )
    )
