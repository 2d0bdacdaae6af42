from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


class SourceTool(str, Enum):
    tflint = "tflint"
    ansible_lint = "ansible-lint"
    trivy = "trivy"
    checkov = "checkov"
    semgrep = "semgrep"
    gitleaks = "gitleaks"
    grype = "grype"

    @property
    def order(self) -> int:
        return TOOL_ORDER.index(self)


TOOL_ORDER: List[SourceTool] = list(SourceTool)


class Severity(str, Enum):
    info = "info"
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_LEVELS.index(self)


# Severity hierarchy (lowest to highest)
SEVERITY_LEVELS: List[Severity] = list(Severity)


class GateDecision(str, Enum):
    passed = "pass"
    failed = "fail"


@dataclass(frozen=True)
class FileLocation:
    path: str
    line_start: Optional[int] = None
    line_end: Optional[int] = None

    def key(self) -> str:
        if self.line_start is None:
            return f"file:{self.path}"
        return f"file:{self.path}:{self.line_start}"

    def display(self) -> str:
        if self.line_start is None:
            return self.path
        if self.line_end and self.line_end != self.line_start:
            return f"{self.path}:{self.line_start}-{self.line_end}"
        return f"{self.path}:{self.line_start}"

    def detail(self) -> int:
        return (self.line_start is not None) + (self.line_end is not None)


@dataclass(frozen=True)
class PackageLocation:
    name: str
    version: str = ""
    image_digest: Optional[str] = None
    ecosystem: Optional[str] = None
    purl: Optional[str] = None

    def key(self) -> str:
        # Digest is left out: SBOM based scans carry no layer information.
        return f"pkg:{self.name}@{self.version}"

    def display(self) -> str:
        base = f"{self.name}@{self.version}" if self.version else self.name
        if self.image_digest:
            return f"{base} ({self.image_digest})"
        return base

    def detail(self) -> int:
        return sum(
            value is not None for value in (self.image_digest, self.ecosystem, self.purl)
        )


Location = Union[FileLocation, PackageLocation]


def compute_fingerprint(rule_id: str, location: Location) -> str:
    payload = f"{rule_id}\x00{location.key()}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RawFinding:
    """A finding as the tool reported it, before normalization."""

    source_tool: SourceTool
    rule_id: str
    native_severity: str
    location: Location
    message: str
    cwe_ids: Tuple[str, ...] = ()
    aliases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Finding:
    source_tool: SourceTool
    rule_id: str
    severity: Severity
    location: Location
    message: str
    cwe_ids: Tuple[str, ...] = ()
    aliases: Tuple[str, ...] = ()
    source_tools: Tuple[SourceTool, ...] = ()
    notes: Tuple[str, ...] = ()
    native_severities: Tuple[str, ...] = ()
    suppressed: bool = False
    suppressed_by: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(self.rule_id, self.location)

    @property
    def tools(self) -> Tuple[SourceTool, ...]:
        return self.source_tools or (self.source_tool,)


@dataclass(frozen=True)
class PolicyViolation:
    """A single finding that tripped the gate."""

    fingerprint: str
    rule_id: str
    severity: Severity
    location: str
    tools: Tuple[SourceTool, ...]


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    threshold: Severity
    rule: Optional[str] = None
    violations: Tuple[PolicyViolation, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.decision == GateDecision.passed

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


@dataclass(frozen=True)
class ToolRun:
    tool: SourceTool
    label: str
    status: str
    finding_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class AggregatedReport:
    run_id: Optional[str]
    generated_at: datetime
    findings: Tuple[Finding, ...]
    summary_counts: Dict[Severity, int]
    gate_result: GateResult
    partial: bool = False
    warnings: Tuple[str, ...] = ()
    tool_runs: Tuple[ToolRun, ...] = field(default_factory=tuple)

    @property
    def failed_tools(self) -> List[ToolRun]:
        return [run for run in self.tool_runs if run.status != "ok"]
