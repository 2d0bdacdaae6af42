from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .types import Severity, SourceTool


class IgnoreKind(str, Enum):
    rule_id = "rule-id"
    regex = "regex"
    path_prefix = "path-prefix"
    fingerprint = "fingerprint"


class IgnoreEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: IgnoreKind
    pattern: str = Field(min_length=1)
    justification: Optional[str] = None
    expires: Optional[date] = None
    source_tool: Optional[SourceTool] = None

    @field_validator("pattern")
    @classmethod
    def _strip_pattern(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("pattern must not be blank")
        return value

    @model_validator(mode="after")
    def _check_regex(self) -> "IgnoreEntry":
        if self.kind == IgnoreKind.regex:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ValueError(f"invalid regex {self.pattern!r}: {exc}") from exc
        return self

    def is_expired(self, today: date) -> bool:
        return self.expires is not None and self.expires < today

    def describe(self) -> str:
        label = f"{self.kind.value}:{self.pattern}"
        if self.source_tool is not None:
            label = f"{label} [{self.source_tool.value}]"
        return label


class GatePolicy(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_severity_allowed: Severity = Severity.high
    fail_on_new_secrets: bool = True
    ignore_entries: List[IgnoreEntry] = Field(default_factory=list)


class FileLocationRead(BaseModel):
    kind: Literal["file"] = "file"
    path: str
    line_start: Optional[int] = None
    line_end: Optional[int] = None


class PackageLocationRead(BaseModel):
    kind: Literal["package"] = "package"
    name: str
    version: str = ""
    image_digest: Optional[str] = None
    ecosystem: Optional[str] = None
    purl: Optional[str] = None


class FindingRead(BaseModel):
    fingerprint: str
    rule_id: str
    severity: Severity
    source_tools: List[SourceTool]
    location: Union[FileLocationRead, PackageLocationRead] = Field(discriminator="kind")
    message: str
    notes: List[str] = Field(default_factory=list)
    cwe_ids: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    native_severities: List[str] = Field(default_factory=list)
    suppressed: bool = False
    suppressed_by: Optional[str] = None


class PolicyViolationRead(BaseModel):
    fingerprint: str
    rule_id: str
    severity: Severity
    location: str
    tools: List[SourceTool]


class GateResultRead(BaseModel):
    decision: Literal["pass", "fail"]
    threshold: Severity
    rule: Optional[str] = None
    exit_code: int
    violations: List[PolicyViolationRead] = Field(default_factory=list)


class ToolRunRead(BaseModel):
    tool: SourceTool
    label: str
    status: str
    finding_count: int
    error: Optional[str] = None


class ReportDocument(BaseModel):
    schema_version: int = 1
    run_id: Optional[str] = None
    generated_at: datetime
    partial: bool
    gate_result: GateResultRead
    summary_counts: Dict[str, int]
    tool_runs: List[ToolRunRead] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    findings: List[FindingRead] = Field(default_factory=list)
