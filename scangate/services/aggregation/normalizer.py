"""Map every tool's findings onto one severity scale and one locator form."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Dict, Optional

from ...errors import UnknownSeverityError
from ...types import (
    FileLocation,
    Finding,
    Location,
    PackageLocation,
    RawFinding,
    Severity,
    SourceTool,
)

logger = logging.getLogger(__name__)

C = Severity.critical
H = Severity.high
M = Severity.medium
L = Severity.low
I = Severity.info  # noqa: E741

# Keys are lower-cased native values; "" is the tool's answer for a missing
# severity field.
SEVERITY_TABLES: Dict[SourceTool, Dict[str, Severity]] = {
    SourceTool.tflint: {"error": H, "warning": M, "notice": L, "": M},
    SourceTool.ansible_lint: {
        "blocker": C,
        "critical": H,
        "major": M,
        "minor": L,
        "info": I,
        "": M,
    },
    SourceTool.trivy: {
        "critical": C,
        "high": H,
        "medium": M,
        "low": L,
        "unknown": M,
        "": M,
    },
    SourceTool.checkov: {
        "critical": C,
        "high": H,
        "medium": M,
        "low": L,
        "info": I,
        "": M,
    },
    SourceTool.semgrep: {
        "error": H,
        "warning": M,
        "info": I,
        "inventory": I,
        "experiment": I,
        "critical": C,
        "high": H,
        "medium": M,
        "low": L,
        "": M,
    },
    SourceTool.gitleaks: {
        "critical": C,
        "high": H,
        "medium": M,
        "low": L,
        "info": I,
        "": H,
    },
    SourceTool.grype: {
        "critical": C,
        "high": H,
        "medium": M,
        "low": L,
        "negligible": I,
        "unknown": M,
        "": M,
    },
}

ADVISORY_PREFIXES = ("CVE-", "GHSA-", "AVD-", "CWE-", "CKV")
VERSION_PREFIX = re.compile(r"^(?:==|>=|<=|~=|=|\^|~)\s*")
V_PREFIX = re.compile(r"^[vV](?=\d)")


def normalize_severity(
    tool: SourceTool, value: Optional[str], *, strict: bool = False
) -> Severity:
    cleaned = (value or "").strip().lower()
    table = SEVERITY_TABLES[tool]
    if cleaned in table:
        return table[cleaned]
    if strict:
        raise UnknownSeverityError(tool.value, value or "")
    logger.warning(
        "Unknown %s severity %r; treating as %s", tool.value, value, Severity.medium.value
    )
    return Severity.medium


def normalize_rule_id(rule_id: str) -> str:
    value = rule_id.strip()
    if value.upper().startswith(ADVISORY_PREFIXES):
        return value.upper()
    return value


def normalize_path(path: str, source_root: Optional[str] = None) -> str:
    value = path.strip().replace("\\", "/")
    if source_root:
        root = source_root.strip().replace("\\", "/").rstrip("/")
        if root and value.startswith(root + "/"):
            value = value[len(root) + 1 :]
    value = posixpath.normpath(value) if value else value
    # Checkov reports repo-relative paths with a leading slash.
    value = value.lstrip("/")
    return value or "."


def normalize_version(version: str) -> str:
    value = VERSION_PREFIX.sub("", version.strip())
    return V_PREFIX.sub("", value)


def normalize_location(location: Location, source_root: Optional[str] = None) -> Location:
    if isinstance(location, FileLocation):
        line_start = location.line_start
        line_end = location.line_end
        if line_start is not None and line_end is not None and line_end < line_start:
            line_end = line_start
        return FileLocation(
            path=normalize_path(location.path, source_root),
            line_start=line_start,
            line_end=line_end,
        )
    return PackageLocation(
        name=location.name.strip().lower(),
        version=normalize_version(location.version),
        image_digest=(location.image_digest or "").strip().lower() or None,
        ecosystem=(location.ecosystem or "").strip().lower() or None,
        purl=location.purl,
    )


def normalize_finding(
    raw: RawFinding,
    *,
    strict: bool = False,
    source_root: Optional[str] = None,
) -> Finding:
    severity = normalize_severity(raw.source_tool, raw.native_severity, strict=strict)
    native = raw.native_severity.strip()
    return Finding(
        source_tool=raw.source_tool,
        rule_id=normalize_rule_id(raw.rule_id),
        severity=severity,
        location=normalize_location(raw.location, source_root),
        message=raw.message.strip(),
        cwe_ids=tuple(sorted(set(raw.cwe_ids))),
        aliases=tuple(sorted({normalize_rule_id(a) for a in raw.aliases if a})),
        source_tools=(raw.source_tool,),
        native_severities=(f"{raw.source_tool.value}:{native}",) if native else (),
    )
