from __future__ import annotations

import re
from typing import Dict, Iterator, List

from ...types import FileLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_int, as_str

FIELD_LINE = re.compile(r"^(?P<key>[A-Za-z]+):\s*(?P<value>.*)$")


class GitleaksParser(ReportParser):
    """Reads gitleaks JSON reports and the verbose text report.

    Secret values and matched lines are never copied into findings.
    """

    tool = SourceTool.gitleaks

    def _parse_text(self, text: str) -> Iterator[RawFinding]:
        if text.lstrip().startswith("["):
            payload = self._load_json(text)
            for leak in payload:
                yield self._leak(as_dict(leak))
            return

        blocks = _text_blocks(text)
        if not blocks:
            if "no leaks found" in text.lower():
                return
            raise self._fail("no recognizable leak entries")
        for block in blocks:
            yield self._leak(
                {
                    "RuleID": block.get("RuleID"),
                    "Description": block.get("Description"),
                    "File": block.get("File"),
                    "StartLine": block.get("Line") or block.get("StartLine"),
                    "Commit": block.get("Commit"),
                }
            )

    def _leak(self, leak: dict) -> RawFinding:
        rule_id = as_str(leak.get("RuleID"))
        path = as_str(leak.get("File"))
        if not rule_id or not path:
            raise self._fail("leak without RuleID or File")
        description = as_str(leak.get("Description")) or f"{rule_id} secret detected"
        commit = as_str(leak.get("Commit"))
        if commit:
            description = f"{description} (commit {commit[:12]})"
        return RawFinding(
            source_tool=self.tool,
            rule_id=rule_id,
            native_severity=as_str(leak.get("Severity")),
            location=FileLocation(
                path=path,
                line_start=as_int(leak.get("StartLine")),
                line_end=as_int(leak.get("EndLine")),
            ),
            message=description,
        )


def _text_blocks(text: str) -> List[Dict[str, str]]:
    blocks: List[Dict[str, str]] = []
    current: Dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            if current.get("RuleID"):
                blocks.append(current)
            current = {}
            continue
        match = FIELD_LINE.match(line.strip())
        if match:
            current[match.group("key")] = match.group("value").strip()
    if current.get("RuleID"):
        blocks.append(current)
    return blocks
