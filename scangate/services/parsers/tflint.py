from __future__ import annotations

import re
from typing import Iterable, Iterator

from ...types import FileLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_int, as_list, as_str

# main.tf:3:1: Warning - `foo` variable has no type (terraform_typed_variables)
COMPACT_LINE = re.compile(
    r"^(?P<path>.+?):(?P<line>\d+)(?::(?P<col>\d+))?:\s*"
    r"(?P<severity>[A-Za-z]+)\s+-\s+(?P<message>.*?)"
    r"(?:\s+\((?P<rule>[\w.-]+)\))?\s*$"
)


class TflintParser(ReportParser):
    """Reads ``tflint --format json`` or ``--format compact`` output."""

    tool = SourceTool.tflint

    def _parse_text(self, text: str) -> Iterable[RawFinding]:
        if text.lstrip().startswith("{"):
            return self._parse_json(text)
        return self._parse_compact(text)

    def _parse_json(self, text: str) -> Iterator[RawFinding]:
        payload = self._load_json(text)
        if not isinstance(payload, dict) or "issues" not in payload:
            raise self._fail("expected an object with an 'issues' list")
        for error in as_list(payload.get("errors")):
            # Config errors carry no rule; surface them as findings on the file.
            error = as_dict(error)
            range_ = as_dict(error.get("range"))
            yield RawFinding(
                source_tool=self.tool,
                rule_id="tflint-error",
                native_severity=as_str(error.get("severity")) or "error",
                location=FileLocation(
                    path=as_str(range_.get("filename")) or "<config>",
                    line_start=as_int(as_dict(range_.get("start")).get("line")),
                ),
                message=as_str(error.get("message")),
            )
        for issue in as_list(payload.get("issues")):
            issue = as_dict(issue)
            rule = as_dict(issue.get("rule"))
            range_ = as_dict(issue.get("range"))
            path = as_str(range_.get("filename"))
            if not rule.get("name") or not path:
                raise self._fail("issue without rule name or filename")
            yield RawFinding(
                source_tool=self.tool,
                rule_id=as_str(rule.get("name")),
                native_severity=as_str(rule.get("severity")),
                location=FileLocation(
                    path=path,
                    line_start=as_int(as_dict(range_.get("start")).get("line")),
                    line_end=as_int(as_dict(range_.get("end")).get("line")),
                ),
                message=as_str(issue.get("message")),
            )

    def _parse_compact(self, text: str) -> Iterator[RawFinding]:
        matched = 0
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            match = COMPACT_LINE.match(line)
            if match is None:
                # Summary lines such as "2 issue(s) found:" are skipped.
                continue
            matched += 1
            yield RawFinding(
                source_tool=self.tool,
                rule_id=match.group("rule") or "tflint",
                native_severity=match.group("severity"),
                location=FileLocation(
                    path=match.group("path"),
                    line_start=as_int(match.group("line")),
                ),
                message=match.group("message").strip(),
            )
        if not matched and not _is_clean_compact(text):
            raise self._fail("no recognizable compact report lines")


def _is_clean_compact(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered.startswith("0 issue") or lowered == "no issues found"
