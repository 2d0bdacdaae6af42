from __future__ import annotations

from typing import Iterator

from ...types import FileLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_int, as_str


class AnsibleLintParser(ReportParser):
    """Reads ansible-lint ``codeclimate`` (also emitted by ``--format json``)."""

    tool = SourceTool.ansible_lint

    def _parse_text(self, text: str) -> Iterator[RawFinding]:
        payload = self._load_json(text)
        if not isinstance(payload, list):
            raise self._fail("expected a list of codeclimate issues")
        for issue in payload:
            if not isinstance(issue, dict):
                raise self._fail("issue entry is not an object")
            if issue.get("type", "issue") != "issue":
                continue
            location = as_dict(issue.get("location"))
            path = as_str(location.get("path"))
            rule_id = as_str(issue.get("check_name"))
            if not path or not rule_id:
                raise self._fail("issue without check_name or location.path")
            yield RawFinding(
                source_tool=self.tool,
                rule_id=rule_id,
                native_severity=as_str(issue.get("severity")),
                location=FileLocation(
                    path=path,
                    line_start=_begin_line(location),
                ),
                message=as_str(issue.get("description")) or rule_id,
            )


def _begin_line(location: dict) -> int | None:
    lines = as_dict(location.get("lines"))
    if lines:
        return as_int(lines.get("begin"))
    begin = as_dict(as_dict(location.get("positions")).get("begin"))
    return as_int(begin.get("line"))
