from __future__ import annotations

from typing import Iterator

from ...types import FileLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_int, as_list, as_str, cwe_list


class SemgrepParser(ReportParser):
    tool = SourceTool.semgrep

    def _parse_text(self, text: str) -> Iterator[RawFinding]:
        payload = self._load_json(text)
        if not isinstance(payload, dict) or "results" not in payload:
            raise self._fail("expected an object with a 'results' list")
        for result in as_list(payload.get("results")):
            result = as_dict(result)
            extra = as_dict(result.get("extra"))
            start = as_dict(result.get("start"))
            end = as_dict(result.get("end"))

            rule_id = as_str(result.get("check_id"))
            path = as_str(result.get("path"))
            if not rule_id or not path:
                raise self._fail("result without check_id or path")
            line_start = as_int(start.get("line"))
            yield RawFinding(
                source_tool=self.tool,
                rule_id=rule_id,
                native_severity=as_str(extra.get("severity")),
                location=FileLocation(
                    path=path,
                    line_start=line_start,
                    line_end=as_int(end.get("line")) or line_start,
                ),
                message=as_str(extra.get("message")) or rule_id,
                cwe_ids=cwe_list(as_dict(extra.get("metadata")).get("cwe") or []),
            )
