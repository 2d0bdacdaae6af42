from __future__ import annotations

from typing import Iterator

from ...types import FileLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_int, as_list, as_str


class CheckovParser(ReportParser):
    """Reads ``checkov -o json``.

    Checkov prints one object per framework, or a list of them when several
    frameworks ran. A run with no findings prints only a summary object.
    """

    tool = SourceTool.checkov

    def _parse_text(self, text: str) -> Iterator[RawFinding]:
        payload = self._load_json(text)
        reports = payload if isinstance(payload, list) else [payload]
        for report in reports:
            if not isinstance(report, dict):
                raise self._fail("framework report is not an object")
            if "results" not in report:
                if _is_summary_only(report):
                    continue
                raise self._fail("framework report without 'results'")
            results = as_dict(report.get("results"))
            for check in as_list(results.get("failed_checks")):
                yield self._failed_check(as_dict(check))

    def _failed_check(self, check: dict) -> RawFinding:
        check_id = as_str(check.get("check_id"))
        path = as_str(check.get("file_path")) or as_str(check.get("repo_file_path"))
        if not check_id or not path:
            raise self._fail("failed check without check_id or file_path")
        line_range = as_list(check.get("file_line_range"))
        line_start = as_int(line_range[0]) if line_range else None
        line_end = as_int(line_range[1]) if len(line_range) > 1 else None
        message = as_str(check.get("check_name")) or check_id
        resource = as_str(check.get("resource"))
        if resource:
            message = f"{message} ({resource})"
        return RawFinding(
            source_tool=self.tool,
            rule_id=check_id,
            native_severity=as_str(check.get("severity")),
            location=FileLocation(path=path, line_start=line_start, line_end=line_end),
            message=message,
            aliases=(as_str(check.get("bc_check_id")),) if check.get("bc_check_id") else (),
        )


def _is_summary_only(report: dict) -> bool:
    return "passed" in report and "failed" in report
