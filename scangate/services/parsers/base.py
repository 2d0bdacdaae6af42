from __future__ import annotations

import json
import threading
from typing import Any, Iterable, List, Optional, Union

from ...errors import ParseCancelledError, ParseError
from ...types import RawFinding, SourceTool

ReportData = Union[bytes, str]


class ReportParser:
    """Turns one tool's native report into raw findings.

    Subclasses implement ``_parse_text``; decoding, empty-input checks and
    cooperative cancellation live here.
    """

    tool: SourceTool

    def parse(
        self,
        data: ReportData,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[RawFinding]:
        text = self._decode(data)
        if not text.strip():
            raise ParseError(self.tool.value, "empty report")
        findings: List[RawFinding] = []
        for finding in self._parse_text(text):
            self._check_cancelled(cancel_event)
            findings.append(finding)
        return findings

    def _parse_text(self, text: str) -> Iterable[RawFinding]:
        raise NotImplementedError

    def _decode(self, data: ReportData) -> str:
        if isinstance(data, str):
            return data
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(self.tool.value, "report is not valid UTF-8") from exc

    def _load_json(self, text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(self.tool.value, f"invalid JSON: {exc.msg}") from exc

    def _fail(self, message: str) -> ParseError:
        return ParseError(self.tool.value, message)

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ParseCancelledError(self.tool.value, "parse cancelled")


def as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def cwe_list(value: Any) -> tuple:
    values = value if isinstance(value, list) else [value]
    cwe_ids = []
    for item in values:
        digits = "".join(ch for ch in as_str(item).split(":")[0] if ch.isdigit())
        if digits:
            cwe_ids.append(f"CWE-{int(digits)}")
    return tuple(sorted(set(cwe_ids)))
