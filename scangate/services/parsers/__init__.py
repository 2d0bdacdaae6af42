from __future__ import annotations

import threading
from typing import Dict, List, Optional, Union

from ...errors import ParseError
from ...types import RawFinding, SourceTool
from .ansible_lint import AnsibleLintParser
from .base import ReportData, ReportParser
from .checkov import CheckovParser
from .gitleaks import GitleaksParser
from .grype import GrypeParser
from .semgrep import SemgrepParser
from .tflint import TflintParser
from .trivy import TrivyParser

PARSERS: Dict[SourceTool, ReportParser] = {
    parser.tool: parser
    for parser in (
        TflintParser(),
        AnsibleLintParser(),
        TrivyParser(),
        CheckovParser(),
        SemgrepParser(),
        GitleaksParser(),
        GrypeParser(),
    )
}


def parse_tool_output(
    tool: Union[SourceTool, str],
    data: ReportData,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> List[RawFinding]:
    try:
        source_tool = SourceTool(tool)
    except ValueError as exc:
        raise ParseError(str(tool), "unsupported tool") from exc
    return PARSERS[source_tool].parse(data, cancel_event=cancel_event)


__all__ = [
    "PARSERS",
    "ReportData",
    "ReportParser",
    "parse_tool_output",
]
