from __future__ import annotations

from typing import Optional


class ScangateError(RuntimeError):
    pass


class ParseError(ScangateError):
    """A tool report could not be turned into findings.

    Recovered per input: the run continues without that tool's findings and
    the report is marked partial.
    """

    def __init__(self, tool: str, message: str, *, label: Optional[str] = None) -> None:
        self.tool = tool
        self.label = label
        self.detail = message
        super().__init__(f"{tool}: {message}")


class ParseTimeoutError(ParseError):
    pass


class ParseCancelledError(ParseError):
    pass


class UnknownSeverityError(ScangateError):
    def __init__(self, tool: str, value: str) -> None:
        self.tool = tool
        self.value = value
        super().__init__(f"Unmapped {tool} severity: {value!r}")


class PolicyConfigError(ScangateError):
    pass


class ReportWriteError(ScangateError):
    pass
