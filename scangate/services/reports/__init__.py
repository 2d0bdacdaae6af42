from .pdf_report import build_report_pdf
from .report_emitter import (
    build_document,
    load_baseline_fingerprints,
    render_json,
    render_summary,
    write_report,
)

__all__ = [
    "build_document",
    "build_report_pdf",
    "load_baseline_fingerprints",
    "render_json",
    "render_summary",
    "write_report",
]
