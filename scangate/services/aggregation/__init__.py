from .correlation import correlate
from .gate import GateEvaluation, evaluate_gate
from .normalizer import normalize_finding
from .pipeline import ToolInput, run_aggregation
from .policy_loader import build_policy, load_ignore_file, load_policy

__all__ = [
    "GateEvaluation",
    "ToolInput",
    "build_policy",
    "correlate",
    "evaluate_gate",
    "load_ignore_file",
    "load_policy",
    "normalize_finding",
    "run_aggregation",
]
