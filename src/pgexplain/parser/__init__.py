"""EXPLAIN JSON parsing module."""

from pgexplain.parser.config import DEFAULT_CONFIG, STRICT_CONFIG, ParserConfig
from pgexplain.parser.models import (
    ExplainResult,
    JoinType,
    NodeType,
    PlanNode,
    TriggerTiming,
    WorkerStats,
)
from pgexplain.parser.parser import (
    parse_explain,
    parse_explain_file,
    parse_explain_result,
)

__all__ = [
    "ExplainResult",
    "PlanNode",
    "WorkerStats",
    "TriggerTiming",
    "NodeType",
    "JoinType",
    "parse_explain",
    "parse_explain_file",
    "parse_explain_result",
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
]
