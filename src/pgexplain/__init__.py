"""pgexplain - Typed PostgreSQL EXPLAIN (FORMAT JSON) plans."""

__version__ = "1.0.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from pgexplain.exceptions import (
    InvalidValueError,
    MalformedJsonError,
    ParseErrorKind,
    PgExplainError,
    PlanFileError,
    PlanParseError,
    UnexpectedShapeError,
)

from pgexplain.explain import (
    DBAPIExecutor,
    ExplainOptions,
    ExplainQuery,
    SqlExecutor,
    wrap_explain,
)
from pgexplain.parser import (
    DEFAULT_CONFIG,
    STRICT_CONFIG,
    ExplainResult,
    JoinType,
    NodeType,
    ParserConfig,
    PlanNode,
    TriggerTiming,
    WorkerStats,
    parse_explain,
    parse_explain_file,
    parse_explain_result,
)

__all__ = [
    # Exception hierarchy
    "PgExplainError",
    "PlanParseError",
    "ParseErrorKind",
    "MalformedJsonError",
    "UnexpectedShapeError",
    "InvalidValueError",
    "PlanFileError",
    # Parsing
    "parse_explain",
    "parse_explain_file",
    "parse_explain_result",
    # Models
    "ExplainResult",
    "PlanNode",
    "WorkerStats",
    "TriggerTiming",
    "NodeType",
    "JoinType",
    # Configuration
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
    # EXPLAIN wrapping
    "wrap_explain",
    "ExplainQuery",
    "ExplainOptions",
    "SqlExecutor",
    "DBAPIExecutor",
    # Metadata
    "__version__",
    "__license__",
]
