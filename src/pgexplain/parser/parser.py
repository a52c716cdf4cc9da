"""
Parser for PostgreSQL EXPLAIN (FORMAT JSON) output.

This module handles:
- Decoding EXPLAIN JSON from text, bytes, or already-decoded values
- Validating the outer array / 'Plan' structure
- Converting each array element to typed Pydantic models
- Translating validation failures into the three parse error kinds
- Enforcing resource limits to prevent OOM crashes

Error handling philosophy: Fail fast with clear messages. Parsing is
all-or-nothing; if any node is wrong the caller gets an error pointing at
it, never a truncated tree.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from pydantic import ValidationError

from pgexplain.exceptions import (
    InvalidValueError,
    MalformedJsonError,
    PlanFileError,
    PlanParseError,
    UnexpectedShapeError,
)
from pgexplain.parser.config import ParserConfig, get_config
from pgexplain.parser.models import ExplainResult

logger = logging.getLogger(__name__)

# Pydantic error types meaning "right JSON type, impossible value".
# Everything else (missing, *_type, model_type, ...) is a shape problem.
_INVALID_VALUE_ERROR_TYPES = frozenset({
    "greater_than",
    "greater_than_equal",
    "less_than",
    "less_than_equal",
    "string_too_short",
    "too_short",
    "finite_number",
})


def parse_explain(
    source: str | bytes | bytearray | Sequence[Any],
    config: ParserConfig | None = None,
) -> list[ExplainResult]:
    """
    Parse PostgreSQL EXPLAIN (FORMAT JSON) output into typed models.

    Accepts:
    - JSON text (str, bytes): decoded with the standard json module
    - A list: the already-decoded EXPLAIN array (e.g. from psycopg,
      which decodes json columns itself)

    Each element of the array becomes one ExplainResult, in order.

    Args:
        source: EXPLAIN JSON as text or as the decoded array
        config: Parser configuration with resource limits. If None,
            uses the environment-driven config from get_config().

    Returns:
        One ExplainResult per array element

    Raises:
        MalformedJsonError: Text is not valid JSON
        UnexpectedShapeError: Wrong container, missing key, wrong JSON type,
            or a resource limit exceeded
        InvalidValueError: A value is impossible (e.g. negative Plan Rows)

    Example:
        >>> results = parse_explain('[{"Plan": {...}}]')
        >>> for node in results[0].all_nodes:
        ...     print(node.node_type)
    """
    config = config or get_config()

    data = _load_source(source)
    elements = _require_array(data)

    results: list[ExplainResult] = []
    for index, element in enumerate(elements):
        _require_plan_object(element, index)
        # Check depth before full validation (prevents recursion errors)
        _check_tree_depth(element["Plan"], index, config)
        results.append(_validate_element(element, index))

    _check_node_count(results, config)

    logger.debug(
        "Parsed %d EXPLAIN result(s) with %d plan node(s)",
        len(results),
        sum(r.plan.node_count for r in results),
    )
    return results


def parse_explain_result(
    source: str | bytes | bytearray | Sequence[Any],
    config: ParserConfig | None = None,
) -> ExplainResult:
    """
    Parse EXPLAIN output that must describe exactly one statement.

    This is the usual case: EXPLAIN of a single statement returns a
    one-element array.

    Raises:
        UnexpectedShapeError: If the array does not hold exactly one element,
            plus everything parse_explain() raises.
    """
    results = parse_explain(source, config)
    if len(results) != 1:
        raise UnexpectedShapeError(
            f"Expected single EXPLAIN output, got {len(results)} elements",
            detail="Use parse_explain() to read multi-statement output",
            source="structure",
        )
    return results[0]


def parse_explain_file(
    path: str | Path,
    config: ParserConfig | None = None,
) -> list[ExplainResult]:
    """
    Parse EXPLAIN JSON from a file.

    Provides better error messages for file-specific issues.

    Raises:
        PlanFileError: If the file is missing, unreadable, empty or too large
        PlanParseError: If the content cannot be parsed
    """
    config = config or get_config()
    filepath = Path(path)

    if not filepath.exists():
        raise PlanFileError(f"File not found: {filepath}", file_path=str(filepath))

    if not filepath.is_file():
        raise PlanFileError(f"Path is not a file: {filepath}", file_path=str(filepath))

    size_mb = filepath.stat().st_size / (1024 * 1024)
    if size_mb > config.max_file_size_mb:
        raise PlanFileError(
            f"File too large: {size_mb:.1f}MB (max {config.max_file_size_mb}MB)",
            file_path=str(filepath),
        )

    try:
        content = filepath.read_bytes()
    except OSError as e:
        raise PlanFileError(
            f"Cannot read file: {filepath}: {e}",
            file_path=str(filepath),
        ) from e

    if not content.strip():
        raise PlanFileError(f"File is empty: {filepath}", file_path=str(filepath))

    return parse_explain(content, config)


def _json_type_name(value: Any) -> str:
    """Name a decoded value by its JSON type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _load_source(source: Any) -> Any:
    """Decode text input; pass decoded values through unchanged."""
    if isinstance(source, (str, bytes, bytearray)):
        return _parse_json_text(source)
    return source


def _parse_json_text(content: str | bytes | bytearray) -> Any:
    """Parse JSON text, rejecting the NaN/Infinity literals json allows."""
    try:
        return json.loads(content, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise MalformedJsonError(
            "Invalid JSON format",
            detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
            source="json_decode",
        ) from e
    except UnicodeDecodeError as e:
        raise MalformedJsonError(
            "Invalid JSON encoding",
            detail=str(e),
            source="json_decode",
        ) from e
    except RecursionError as e:
        raise UnexpectedShapeError(
            "JSON document too deeply nested to decode",
            source="resource_limit",
        ) from e


def _reject_constant(name: str) -> Any:
    raise MalformedJsonError(
        "Invalid JSON format",
        detail=f"{name} is not a valid JSON value",
        source="json_decode",
    )


def _require_array(data: Any) -> list[Any]:
    """
    Check for the array PostgreSQL always wraps EXPLAIN output in.

    EXPLAIN (FORMAT JSON) returns: [{"Plan": {...}}]
    """
    if not isinstance(data, (list, tuple)):
        raise UnexpectedShapeError(
            f"Expected a JSON array at the top level, got {_json_type_name(data)}",
            detail="PostgreSQL EXPLAIN (FORMAT JSON) output is always an array",
            source="structure",
        )

    if len(data) == 0:
        raise UnexpectedShapeError(
            "Empty array - no EXPLAIN output found",
            detail="PostgreSQL EXPLAIN (FORMAT JSON) returns at least one element",
            source="structure",
        )

    return list(data)


def _require_plan_object(element: Any, index: int) -> None:
    if not isinstance(element, dict):
        raise UnexpectedShapeError(
            f"Expected object inside array, got {_json_type_name(element)}",
            path=f"[{index}]",
            source="structure",
        )

    if "Plan" not in element:
        raise UnexpectedShapeError(
            "Missing 'Plan' field - this doesn't look like EXPLAIN output",
            detail="EXPLAIN (FORMAT JSON) output must contain a 'Plan' object",
            path=f"[{index}]",
            source="structure",
        )


def _validate_element(element: dict[str, Any], index: int) -> ExplainResult:
    """
    Validate one array element against our Pydantic models.

    Converts Pydantic validation errors into typed PlanParseErrors.
    """
    try:
        # Only PostgreSQL's own key spelling fills typed fields
        return ExplainResult.model_validate(element, by_alias=True, by_name=False)
    except ValidationError as e:
        error = _translate_validation_error(e, element, index)
        logger.debug("EXPLAIN validation failed: %s", error)
        raise error from e


def _translate_validation_error(
    exc: ValidationError,
    element: dict[str, Any],
    index: int,
) -> PlanParseError:
    errors = exc.errors()
    shape_errors = [e for e in errors if e["type"] not in _INVALID_VALUE_ERROR_TYPES]

    if shape_errors:
        error_cls: type[PlanParseError] = UnexpectedShapeError
        first = shape_errors[0]
    else:
        error_cls = InvalidValueError
        first = errors[0]

    loc = tuple(first["loc"])
    field = str(loc[-1]) if loc else "Plan"
    node_type = _node_type_at(element, loc)

    if error_cls is InvalidValueError:
        message = f"Invalid value for '{field}'"
    elif first["type"] == "missing":
        message = f"Missing required field '{field}'"
    else:
        message = f"Unexpected type for '{field}'"
    if node_type is not None:
        message += f" in {node_type} node"

    detail = "\n".join(
        f"  {_format_loc(index, tuple(e['loc']))}: {e['msg']}" for e in errors
    )

    return error_cls(
        message,
        detail=detail,
        path=_format_loc(index, loc),
        source="validation",
    )


def _format_loc(index: int, loc: tuple[Any, ...]) -> str:
    """Format a pydantic loc as '[0] → Plan → Plans[1] → Plan Rows'."""
    segments = [f"[{index}]"]
    for part in loc:
        if isinstance(part, int):
            segments[-1] += f"[{part}]"
        else:
            segments.append(str(part))
    return " → ".join(segments)


def _node_type_at(element: dict[str, Any], loc: tuple[Any, ...]) -> str | None:
    """Find the Node Type of the innermost plan node enclosing ``loc``."""
    node_type = None
    current: Any = element
    for part in loc[:-1]:
        try:
            current = current[part]
        except (KeyError, IndexError, TypeError):
            break
        if isinstance(current, dict) and isinstance(current.get("Node Type"), str):
            node_type = current["Node Type"]
    return node_type


def _check_tree_depth(plan: Any, index: int, config: ParserConfig) -> None:
    """
    Check tree depth before full Pydantic validation.

    Malformed children are left for validation to report.
    """
    def measure_depth(node: Any, current_depth: int) -> int:
        if current_depth > config.max_depth:
            return current_depth

        max_child_depth = current_depth
        plans = node.get("Plans") if isinstance(node, dict) else None
        if isinstance(plans, list):
            for child in plans:
                max_child_depth = max(max_child_depth, measure_depth(child, current_depth + 1))

        return max_child_depth

    depth = measure_depth(plan, 1)
    if depth > config.max_depth:
        raise UnexpectedShapeError(
            f"Plan too deeply nested: depth exceeds {config.max_depth}",
            detail="This may indicate a pathological query or corrupted EXPLAIN output",
            path=f"[{index}] → Plan",
            source="resource_limit",
        )


def _check_node_count(results: list[ExplainResult], config: ParserConfig) -> None:
    """Check total node count after parsing."""
    node_count = sum(r.plan.node_count for r in results)
    if node_count > config.max_nodes:
        raise UnexpectedShapeError(
            f"Plan too large: {node_count:,} nodes (max {config.max_nodes:,})",
            detail="Consider analyzing a simpler query or increasing max_nodes in config",
            source="resource_limit",
        )
