"""
Package-level exception hierarchy for pgexplain.

All exceptions inherit from PgExplainError, enabling:
- Catching all pgexplain errors with a single except clause
- Rich context fields for debugging (kind, path, detail)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    PgExplainError
    ├── PlanParseError             – EXPLAIN JSON could not be turned into a plan
    │   ├── MalformedJsonError     – Input is not valid JSON text
    │   ├── UnexpectedShapeError   – Wrong container type, missing key, wrong JSON type
    │   └── InvalidValueError      – Type-correct but impossible value (e.g. negative rows)
    └── PlanFileError              – An EXPLAIN file could not be read

Errors raised by a SQL executor are never wrapped; they propagate as-is.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ParseErrorKind(str, Enum):
    """The three ways a parse can fail."""

    MALFORMED_JSON = "malformed_json"
    UNEXPECTED_SHAPE = "unexpected_shape"
    INVALID_VALUE = "invalid_value"


class PgExplainError(Exception):
    """
    Base exception for all pgexplain errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Parse Errors ─────────────────────────────────────────────────────────


class PlanParseError(PgExplainError):
    """
    Failed to turn EXPLAIN JSON into a plan tree.

    Parsing is all-or-nothing: when this is raised no partial tree exists.
    Subclasses fix ``kind``; catch this class to handle all three.

    Attributes:
        kind: Which of the three failure kinds this is.
        detail: Technical details for debugging (optional).
        path: Location of the offending value, e.g.
            ``[0] → Plan → Plans[1] → Plan Rows`` (optional).
        source: Parser stage that failed (e.g. "json_decode", "validation").
    """

    kind: ParseErrorKind = ParseErrorKind.UNEXPECTED_SHAPE

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        path: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.path = path
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        text = self.message
        if self.path:
            text = f"{text} (at {self.path})"
        if self.detail:
            text = f"{text}\n\nDetails: {self.detail}"
        return text

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind.value
        result["detail"] = self.detail
        result["path"] = self.path
        result["source"] = self.source
        return result


class MalformedJsonError(PlanParseError):
    """Input is not parseable JSON text."""

    kind = ParseErrorKind.MALFORMED_JSON


class UnexpectedShapeError(PlanParseError):
    """
    Structurally wrong JSON.

    Raised when the top level is not an array, an element lacks ``Plan``,
    a required key is missing, or a value has the wrong JSON type.
    """

    kind = ParseErrorKind.UNEXPECTED_SHAPE


class InvalidValueError(PlanParseError):
    """A value is present and type-correct but impossible (e.g. negative count)."""

    kind = ParseErrorKind.INVALID_VALUE


# ── File Errors ──────────────────────────────────────────────────────────


class PlanFileError(PgExplainError):
    """
    An EXPLAIN file could not be read.

    Attributes:
        file_path: The path that was being read.
    """

    def __init__(self, message: str, file_path: str | None = None) -> None:
        self.file_path = file_path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["file_path"] = self.file_path
        return result
