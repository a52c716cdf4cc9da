"""
Wrap SQL statements in EXPLAIN (FORMAT JSON) and parse the reply.

pgexplain never opens connections. Callers hand in an executor: anything
with a ``fetch_explain(sql)`` method returning the single JSON value
PostgreSQL produces. DBAPIExecutor adapts an ordinary DB-API connection.

Usage:
    import psycopg
    from pgexplain import DBAPIExecutor, wrap_explain

    with psycopg.connect(dsn) as conn:
        query = wrap_explain("SELECT * FROM users WHERE id = 1", analyze=True)
        result = query.explain(DBAPIExecutor(conn))
        print(result.render())

Note: with analyze=True PostgreSQL actually runs the statement, side
effects included.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from pgexplain.exceptions import UnexpectedShapeError
from pgexplain.parser.config import ParserConfig
from pgexplain.parser.models import ExplainResult
from pgexplain.parser.parser import parse_explain, parse_explain_result

logger = logging.getLogger(__name__)


@runtime_checkable
class SqlExecutor(Protocol):
    """Runs one SQL string and returns the EXPLAIN document it produced."""

    def fetch_explain(self, sql: str) -> str | bytes | Sequence[Any]:
        """Return the JSON text, or the already-decoded array."""
        ...


class ExplainOptions(BaseModel):
    """EXPLAIN options added after FORMAT JSON."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    analyze: bool = Field(default=False, description="Execute and report actual times/rows")
    buffers: bool = Field(default=False, description="Report buffer usage")
    verbose: bool = Field(default=False, description="Report output columns, schemas, workers")
    settings: bool = Field(default=False, description="Report non-default planner settings")

    def clause(self) -> str:
        """Render the parenthesized option list, e.g. '(FORMAT JSON, ANALYZE)'."""
        options = ["FORMAT JSON"]
        if self.analyze:
            options.append("ANALYZE")
        if self.buffers:
            options.append("BUFFERS")
        if self.verbose:
            options.append("VERBOSE")
        if self.settings:
            options.append("SETTINGS")
        return f"({', '.join(options)})"


@dataclass(frozen=True)
class ExplainQuery:
    """A statement wrapped for EXPLAIN. Build it with wrap_explain()."""

    statement: str
    options: ExplainOptions = field(default_factory=ExplainOptions)

    @property
    def sql(self) -> str:
        """The full EXPLAIN statement sent to the executor."""
        return f"EXPLAIN {self.options.clause()} {self.statement}"

    def explain(
        self,
        executor: SqlExecutor,
        config: ParserConfig | None = None,
    ) -> ExplainResult:
        """Run the EXPLAIN and parse the single resulting plan."""
        return parse_explain_result(self._fetch(executor), config)

    def explain_all(
        self,
        executor: SqlExecutor,
        config: ParserConfig | None = None,
    ) -> list[ExplainResult]:
        """Run the EXPLAIN and parse every element of the reply."""
        return parse_explain(self._fetch(executor), config)

    def _fetch(self, executor: SqlExecutor) -> Any:
        sql = self.sql
        logger.debug("Running %s", sql[:200])
        return executor.fetch_explain(sql)


def wrap_explain(
    statement: str,
    options: ExplainOptions | None = None,
    **flags: bool,
) -> ExplainQuery:
    """
    Wrap a SQL statement in EXPLAIN (FORMAT JSON ...).

    Options come either as an ExplainOptions or as keyword flags
    (analyze=True, buffers=True, ...), not both.

    Raises:
        ValueError: If the statement is empty, or both options and flags are given
    """
    text = statement.strip().rstrip(";").rstrip()
    if not text:
        raise ValueError("Cannot EXPLAIN an empty statement")

    if options is not None and flags:
        raise ValueError("Pass either options or keyword flags, not both")

    return ExplainQuery(text, options or ExplainOptions(**flags))


class DBAPIExecutor:
    """
    SqlExecutor over a DB-API 2.0 connection (psycopg, psycopg2, pg8000, ...).

    Returns the first column of the first row, which is where PostgreSQL
    puts the EXPLAIN document. Database errors propagate unchanged.
    """

    def __init__(self, connection: Any) -> None:
        self._connection = connection

    def fetch_explain(self, sql: str) -> str | bytes | Sequence[Any]:
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql)
            row = cursor.fetchone()
        finally:
            cursor.close()

        if not row:
            raise UnexpectedShapeError(
                "EXPLAIN returned no rows",
                source="executor",
            )
        return row[0]
