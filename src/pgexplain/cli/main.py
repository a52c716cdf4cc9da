"""
pgexplain CLI - Inspect PostgreSQL EXPLAIN (FORMAT JSON) output.

Usage:
    pgexplain show explain.json
    psql -XAtc "EXPLAIN (FORMAT JSON) SELECT 1" | pgexplain show -
    pgexplain show --json explain.json
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from pgexplain import __version__
from pgexplain.exceptions import PgExplainError, PlanFileError, PlanParseError
from pgexplain.parser import ExplainResult, PlanNode, parse_explain, parse_explain_file
from pgexplain.parser.config import ParserConfig, get_config

app = typer.Typer(
    name="pgexplain",
    help="Inspect PostgreSQL EXPLAIN (FORMAT JSON) plans",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"pgexplain version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """pgexplain - Typed PostgreSQL EXPLAIN plans."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


def build_tree(node: PlanNode, tree: Tree | None = None) -> Tree:
    """Build a rich Tree mirroring the plan tree."""
    label = escape(node.summary())
    if node.subplan_name:
        label = f"[bold]{escape(node.subplan_name)}[/bold]  {label}"
    if not node.is_known_type:
        label = f"[yellow]{label}[/yellow]"

    branch = tree.add(label) if tree is not None else Tree(label)
    for child in node.children:
        build_tree(child, branch)
    return branch


def _read_stdin(config: ParserConfig) -> bytes:
    """Read stdin, holding it to the same size limit as files."""
    limit = int(config.max_file_size_mb * 1024 * 1024)
    content = sys.stdin.buffer.read(limit + 1)
    if len(content) > limit:
        raise PlanFileError(
            f"Input too large: more than {config.max_file_size_mb}MB on stdin",
            file_path="-",
        )
    return content


def _print_result(result: ExplainResult) -> None:
    console.print(build_tree(result.plan))
    if result.planning_time is not None:
        console.print(f"[dim]Planning Time: {result.planning_time:.3f} ms[/dim]")
    for trigger in result.triggers or ():
        console.print(
            f"[dim]Trigger {escape(trigger.trigger_name)}: "
            f"time={trigger.time} calls={trigger.calls}[/dim]"
        )
    if result.execution_time is not None:
        console.print(f"[dim]Execution Time: {result.execution_time:.3f} ms[/dim]")


@app.command()
def show(
    explain_file: Annotated[
        str,
        typer.Argument(help="Path to EXPLAIN output (JSON format), or '-' for stdin"),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output the validated plan as EXPLAIN JSON"),
    ] = False,
    max_depth: Annotated[
        Optional[int],
        typer.Option("--max-depth", min=1, help="Maximum plan depth to accept"),
    ] = None,
    max_nodes: Annotated[
        Optional[int],
        typer.Option("--max-nodes", min=1, help="Maximum number of plan nodes to accept"),
    ] = None,
) -> None:
    """
    Parse EXPLAIN output and print the plan tree.

    Examples:

        $ psql -XAtc "EXPLAIN (ANALYZE, FORMAT JSON) SELECT * FROM users" > explain.json
        $ pgexplain show explain.json
    """
    overrides = {
        key: value
        for key, value in (("max_depth", max_depth), ("max_nodes", max_nodes))
        if value is not None
    }
    config: ParserConfig = get_config().model_copy(update=overrides)

    try:
        if explain_file == "-":
            results = parse_explain(_read_stdin(config), config)
        else:
            results = parse_explain_file(explain_file, config)
    except PlanParseError as e:
        error_console.print(f"[red]Error ({e.kind.value}):[/red] {escape(e.message)}")
        if e.path:
            error_console.print(f"[dim]At: {escape(e.path)}[/dim]")
        if e.detail:
            error_console.print(f"\n[dim]{escape(e.detail)}[/dim]")
        raise typer.Exit(code=1)
    except PgExplainError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)

    if json_output:
        payload = [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in results]
        console.print_json(json.dumps(payload))
        return

    for index, result in enumerate(results):
        if index:
            console.print()
        _print_result(result)


if __name__ == "__main__":
    app()
