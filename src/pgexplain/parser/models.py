"""
Pydantic models for PostgreSQL EXPLAIN (FORMAT JSON) output.

The structure is:
- ExplainResult: One element of the EXPLAIN output array (plan plus timing)
- PlanNode: Recursive structure representing each node in the plan tree
- WorkerStats: Per-worker runtime statistics of a parallel node
- TriggerTiming: Trigger execution time reported by EXPLAIN ANALYZE

PostgreSQL EXPLAIN JSON uses "Title Case" keys, which we map to snake_case
via Pydantic aliases for Pythonic access.

Every field except the four cost estimates is optional. A key missing from
the JSON stays None, so "not measured" is never confused with "measured as
zero". Scalars are validated strictly: a count must be a JSON integer, a
cost or time a JSON number, a flag a JSON boolean.

All models are frozen. Unknown keys are kept in ``model_extra`` and never
validated, so newer PostgreSQL releases that add plan metadata still parse.

Reference: https://www.postgresql.org/docs/current/using-explain.html
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Iterable

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


def _integral_to_int(value: float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# Strict scalar types. Counts reject floats and booleans, floats accept ints.
Count = Annotated[int, Field(strict=True, ge=0)]
Milliseconds = Annotated[float, Field(strict=True, ge=0, allow_inf_nan=False)]
Cost = Annotated[float, Field(strict=True, ge=0, allow_inf_nan=False)]
Flag = Annotated[bool, Field(strict=True)]

# PostgreSQL 18 prints Actual Rows as a per-loop average with two decimals
# (498.00, 0.50). Whole values come back as int, fractional ones as float.
RowAverage = Annotated[
    float,
    Field(strict=True, ge=0, allow_inf_nan=False),
    AfterValidator(_integral_to_int),
]


class NodeType(str, Enum):
    """
    Known PostgreSQL plan node types.

    Not exhaustive - new node types are added in new Postgres versions.
    PlanNode keeps unknown types as the raw string instead of failing.
    """
    # Scan nodes
    SEQ_SCAN = "Seq Scan"
    SAMPLE_SCAN = "Sample Scan"
    INDEX_SCAN = "Index Scan"
    INDEX_ONLY_SCAN = "Index Only Scan"
    BITMAP_INDEX_SCAN = "Bitmap Index Scan"
    BITMAP_HEAP_SCAN = "Bitmap Heap Scan"
    TID_SCAN = "Tid Scan"
    TID_RANGE_SCAN = "Tid Range Scan"
    SUBQUERY_SCAN = "Subquery Scan"
    FUNCTION_SCAN = "Function Scan"
    TABLE_FUNCTION_SCAN = "Table Function Scan"
    VALUES_SCAN = "Values Scan"
    CTE_SCAN = "CTE Scan"
    NAMED_TUPLE_STORE_SCAN = "Named Tuplestore Scan"
    WORK_TABLE_SCAN = "WorkTable Scan"
    FOREIGN_SCAN = "Foreign Scan"
    CUSTOM_SCAN = "Custom Scan"

    # Join nodes
    NESTED_LOOP = "Nested Loop"
    MERGE_JOIN = "Merge Join"
    HASH_JOIN = "Hash Join"

    # Materialization nodes
    MATERIALIZE = "Materialize"
    MEMOIZE = "Memoize"
    SORT = "Sort"
    INCREMENTAL_SORT = "Incremental Sort"
    GROUP = "Group"
    AGGREGATE = "Aggregate"
    WINDOW_AGG = "WindowAgg"
    UNIQUE = "Unique"
    SETOP = "SetOp"
    LOCK_ROWS = "LockRows"
    LIMIT = "Limit"
    HASH = "Hash"

    # Control nodes
    APPEND = "Append"
    MERGE_APPEND = "MergeAppend"
    RECURSIVE_UNION = "Recursive Union"
    BITMAP_AND = "BitmapAnd"
    BITMAP_OR = "BitmapOr"
    GATHER = "Gather"
    GATHER_MERGE = "Gather Merge"
    PROJECT_SET = "ProjectSet"

    # Modification nodes
    MODIFY_TABLE = "ModifyTable"
    RESULT = "Result"


class JoinType(str, Enum):
    """PostgreSQL join types."""
    INNER = "Inner"
    LEFT = "Left"
    RIGHT = "Right"
    FULL = "Full"
    SEMI = "Semi"
    ANTI = "Anti"
    RIGHT_SEMI = "Right Semi"
    RIGHT_ANTI = "Right Anti"


_SCAN_TYPES = frozenset({
    NodeType.SEQ_SCAN, NodeType.SAMPLE_SCAN, NodeType.INDEX_SCAN,
    NodeType.INDEX_ONLY_SCAN, NodeType.BITMAP_HEAP_SCAN,
    NodeType.BITMAP_INDEX_SCAN, NodeType.TID_SCAN, NodeType.TID_RANGE_SCAN,
})

_JOIN_TYPES = frozenset({
    NodeType.NESTED_LOOP, NodeType.MERGE_JOIN, NodeType.HASH_JOIN,
})


def _to_known(value: str, enum_cls: type[Enum]) -> Any:
    """Return the enum member for ``value``, or ``value`` itself if unknown."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _text(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class _RuntimeStats(BaseModel):
    """Fields shared by plan nodes and parallel workers."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    # =========================================================================
    # EXPLAIN ANALYZE fields (only present with ANALYZE option)
    # =========================================================================

    actual_startup_time: Milliseconds | None = Field(
        default=None,
        alias="Actual Startup Time",
        description="Actual time in ms to return first row (per loop)",
    )

    actual_total_time: Milliseconds | None = Field(
        default=None,
        alias="Actual Total Time",
        description="Actual time in ms to return all rows (per loop)",
    )

    actual_rows: RowAverage | None = Field(
        default=None,
        alias="Actual Rows",
        description="Actual rows returned per loop (a fractional average from PostgreSQL 18)",
    )

    actual_loops: Count | None = Field(
        default=None,
        alias="Actual Loops",
        description="Number of times this node was executed",
    )

    # =========================================================================
    # Buffer statistics (with BUFFERS option)
    # =========================================================================

    shared_hit_blocks: Count | None = Field(default=None, alias="Shared Hit Blocks")
    shared_read_blocks: Count | None = Field(default=None, alias="Shared Read Blocks")
    shared_dirtied_blocks: Count | None = Field(default=None, alias="Shared Dirtied Blocks")
    shared_written_blocks: Count | None = Field(default=None, alias="Shared Written Blocks")
    local_hit_blocks: Count | None = Field(default=None, alias="Local Hit Blocks")
    local_read_blocks: Count | None = Field(default=None, alias="Local Read Blocks")
    local_dirtied_blocks: Count | None = Field(default=None, alias="Local Dirtied Blocks")
    local_written_blocks: Count | None = Field(default=None, alias="Local Written Blocks")
    temp_read_blocks: Count | None = Field(default=None, alias="Temp Read Blocks")
    temp_written_blocks: Count | None = Field(default=None, alias="Temp Written Blocks")

    # I/O timing (with BUFFERS and track_io_timing)
    io_read_time: Milliseconds | None = Field(
        default=None,
        alias="I/O Read Time",
        description="Time spent reading blocks in ms",
    )

    io_write_time: Milliseconds | None = Field(
        default=None,
        alias="I/O Write Time",
        description="Time spent writing blocks in ms",
    )

    # Sort statistics are reported per worker as well as per node
    sort_method: str | None = Field(
        default=None,
        alias="Sort Method",
        description="Algorithm used for sorting (quicksort, external merge, ...)",
    )

    sort_space_used: Count | None = Field(
        default=None,
        alias="Sort Space Used",
        description="Memory/disk used for sort in kB",
    )

    sort_space_type: str | None = Field(
        default=None,
        alias="Sort Space Type",
        description="Memory or Disk",
    )

    @property
    def has_analyze_data(self) -> bool:
        """Check if EXPLAIN ANALYZE data is present."""
        return self.actual_rows is not None or self.actual_loops is not None

    @property
    def total_actual_time(self) -> float | None:
        """
        Total time including all loop iterations.

        actual_total_time is per-loop, so multiply by loops for true total.
        """
        if self.actual_total_time is None or self.actual_loops is None:
            return None
        return self.actual_total_time * self.actual_loops


class WorkerStats(_RuntimeStats):
    """Runtime statistics for one parallel worker (an element of ``Workers``)."""

    worker_number: Count | None = Field(
        default=None,
        alias="Worker Number",
        description="Zero-based worker index",
    )


class PlanNode(_RuntimeStats):
    """
    Represents a single node in the PostgreSQL query execution plan.

    This is a recursive structure - each node owns its child nodes in
    ``children``, in the order PostgreSQL emitted them (for joins the
    outer side comes first). The tree represents the execution order
    (leaves execute first, results flow up to the root).

    Which optional fields are meaningful depends on the node type:
    - Scans: relation_name, schema_name, alias, index_name, index_cond,
      filter, rows_removed_by_filter, heap_fetches
    - Joins: join_type, hash_cond, merge_cond, join_filter, inner_unique
    - Sort / Incremental Sort: sort_key, presorted_key, sort_method, sort_space_*
    - Aggregate / Group: strategy, partial_mode, group_key
    - Hash: hash_buckets, hash_batches, peak_memory_usage
    - Gather / Gather Merge: workers_planned, workers_launched, single_copy
    - CTE Scan / SubPlan / InitPlan: cte_name, subplan_name
    """

    # =========================================================================
    # Universal fields (present on all nodes)
    # =========================================================================

    node_type: str = Field(
        ...,
        alias="Node Type",
        min_length=1,
        description="The type of plan node; a NodeType member when known",
    )

    startup_cost: Cost = Field(
        ...,
        alias="Startup Cost",
        description="Estimated cost to return the first row",
    )

    total_cost: Cost = Field(
        ...,
        alias="Total Cost",
        description="Estimated cost to return all rows",
    )

    plan_rows: Count = Field(
        ...,
        alias="Plan Rows",
        description="Estimated number of rows to be returned",
    )

    plan_width: Count = Field(
        ...,
        alias="Plan Width",
        description="Estimated average width of rows in bytes",
    )

    # =========================================================================
    # Position in the tree
    # =========================================================================

    parent_relationship: str | None = Field(
        default=None,
        alias="Parent Relationship",
        description="Outer, Inner, Subquery, InitPlan, SubPlan or Member",
    )

    subplan_name: str | None = Field(
        default=None,
        alias="Subplan Name",
        description="Name of the InitPlan/SubPlan this node heads",
    )

    cte_name: str | None = Field(
        default=None,
        alias="CTE Name",
        description="Name of the CTE scanned by a CTE Scan",
    )

    # =========================================================================
    # Scanned object
    # =========================================================================

    relation_name: str | None = Field(
        default=None,
        alias="Relation Name",
        description="Table name for scan nodes",
    )

    schema_name: str | None = Field(
        default=None,
        alias="Schema",
        description="Schema name for the relation (VERBOSE)",
    )

    alias: str | None = Field(
        default=None,
        alias="Alias",
        description="Table alias used in the query",
    )

    index_name: str | None = Field(
        default=None,
        alias="Index Name",
        description="Index name for index scan nodes",
    )

    function_name: str | None = Field(
        default=None,
        alias="Function Name",
        description="Function called by a Function Scan",
    )

    scan_direction: str | None = Field(
        default=None,
        alias="Scan Direction",
        description="Direction of index scan (Forward/Backward)",
    )

    # =========================================================================
    # Joins, filters and conditions
    # =========================================================================

    join_type: str | None = Field(
        default=None,
        alias="Join Type",
        description="Type of join; a JoinType member when known",
    )

    inner_unique: Flag | None = Field(default=None, alias="Inner Unique")

    hash_cond: str | None = Field(default=None, alias="Hash Cond")
    merge_cond: str | None = Field(default=None, alias="Merge Cond")
    index_cond: str | None = Field(default=None, alias="Index Cond")
    recheck_cond: str | None = Field(default=None, alias="Recheck Cond")
    join_filter: str | None = Field(default=None, alias="Join Filter")

    filter: str | None = Field(
        default=None,
        alias="Filter",
        description="Filter condition applied to rows",
    )

    rows_removed_by_filter: Count | None = Field(
        default=None,
        alias="Rows Removed by Filter",
    )

    rows_removed_by_index_recheck: Count | None = Field(
        default=None,
        alias="Rows Removed by Index Recheck",
    )

    rows_removed_by_join_filter: Count | None = Field(
        default=None,
        alias="Rows Removed by Join Filter",
    )

    heap_fetches: Count | None = Field(
        default=None,
        alias="Heap Fetches",
        description="Heap visits made by an Index Only Scan",
    )

    exact_heap_blocks: Count | None = Field(default=None, alias="Exact Heap Blocks")
    lossy_heap_blocks: Count | None = Field(default=None, alias="Lossy Heap Blocks")

    # =========================================================================
    # Sorting and grouping
    # =========================================================================

    sort_key: tuple[str, ...] | None = Field(
        default=None,
        alias="Sort Key",
        description="Sort expressions, in order",
    )

    presorted_key: tuple[str, ...] | None = Field(
        default=None,
        alias="Presorted Key",
        description="Leading sort expressions already satisfied (Incremental Sort)",
    )

    group_key: tuple[str, ...] | None = Field(
        default=None,
        alias="Group Key",
        description="Grouping expressions of an Aggregate or Group node",
    )

    strategy: str | None = Field(
        default=None,
        alias="Strategy",
        description="Aggregate strategy (Plain, Sorted, Hashed, Mixed)",
    )

    partial_mode: str | None = Field(
        default=None,
        alias="Partial Mode",
        description="Simple, Partial or Finalize",
    )

    # =========================================================================
    # Hashing
    # =========================================================================

    hash_buckets: Count | None = Field(default=None, alias="Hash Buckets")
    original_hash_buckets: Count | None = Field(default=None, alias="Original Hash Buckets")

    hash_batches: Count | None = Field(
        default=None,
        alias="Hash Batches",
        description="Number of hash batches (>1 means spilled to disk)",
    )

    original_hash_batches: Count | None = Field(default=None, alias="Original Hash Batches")

    peak_memory_usage: Count | None = Field(
        default=None,
        alias="Peak Memory Usage",
        description="Peak memory used by hash table in kB",
    )

    # =========================================================================
    # Parallel execution
    # =========================================================================

    parallel_aware: Flag | None = Field(
        default=None,
        alias="Parallel Aware",
        description="Whether the node is parallel-aware",
    )

    async_capable: Flag | None = Field(
        default=None,
        alias="Async Capable",
        description="Whether the node supports asynchronous execution (PG14+)",
    )

    workers_planned: Count | None = Field(
        default=None,
        alias="Workers Planned",
        description="Number of parallel workers planned",
    )

    workers_launched: Count | None = Field(
        default=None,
        alias="Workers Launched",
        description="Number of parallel workers actually launched",
    )

    single_copy: Flag | None = Field(default=None, alias="Single Copy")

    workers: tuple[WorkerStats, ...] | None = Field(
        default=None,
        alias="Workers",
        description="Per-worker runtime statistics (ANALYZE + VERBOSE)",
    )

    # =========================================================================
    # Modification nodes
    # =========================================================================

    operation: str | None = Field(
        default=None,
        alias="Operation",
        description="Insert, Update, Delete or Merge (ModifyTable)",
    )

    command: str | None = Field(
        default=None,
        alias="Command",
        description="Intersect, Except, ... (SetOp)",
    )

    # =========================================================================
    # Output and children
    # =========================================================================

    output: tuple[str, ...] | None = Field(
        default=None,
        alias="Output",
        description="Output column expressions (VERBOSE)",
    )

    children: tuple[PlanNode, ...] = Field(
        default=(),
        alias="Plans",
        description="Child plan nodes, in document order",
    )

    @field_validator("node_type")
    @classmethod
    def _known_node_type(cls, value: str) -> str:
        return _to_known(value, NodeType)

    @field_validator("join_type")
    @classmethod
    def _known_join_type(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _to_known(value, JoinType)

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def is_known_type(self) -> bool:
        """False when node_type is a kind this library does not know about."""
        return isinstance(self.node_type, NodeType)

    @property
    def is_scan_node(self) -> bool:
        """Check if this is a table/index scan node."""
        return self.node_type in _SCAN_TYPES

    @property
    def is_join_node(self) -> bool:
        """Check if this is a join node."""
        return self.node_type in _JOIN_TYPES

    @property
    def row_estimate_ratio(self) -> float | None:
        """
        Ratio of actual to estimated rows.

        Values far from 1.0 indicate bad statistics:
        - >> 1: Planner underestimated (may choose wrong plan)
        - << 1: Planner overestimated (usually less harmful)

        Returns None if ANALYZE data not available.
        """
        if self.actual_rows is None:
            return None
        if self.plan_rows == 0:
            return float('inf') if self.actual_rows > 0 else 1.0
        return self.actual_rows / self.plan_rows

    @property
    def depth(self) -> int:
        """Levels below this node: 0 for a leaf, 1 for a parent of leaves."""
        if not self.children:
            return 0
        return 1 + max(child.depth for child in self.children)

    @property
    def node_count(self) -> int:
        """Number of nodes in this subtree, including this one."""
        return 1 + sum(child.node_count for child in self.children)

    def iter_nodes(self) -> list[PlanNode]:
        """
        All nodes in the subtree, depth-first, parent before children.

        Useful for finding all nodes of a certain type or property.
        """
        nodes = [self]
        for child in self.children:
            nodes.extend(child.iter_nodes())
        return nodes

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def label(self) -> str:
        """Short description in the style of EXPLAIN's text format."""
        text = _text(self.node_type)
        if self.join_type is not None and self.join_type != JoinType.INNER:
            text += f" ({_text(self.join_type)})"
        if self.index_name:
            text += f" using {self.index_name}"
        if self.relation_name:
            relation = self.relation_name
            if self.schema_name:
                relation = f"{self.schema_name}.{relation}"
            text += f" on {relation}"
            if self.alias and self.alias != self.relation_name:
                text += f" {self.alias}"
        elif self.cte_name:
            text += f" on {self.cte_name}"
        elif self.function_name:
            text += f" on {self.function_name}"
        return text

    def summary(self) -> str:
        """Label plus estimates and, when present, actuals."""
        text = (
            f"{self.label()}  (cost={self.startup_cost:.2f}..{self.total_cost:.2f}"
            f" rows={self.plan_rows} width={self.plan_width})"
        )
        if self.has_analyze_data:
            if self.actual_startup_time is not None and self.actual_total_time is not None:
                text += (
                    f" (actual time={self.actual_startup_time:.3f}..{self.actual_total_time:.3f}"
                    f" rows={self.actual_rows} loops={self.actual_loops})"
                )
            else:
                text += f" (actual rows={self.actual_rows} loops={self.actual_loops})"
        return text

    def render(self, indent: int = 0) -> str:
        """Render the subtree as indented text, one node per line."""
        return "\n".join(self._render_lines(indent))

    def _render_lines(self, indent: int) -> Iterable[str]:
        prefix = " " * indent + ("->  " if indent else "")
        heading = self.summary()
        if self.subplan_name:
            yield " " * indent + self.subplan_name
        yield prefix + heading
        for child in self.children:
            yield from child._render_lines(indent + 6 if indent else 2)


class TriggerTiming(BaseModel):
    """Time spent in one trigger (EXPLAIN ANALYZE on a modifying statement)."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    trigger_name: str = Field(..., alias="Trigger Name", min_length=1)
    constraint_name: str | None = Field(default=None, alias="Constraint Name")
    relation: str | None = Field(default=None, alias="Relation")
    time: Milliseconds | None = Field(default=None, alias="Time")
    calls: Count | None = Field(default=None, alias="Calls")


class ExplainResult(BaseModel):
    """
    One element of PostgreSQL's EXPLAIN (FORMAT JSON) output array.

    PostgreSQL returns an array with one object per explained statement,
    each with a 'Plan' plus optional top-level timing and metadata.

    Usage:
        results = parse_explain(json_text)
        for node in results[0].all_nodes:
            if node.node_type == NodeType.SEQ_SCAN:
                print(f"Sequential scan on {node.relation_name}")
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    plan: PlanNode = Field(
        ...,
        alias="Plan",
        description="Root node of the execution plan tree",
    )

    planning_time: Milliseconds | None = Field(
        default=None,
        alias="Planning Time",
        description="Time spent planning the query in milliseconds",
    )

    execution_time: Milliseconds | None = Field(
        default=None,
        alias="Execution Time",
        description="Total execution time in milliseconds (ANALYZE only)",
    )

    triggers: tuple[TriggerTiming, ...] | None = Field(
        default=None,
        alias="Triggers",
        description="Trigger execution information (ANALYZE only)",
    )

    query_text: str | None = Field(
        default=None,
        alias="Query Text",
        description="Original query text (auto_explain output)",
    )

    planning: dict[str, Any] | None = Field(
        default=None,
        alias="Planning",
        description="Buffer usage during planning (BUFFERS, PG13+)",
    )

    settings: dict[str, Any] | None = Field(
        default=None,
        alias="Settings",
        description="Non-default planner settings (SETTINGS option)",
    )

    jit: dict[str, Any] | None = Field(
        default=None,
        alias="JIT",
        description="JIT compilation statistics",
    )

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def has_analyze_data(self) -> bool:
        """Check if EXPLAIN ANALYZE data is present."""
        return self.execution_time is not None or self.plan.has_analyze_data

    @property
    def all_nodes(self) -> list[PlanNode]:
        """Get all nodes in the plan tree as a flat list."""
        return self.plan.iter_nodes()

    def find_nodes_by_type(self, node_type: str) -> list[PlanNode]:
        """Find all nodes of a specific type."""
        return [n for n in self.all_nodes if n.node_type == node_type]

    def find_slow_nodes(self, threshold_ms: float = 100.0) -> list[PlanNode]:
        """
        Find nodes that took longer than the threshold.

        Only works with ANALYZE data. Returns empty list without it.
        """
        return [
            n for n in self.all_nodes
            if n.total_actual_time is not None and n.total_actual_time > threshold_ms
        ]

    def render(self) -> str:
        """Render the plan and timing like EXPLAIN's text format."""
        lines = [self.plan.render()]
        if self.planning_time is not None:
            lines.append(f"Planning Time: {self.planning_time:.3f} ms")
        for trigger in self.triggers or ():
            lines.append(
                f"Trigger {trigger.trigger_name}: time={trigger.time} calls={trigger.calls}"
            )
        if self.execution_time is not None:
            lines.append(f"Execution Time: {self.execution_time:.3f} ms")
        return "\n".join(lines)
