"""
Tests for the plan models.

Covers computed properties, per-node-kind fields, worker and trigger
records, immutability, and the text rendering used for diagnostics.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pgexplain.parser import (
    ExplainResult,
    JoinType,
    NodeType,
    PlanNode,
    WorkerStats,
    parse_explain_result,
)


# =============================================================================
# Computed Properties Tests
# =============================================================================

class TestPlanNodeProperties:
    """Test computed properties on PlanNode."""

    def test_is_scan_node(self, seq_scan_fixture: list) -> None:
        """Seq Scan is correctly identified as scan node."""
        output = parse_explain_result(seq_scan_fixture)
        assert output.plan.is_scan_node
        assert not output.plan.is_join_node

    def test_is_join_node(self, hash_join_fixture: list) -> None:
        """Hash Join is correctly identified as join node."""
        output = parse_explain_result(hash_join_fixture)
        assert output.plan.is_join_node
        assert not output.plan.is_scan_node
        assert output.plan.join_type is JoinType.INNER

    def test_row_estimate_ratio(self, analyzed_sort_fixture: list) -> None:
        output = parse_explain_result(analyzed_sort_fixture)
        ratio = output.plan.row_estimate_ratio

        assert ratio is not None
        assert ratio == pytest.approx(498 / 500)

    def test_row_estimate_ratio_without_analyze(self, seq_scan_fixture: list) -> None:
        assert parse_explain_result(seq_scan_fixture).plan.row_estimate_ratio is None

    def test_zero_plan_rows(self, trigger_fixture: list) -> None:
        """Handle plan_rows = 0 without division error."""
        output = parse_explain_result(trigger_fixture)

        assert output.plan.plan_rows == 0
        assert output.plan.row_estimate_ratio == 1.0

    def test_total_actual_time(self, parallel_fixture: list) -> None:
        """Total time accounts for loop iterations."""
        output = parse_explain_result(parallel_fixture)
        scan = output.find_nodes_by_type("Seq Scan")[0]

        assert scan.actual_loops == 3
        assert scan.total_actual_time == pytest.approx(21.477 * 3)

    def test_iter_nodes_preorder(self, hash_join_fixture: list) -> None:
        """iter_nodes lists a parent before its children, left to right."""
        nodes = parse_explain_result(hash_join_fixture).plan.iter_nodes()

        assert [n.node_type for n in nodes] == ["Hash Join", "Seq Scan", "Hash", "Seq Scan"]
        assert [n.relation_name for n in nodes] == [None, "orders", None, "users"]

    def test_depth_and_count_of_leaf(self, seq_scan_fixture: list) -> None:
        plan = parse_explain_result(seq_scan_fixture).plan
        assert plan.depth == 0
        assert plan.node_count == 1


class TestExplainResultProperties:
    """Test computed properties on ExplainResult."""

    def test_all_nodes(self, parallel_fixture: list) -> None:
        assert len(parse_explain_result(parallel_fixture).all_nodes) == 4

    def test_find_nodes_by_type(self, cte_fixture: list) -> None:
        output = parse_explain_result(cte_fixture)

        assert len(output.find_nodes_by_type("CTE Scan")) == 2
        assert len(output.find_nodes_by_type(NodeType.AGGREGATE)) == 1
        assert output.find_nodes_by_type("Hash") == []

    def test_find_slow_nodes(self, parallel_fixture: list) -> None:
        """Find nodes exceeding time threshold, loops included."""
        output = parse_explain_result(parallel_fixture)

        assert len(output.find_slow_nodes(threshold_ms=40.0)) == 4

        slow = output.find_slow_nodes(threshold_ms=100.0)
        assert len(slow) == 1
        assert slow[0].partial_mode == "Partial"

    def test_find_slow_nodes_without_analyze(self, hash_join_fixture: list) -> None:
        assert parse_explain_result(hash_join_fixture).find_slow_nodes(0.0) == []


# =============================================================================
# Node-kind Specific Fields
# =============================================================================

class TestNodeFields:
    """Fields that only some node kinds or EXPLAIN options produce."""

    def test_sort_and_buffers(self, analyzed_sort_fixture: list) -> None:
        output = parse_explain_result(analyzed_sort_fixture)
        sort = output.plan
        scan = sort.children[0]

        assert sort.node_type is NodeType.SORT
        assert sort.sort_key == ("users.created_at DESC", "users.id")
        assert sort.sort_method == "quicksort"
        assert sort.sort_space_used == 71
        assert sort.sort_space_type == "Memory"
        assert sort.output == ("id", "email", "created_at")
        assert sort.shared_hit_blocks == 8
        assert sort.local_dirtied_blocks == 0
        assert sort.io_read_time is None

        assert scan.schema_name == "public"
        assert scan.rows_removed_by_filter == 2
        assert output.planning == {"Shared Hit Blocks": 12, "Shared Read Blocks": 0}

    def test_parallel_workers(self, parallel_fixture: list) -> None:
        output = parse_explain_result(parallel_fixture)
        gather = output.plan.children[0]
        partial = gather.children[0]

        assert gather.node_type is NodeType.GATHER
        assert gather.workers_planned == 2
        assert gather.workers_launched == 2
        assert gather.single_copy is False
        assert gather.workers is None

        assert partial.strategy == "Plain"
        assert partial.workers is not None
        assert [w.worker_number for w in partial.workers] == [0, 1]
        assert all(isinstance(w, WorkerStats) for w in partial.workers)
        assert partial.workers[1].actual_total_time == 37.915
        assert partial.workers[0].has_analyze_data
        assert partial.workers[0].shared_hit_blocks is None

        assert partial.children[0].parallel_aware is True
        assert output.jit is not None
        assert output.jit["Functions"] == 4

    def test_cte_and_initplans(self, cte_fixture: list) -> None:
        plan = parse_explain_result(cte_fixture).plan

        assert plan.node_type is NodeType.CTE_SCAN
        assert plan.cte_name == "recent"
        assert plan.relation_name is None

        cte, initplan = plan.children
        assert cte.parent_relationship == "InitPlan"
        assert cte.subplan_name == "CTE recent"
        assert initplan.subplan_name == "InitPlan 2 (returns $1)"
        assert initplan.children[0].alias == "recent_1"

    def test_modify_table_and_triggers(self, trigger_fixture: list) -> None:
        output = parse_explain_result(trigger_fixture)
        scan = output.plan.children[0]

        assert output.plan.node_type is NodeType.MODIFY_TABLE
        assert output.plan.operation == "Update"
        assert scan.index_name == "accounts_pkey"
        assert scan.scan_direction == "Forward"
        assert scan.index_cond == "(id = 42)"
        assert scan.rows_removed_by_index_recheck == 0

        assert output.triggers is not None
        audit, fkey = output.triggers
        assert audit.trigger_name == "accounts_audit"
        assert audit.constraint_name is None
        assert audit.calls == 1
        assert fkey.constraint_name == "accounts_owner_fkey"
        assert fkey.time == 0.041


# =============================================================================
# Construction and Immutability
# =============================================================================

class TestConstruction:
    """Models are frozen and accept snake_case names too."""

    def test_populate_by_name(self) -> None:
        node = PlanNode(
            node_type="Index Only Scan",
            startup_cost=0,
            total_cost=4.3,
            plan_rows=1,
            plan_width=4,
            heap_fetches=0,
        )

        assert node.node_type is NodeType.INDEX_ONLY_SCAN
        assert node.startup_cost == 0.0
        assert node.heap_fetches == 0

    def test_frozen_node(self, seq_scan_fixture: list) -> None:
        plan = parse_explain_result(seq_scan_fixture).plan
        with pytest.raises(ValidationError):
            plan.plan_rows = 1  # type: ignore[misc]

    def test_frozen_result(self, seq_scan_fixture: list) -> None:
        output = parse_explain_result(seq_scan_fixture)
        with pytest.raises(ValidationError):
            output.planning_time = 1.0  # type: ignore[misc]

    def test_children_are_tuples(self, hash_join_fixture: list) -> None:
        plan = parse_explain_result(hash_join_fixture).plan
        assert isinstance(plan.children, tuple)
        assert isinstance(plan.children[1].children, tuple)

    def test_equality(self, hash_join_fixture: list) -> None:
        assert parse_explain_result(hash_join_fixture) == parse_explain_result(hash_join_fixture)

    def test_json_dump_uses_plain_values(self, hash_join_fixture: list) -> None:
        dumped = parse_explain_result(hash_join_fixture).model_dump(mode="json", exclude_none=True)

        assert dumped["plan"]["node_type"] == "Hash Join"
        assert dumped["plan"]["join_type"] == "Inner"
        assert dumped["plan"]["children"][1]["children"][0]["relation_name"] == "users"

    def test_dump_by_alias_round_trips(self, parallel_fixture: list) -> None:
        output = parse_explain_result(parallel_fixture)
        again = ExplainResult.model_validate(output.model_dump(by_alias=True, mode="json"))

        assert again == output


# =============================================================================
# Rendering
# =============================================================================

class TestRender:
    """Text rendering for logs and diagnostics."""

    def test_render_tree(self, hash_join_fixture: list) -> None:
        text = parse_explain_result(hash_join_fixture).plan.render()

        assert text.splitlines() == [
            "Hash Join  (cost=13.15..39.52 rows=510 width=72)",
            "  ->  Seq Scan on orders o  (cost=0.00..20.20 rows=1020 width=36)",
            "  ->  Hash  (cost=12.50..12.50 rows=500 width=40)",
            "        ->  Seq Scan on users u  (cost=0.00..12.50 rows=500 width=40)",
        ]

    def test_render_result_with_timings(self, analyzed_sort_fixture: list) -> None:
        text = parse_explain_result(analyzed_sort_fixture).render()
        lines = text.splitlines()

        assert lines[0].endswith("(actual time=3.902..4.101 rows=498 loops=1)")
        assert "Seq Scan on public.users" in lines[1]
        assert lines[-2] == "Planning Time: 0.123 ms"
        assert lines[-1] == "Execution Time: 4.567 ms"

    def test_label_variants(self, trigger_fixture: list, cte_fixture: list) -> None:
        scan = parse_explain_result(trigger_fixture).plan.children[0]
        cte = parse_explain_result(cte_fixture).plan

        assert scan.label() == "Index Scan using accounts_pkey on accounts"
        assert cte.label() == "CTE Scan on recent"

    def test_label_outer_join(self) -> None:
        node = PlanNode(
            node_type="Merge Join",
            join_type="Left",
            startup_cost=1.0,
            total_cost=2.0,
            plan_rows=1,
            plan_width=1,
        )
        assert node.join_type is JoinType.LEFT
        assert node.label() == "Merge Join (Left)"

    def test_render_subplan_names(self, cte_fixture: list) -> None:
        text = parse_explain_result(cte_fixture).render()
        assert "CTE recent" in text
        assert "InitPlan 2 (returns $1)" in text

    def test_render_trigger_lines(self, trigger_fixture: list) -> None:
        text = parse_explain_result(trigger_fixture).render()
        assert "Trigger accounts_audit: time=0.118 calls=1" in text
