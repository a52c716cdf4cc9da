"""Shared fixtures for pgexplain tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from pgexplain.parser.config import reset_config

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> list[Any]:
    """Load a JSON fixture file."""
    path = FIXTURES_DIR / f"{name}.json"
    return json.loads(path.read_text())


def make_node(node_type: str = "Seq Scan", **fields: Any) -> dict[str, Any]:
    """Build a raw plan node with the four required cost fields."""
    node: dict[str, Any] = {
        "Node Type": node_type,
        "Startup Cost": 0.0,
        "Total Cost": 1.0,
        "Plan Rows": 100,
        "Plan Width": 50,
    }
    node.update(fields)
    return node


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch: pytest.MonkeyPatch):
    """Each test sees a config built from a clean environment."""
    for name in ("PGEXPLAIN_MAX_FILE_SIZE_MB", "PGEXPLAIN_MAX_NODES", "PGEXPLAIN_MAX_DEPTH"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def seq_scan_fixture() -> list[Any]:
    """Minimal plain EXPLAIN of a single table scan."""
    return load_fixture("seq_scan_minimal")


@pytest.fixture
def hash_join_fixture() -> list[Any]:
    """Hash Join over a Seq Scan and a Hash of another Seq Scan."""
    return load_fixture("hash_join_nested")


@pytest.fixture
def analyzed_sort_fixture() -> list[Any]:
    """EXPLAIN (ANALYZE, BUFFERS, VERBOSE) of a sorted scan."""
    return load_fixture("analyzed_sort")


@pytest.fixture
def parallel_fixture() -> list[Any]:
    """Parallel count(*) with per-worker statistics and JIT info."""
    return load_fixture("parallel_gather")


@pytest.fixture
def cte_fixture() -> list[Any]:
    """CTE Scan with a CTE InitPlan and a scalar InitPlan."""
    return load_fixture("cte_initplan")


@pytest.fixture
def trigger_fixture() -> list[Any]:
    """EXPLAIN ANALYZE of an UPDATE firing two triggers."""
    return load_fixture("update_with_trigger")
