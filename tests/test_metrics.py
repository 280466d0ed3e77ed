"""
Tests for inclusive/exclusive timing and the snapshot export.

Timing assertions use a small tolerance: plan times are decimal strings
turned into floats, so sums and differences are never exact.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pgexplain import metrics, parse_explain
from pgexplain.parser.models import PlanNode

FIXTURES_DIR = Path(__file__).parent / "fixtures"

TOLERANCE = 0.001


def load_plan(name: str) -> PlanNode:
    return parse_explain((FIXTURES_DIR / name).read_text()).plan


def make_node(**overrides: object) -> PlanNode:
    fields: dict[str, object] = {
        "type": "Result",
        "estimated_startup_cost": 0.0,
        "estimated_total_cost": 1.0,
        "estimated_rows": 1,
        "estimated_row_width": 4,
    }
    fields.update(overrides)
    return PlanNode(**fields)


def analyzed(time_last: float, loops: int = 1, **overrides: object) -> PlanNode:
    return make_node(
        actual_time_first=0.0,
        actual_time_last=time_last,
        actual_rows=1,
        actual_loops=loops,
        **overrides,
    )


# =============================================================================
# Inclusive / exclusive time
# =============================================================================

class TestInclusiveTime:

    def test_scaled_by_loops(self) -> None:
        node = analyzed(0.421, loops=10234)

        total = metrics.total_inclusive_time(node)
        assert total is not None
        assert abs(total - 0.421 * 10234) < TOLERANCE
        assert node.total_inclusive_time == total

    def test_undefined_without_analyze(self) -> None:
        node = load_plan("seq_scan.txt")

        assert node.total_inclusive_time is None
        assert node.total_exclusive_time is None

    def test_never_executed(self) -> None:
        """No actual_time_last, so no inclusive time, but still analyzed."""
        plan = load_plan("never_executed.txt")
        skipped = plan.sub_nodes[1]

        assert skipped.never_executed
        assert skipped.actual_loops == 0
        assert skipped.actual_time_last is None
        assert skipped.is_analyzed
        assert skipped.total_inclusive_time is None
        assert skipped.total_exclusive_time is None


class TestExclusiveTime:

    def test_subtracts_sub_nodes(self) -> None:
        plan = load_plan("join_analyze.txt")

        # 0.060 - (0.010 + 0.022)
        assert abs(plan.total_exclusive_time - 0.028) < TOLERANCE
        # Hash: 0.022 - (0.009 + 0.004)
        assert abs(plan.sub_nodes[1].total_exclusive_time - 0.009) < TOLERANCE

    def test_subtracts_initplans(self) -> None:
        plan = load_plan("initplan_analyze.txt")

        assert abs(plan.total_exclusive_time - 0.030) < TOLERANCE

    def test_subtracts_subplans(self) -> None:
        parent = analyzed(10.0)
        parent.add_subplan(analyzed(0.5, loops=4))

        assert abs(parent.total_exclusive_time - 8.0) < TOLERANCE

    def test_cte_body_not_subtracted(self) -> None:
        """
        CTE body time is already inside the CTE Scan that first read it,
        so only the two scans are subtracted from the root.
        """
        plan = load_plan("cte_analyze.txt")

        assert plan.total_inclusive_time == pytest.approx(1001.087)
        scans = [child.total_inclusive_time for child in plan.sub_nodes]
        assert scans == [pytest.approx(1000.003), pytest.approx(1.082)]
        assert abs(plan.total_exclusive_time - 0.002) < TOLERANCE

    def test_never_executed_child_counts_as_zero(self) -> None:
        plan = load_plan("never_executed.txt")

        assert abs(plan.total_exclusive_time - 0.001) < TOLERANCE

    def test_negative_clamped_to_zero(self) -> None:
        """Rounding with loops > 1 can make children look slower than the parent."""
        parent = analyzed(1.0)
        parent.add_sub_node(analyzed(0.334, loops=3))

        assert parent.total_exclusive_time == 0.0

    def test_non_negative_for_every_analyzed_node(self) -> None:
        for name in ("join_analyze.txt", "cte_analyze.txt", "initplan_analyze.txt", "never_executed.txt"):
            for node in load_plan(name).iter_nodes():
                if node.total_exclusive_time is not None:
                    assert node.total_exclusive_time >= 0

    def test_inclusive_covers_direct_children(self) -> None:
        plan = load_plan("join_analyze.txt")

        for node in plan.iter_nodes():
            children = node.sub_nodes + node.initplans + node.subplans
            times = [child.total_inclusive_time for child in children]
            if node.total_inclusive_time is None or None in times:
                continue
            assert node.total_inclusive_time >= sum(times) - TOLERANCE


# =============================================================================
# is_analyzed / iteration
# =============================================================================

class TestIsAnalyzed:

    def test_plain_explain(self) -> None:
        assert not metrics.is_analyzed(make_node())

    def test_analyze(self) -> None:
        assert metrics.is_analyzed(analyzed(1.0))

    def test_never_executed_counts(self) -> None:
        assert metrics.is_analyzed(make_node(never_executed=True))


class TestIterNodes:

    def test_includes_cte_bodies(self) -> None:
        plan = load_plan("cte_analyze.txt")

        types = [node.type for node in metrics.iter_nodes(plan)]
        assert types == [
            "Nested Loop",
            "CTE Scan on test t1",
            "CTE Scan on test t2",
            "Function Scan on generate_series i",
        ]


# =============================================================================
# Snapshot
# =============================================================================

class TestSnapshot:

    def test_single_scan(self) -> None:
        snap = load_plan("seq_scan.txt").snapshot()

        assert snap == {
            "type": "Seq Scan",
            "scan_on": {"table_name": "tenk1"},
            "estimated_startup_cost": 0,
            "estimated_total_cost": 333,
            "estimated_rows": 10000,
            "estimated_row_width": 148,
            "is_analyzed": False,
        }
        assert isinstance(snap["estimated_total_cost"], int)

    def test_fractional_values_kept(self) -> None:
        snap = load_plan("join_analyze.txt").snapshot()

        assert snap["estimated_startup_cost"] == 1.09
        assert snap["actual_time_last"] == 0.060
        assert snap["actual_loops"] == 1
        assert snap["is_analyzed"] is True

    def test_recurses_into_every_slot(self) -> None:
        snap = load_plan("cte_analyze.txt").snapshot()

        assert list(snap["ctes"]) == ["test"]
        assert snap["ctes"]["test"]["actual_time_last"] == 999.512
        assert len(snap["sub_nodes"]) == 2
        assert "initplans" not in snap
        assert "subplans" not in snap

        initplan_snap = load_plan("initplan_analyze.txt").snapshot()
        assert initplan_snap["initplans"][0]["type"] == "Result"

    def test_never_executed_fields(self) -> None:
        snap = load_plan("never_executed.txt").snapshot()
        skipped = snap["sub_nodes"][1]

        assert skipped["never_executed"] is True
        assert skipped["actual_loops"] == 0
        assert "actual_time_last" not in skipped
        assert skipped["is_analyzed"] is True
        assert skipped["extra_info"] == ["Filter: (id = a.id)"]

    def test_key_order(self) -> None:
        snap = load_plan("join_analyze.txt").snapshot()

        keys = list(snap)
        assert keys[0] == "type"
        assert keys.index("estimated_total_cost") < keys.index("actual_time_first")
        assert keys.index("is_analyzed") < keys.index("sub_nodes")

    def test_idempotent(self) -> None:
        plan = load_plan("cte_analyze.txt")

        assert plan.snapshot() == plan.snapshot()

    def test_json_serializable(self) -> None:
        snap = load_plan("join_analyze.txt").snapshot()

        assert json.loads(json.dumps(snap)) == snap
