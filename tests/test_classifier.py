"""
Tests for the text EXPLAIN line classifier.

Each test feeds one line and checks the tagged outcome, with special care
for the depth key: arrow-inclusive for node headers, whitespace-only for
everything else.
"""

from __future__ import annotations

import pytest

from pgexplain.parser.classifier import (
    CteMarker,
    ExtraInfo,
    Ignore,
    NodeHeader,
    StructureMarker,
    classify_line,
)
from pgexplain.parser.stack import ContextKind


# =============================================================================
# Node headers
# =============================================================================

class TestNodeHeader:
    """Lines carrying a (cost=...) group."""

    def test_plain_explain_header(self) -> None:
        """Estimates only, no prefix."""
        result = classify_line("Seq Scan on tenk1  (cost=0.00..333.00 rows=10000 width=148)")

        assert isinstance(result, NodeHeader)
        assert result.depth == 0
        assert result.type == "Seq Scan on tenk1"
        assert result.startup_cost == 0.0
        assert result.total_cost == 333.0
        assert result.rows == 10000
        assert result.width == 148
        assert result.actual_loops is None
        assert result.actual_time_last is None
        assert not result.never_executed

    def test_analyze_header(self) -> None:
        """Actual statistics are captured."""
        result = classify_line(
            " Sort  (cost=1.10..1.11 rows=4 width=8) (actual time=0.020..0.021 rows=4 loops=3)"
        )

        assert isinstance(result, NodeHeader)
        assert result.depth == 1
        assert result.type == "Sort"
        assert result.actual_time_first == 0.020
        assert result.actual_time_last == 0.021
        assert result.actual_rows == 4
        assert result.actual_loops == 3

    def test_arrow_counts_toward_depth(self) -> None:
        """The "->" marker and the spaces around it are part of the prefix."""
        result = classify_line("   ->  Hash  (cost=1.04..1.04 rows=4 width=36)")

        assert isinstance(result, NodeHeader)
        assert result.depth == len("   ->  ")
        assert result.type == "Hash"

    def test_never_executed(self) -> None:
        """(never executed) replaces the actual statistics group."""
        result = classify_line(
            "   ->  Seq Scan on b  (cost=0.00..29.20 rows=1 width=4) (never executed)"
        )

        assert isinstance(result, NodeHeader)
        assert result.never_executed
        assert result.actual_loops is None
        assert result.actual_time_first is None

    def test_node_fields_feed_plan_node(self) -> None:
        """node_fields() uses PlanNode field names."""
        result = classify_line("Limit  (cost=0.00..0.01 rows=1 width=4)")

        assert isinstance(result, NodeHeader)
        fields = result.node_fields()
        assert fields["type"] == "Limit"
        assert fields["estimated_total_cost"] == 0.01
        assert fields["estimated_row_width"] == 4

    def test_trailing_quote_stripped(self) -> None:
        """A stray trailing double quote does not stop the header matching."""
        result = classify_line('Result  (cost=0.00..0.01 rows=1 width=0)"')

        assert isinstance(result, NodeHeader)
        assert result.type == "Result"

    def test_trailing_whitespace_allowed(self) -> None:
        result = classify_line("Result  (cost=0.00..0.01 rows=1 width=0)   ")
        assert isinstance(result, NodeHeader)

    def test_integer_cost_is_not_a_header(self) -> None:
        """Costs always carry two decimals; anything else is free text."""
        result = classify_line("Result  (cost=0..1 rows=1 width=0)")
        assert isinstance(result, ExtraInfo)


# =============================================================================
# Markers
# =============================================================================

class TestStructureMarkers:
    """InitPlan / SubPlan / CTE lines."""

    @pytest.mark.parametrize(
        "line, kind",
        [
            ("  InitPlan", ContextKind.INIT_PLAN),
            ("  InitPlan 1 (returns $0)", ContextKind.INIT_PLAN),
            ("  SubPlan", ContextKind.SUB_PLAN),
            ("  SubPlan 2", ContextKind.SUB_PLAN),
            ("  SubPlan 3 (returns $2,$3)", ContextKind.SUB_PLAN),
        ],
    )
    def test_marker_variants(self, line: str, kind: ContextKind) -> None:
        result = classify_line(line)

        assert isinstance(result, StructureMarker)
        assert result.kind is kind
        assert result.depth == 2

    def test_cte_marker(self) -> None:
        result = classify_line("   CTE recent_orders")

        assert isinstance(result, CteMarker)
        assert result.name == "recent_orders"
        assert result.depth == 3

    def test_marker_with_trailing_text_is_info(self) -> None:
        """Only the exact marker grammar counts; anything else is an info line."""
        result = classify_line("  SubPlan for something")
        assert isinstance(result, ExtraInfo)


# =============================================================================
# Info and ignored lines
# =============================================================================

class TestExtraInfoAndIgnore:

    def test_info_line_is_trimmed(self) -> None:
        result = classify_line("        Filter: (id > 10)   ")

        assert isinstance(result, ExtraInfo)
        assert result.text == "Filter: (id > 10)"
        assert result.depth == 8

    def test_single_character_info(self) -> None:
        result = classify_line("    x")

        assert isinstance(result, ExtraInfo)
        assert result.text == "x"

    @pytest.mark.parametrize("line", ["", "   ", "\t"])
    def test_blank_lines_ignored(self, line: str) -> None:
        assert isinstance(classify_line(line), Ignore)
