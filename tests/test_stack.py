"""Tests for the depth stack used by the text assembler."""

from __future__ import annotations

import pytest

from pgexplain.parser.models import PlanNode
from pgexplain.parser.stack import Context, ContextKind, DepthStack


def make_node(node_type: str = "Result") -> PlanNode:
    return PlanNode(
        type=node_type,
        estimated_startup_cost=0.0,
        estimated_total_cost=1.0,
        estimated_rows=1,
        estimated_row_width=4,
    )


@pytest.fixture
def stack() -> DepthStack:
    """Contexts open at depths 0, 6 and 12."""
    stack = DepthStack()
    stack.push(0, Context(make_node("Limit"), ContextKind.PLAN_CHILD, level=1))
    stack.push(6, Context(make_node("Sort"), ContextKind.PLAN_CHILD, level=2))
    stack.push(12, Context(make_node("Seq Scan"), ContextKind.PLAN_CHILD, level=3))
    return stack


class TestDepthStack:

    def test_new_stack_is_empty(self) -> None:
        stack = DepthStack()

        assert stack.is_empty()
        assert len(stack) == 0
        assert stack.deepest() is None
        assert stack.nearest_below(10) is None

    def test_deepest(self, stack: DepthStack) -> None:
        found = stack.deepest()

        assert found is not None
        depth, context = found
        assert depth == 12
        assert context.node is not None
        assert context.node.type == "Seq Scan"

    def test_prune_from_closes_same_and_deeper(self, stack: DepthStack) -> None:
        stack.prune_from(6)

        assert len(stack) == 1
        found = stack.deepest()
        assert found is not None
        assert found[0] == 0

    def test_prune_from_between_keys(self, stack: DepthStack) -> None:
        stack.prune_from(8)

        found = stack.deepest()
        assert found is not None
        assert found[0] == 6

    def test_nearest_below_is_strict(self, stack: DepthStack) -> None:
        """A context at the same depth never counts as 'below'."""
        found = stack.nearest_below(12)

        assert found is not None
        assert found[0] == 6

    def test_nearest_below_nothing_shallower(self, stack: DepthStack) -> None:
        assert stack.nearest_below(0) is None

    def test_remove(self, stack: DepthStack) -> None:
        stack.remove(6)
        stack.remove(99)  # no-op

        assert len(stack) == 2
        assert stack.nearest_below(12)[0] == 0

    def test_push_replaces_same_depth(self, stack: DepthStack) -> None:
        stack.push(12, Context(make_node("Hash"), ContextKind.PLAN_CHILD, level=3))

        assert len(stack) == 3
        assert stack.deepest()[1].node.type == "Hash"


class TestContext:

    def test_cte_context_requires_name(self) -> None:
        with pytest.raises(ValueError):
            Context(make_node(), ContextKind.CTE)

    def test_name_only_for_cte_contexts(self) -> None:
        with pytest.raises(ValueError):
            Context(make_node(), ContextKind.SUB_PLAN, cte_name="x")

    def test_marker_without_node(self) -> None:
        context = Context(None, ContextKind.INIT_PLAN)
        assert context.node is None
        assert context.level == 0
