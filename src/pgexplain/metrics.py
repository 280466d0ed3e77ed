"""
Timing metrics computed over a parsed plan tree.

All functions here are pure: they read a finished tree and never mutate it,
so a tree can be shared between threads once parsing returns.

Terminology:
- Inclusive time: everything attributable to a node across all its loops,
  including the children it pulls rows from.
- Exclusive time: inclusive time minus the inclusive time of the direct
  sub nodes, initplans and subplans. CTE bodies are NOT subtracted; their
  cost stays folded into the node that first scans the CTE.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from pgexplain.parser.models import PlanNode


def total_inclusive_time(node: PlanNode) -> float | None:
    """
    Total time spent in node and everything below it, in milliseconds.

    actual_time_last is per-loop, so multiply by loops for the true total.
    Returns None when the plan was not produced by EXPLAIN ANALYZE.
    """
    if node.actual_loops is None or node.actual_time_last is None:
        return None
    return node.actual_loops * node.actual_time_last


def total_exclusive_time(node: PlanNode) -> float | None:
    """Time spent in this node alone, in milliseconds."""
    time = total_inclusive_time(node)
    if time is None:
        return None

    for child in _direct_children(node):
        time -= total_inclusive_time(child) or 0

    # Rounding in the per-loop figures can push this below zero when loops > 1
    if time < 0:
        return 0.0
    return time


def is_analyzed(node: PlanNode) -> bool:
    """True if the node carries actual execution statistics."""
    return node.actual_loops is not None or node.never_executed


def iter_nodes(node: PlanNode) -> Iterator[PlanNode]:
    """
    Walk the tree depth-first, including CTE bodies.

    Order: the node, its sub nodes, initplans, subplans, then CTE bodies in
    the order they were defined.
    """
    yield node
    for child in _direct_children(node):
        yield from iter_nodes(child)
    for body in node.ctes.values():
        yield from iter_nodes(body)


def snapshot(node: PlanNode) -> dict[str, Any]:
    """
    Plain, ordered dict view of a node and its subtree.

    Only fields that are defined appear, plus the computed is_analyzed flag.
    Integral numbers lose their spurious fractional part (333.00 -> 333).
    The result contains only dicts, lists, strings, numbers and bools, so it
    can be handed to json.dumps or yaml.safe_dump unchanged.
    """
    reply: dict[str, Any] = {"type": node.type}

    if node.scan_on is not None:
        reply["scan_on"] = node.scan_on.model_dump(exclude_none=True)

    reply["estimated_startup_cost"] = _plain_number(node.estimated_startup_cost)
    reply["estimated_total_cost"] = _plain_number(node.estimated_total_cost)
    reply["estimated_rows"] = node.estimated_rows
    reply["estimated_row_width"] = node.estimated_row_width

    if node.actual_time_first is not None:
        reply["actual_time_first"] = _plain_number(node.actual_time_first)
    if node.actual_time_last is not None:
        reply["actual_time_last"] = _plain_number(node.actual_time_last)
    if node.actual_rows is not None:
        reply["actual_rows"] = node.actual_rows
    if node.actual_loops is not None:
        reply["actual_loops"] = node.actual_loops
    if node.never_executed:
        reply["never_executed"] = True

    if node.extra_info:
        reply["extra_info"] = list(node.extra_info)

    reply["is_analyzed"] = is_analyzed(node)

    if node.sub_nodes:
        reply["sub_nodes"] = [snapshot(child) for child in node.sub_nodes]
    if node.initplans:
        reply["initplans"] = [snapshot(child) for child in node.initplans]
    if node.subplans:
        reply["subplans"] = [snapshot(child) for child in node.subplans]
    if node.ctes:
        reply["ctes"] = {name: snapshot(body) for name, body in node.ctes.items()}

    return reply


def _direct_children(node: PlanNode) -> Iterator[PlanNode]:
    yield from node.sub_nodes
    yield from node.initplans
    yield from node.subplans


def _plain_number(value: float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
