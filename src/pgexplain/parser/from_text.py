"""
Tree assembler for text-format EXPLAIN output.

Text plans have no explicit nesting delimiters. The only structural signal
is the depth of each line (see classifier.py), plus the InitPlan / SubPlan /
CTE marker lines that say which slot of a node the following node fills:

 Hash Join  (cost=...)                          depth 1   root
   Hash Cond: (o.user_id = u.id)                depth 3   info -> Hash Join
   ->  Seq Scan on orders o  (cost=...)         depth 7   sub node of Hash Join
         Filter: (total > 100)                  depth 9   info -> Seq Scan
   ->  Hash  (cost=...)                         depth 7   closes Seq Scan, sibling
         ->  Seq Scan on users u  (cost=...)    depth 13  sub node of Hash
   SubPlan 1                                    depth 3   closes both, marker
     ->  Index Scan using ... on items i  (...) depth 9   subplan of Hash Join

The assembler makes a single forward pass with no lookahead. A line at the
same or a shallower depth always closes the contexts opened at or below it.
"""

from __future__ import annotations

import logging
import re

from pgexplain.exceptions import ParseError, StructuralError
from pgexplain.parser.classifier import (
    CteMarker,
    ExtraInfo,
    Ignore,
    NodeHeader,
    StructureMarker,
    classify_line,
)
from pgexplain.parser.config import DEFAULT_CONFIG, ParserConfig
from pgexplain.parser.models import ExplainOutput, PlanNode
from pgexplain.parser.stack import Context, ContextKind, DepthStack

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"\r?\n")

# Summary lines printed after the plan; they sit at root depth so they are
# never attached to a node.
_TRAILER_RE = re.compile(
    r"\A\s*(?P<label>Planning [Tt]ime|Execution [Tt]ime|Total runtime):"
    r"\s*(?P<ms>\d+(?:\.\d+)?)\s*ms\s*\Z"
)


class TextPlanParser:
    """
    Builds a PlanNode tree from text EXPLAIN output.

    One instance can parse many sources; all per-parse state (the depth
    stack, node counter, discarded lines) is local to parse().
    """

    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def parse(self, source: str) -> ExplainOutput:
        """
        Parse a complete text plan.

        Raises:
            StructuralError: A node header has no context to attach to.
            ParseError: No node header found, or a resource limit was hit.
        """
        stack = DepthStack()
        root: PlanNode | None = None
        node_count = 0
        discarded: list[str] = []

        for line_number, line in enumerate(_LINE_SPLIT_RE.split(source), start=1):
            classified = classify_line(line)

            if isinstance(classified, NodeHeader):
                node = PlanNode(**classified.node_fields())
                node_count += 1
                if node_count > self.config.max_nodes:
                    raise ParseError(
                        f"Plan too large: more than {self.config.max_nodes:,} nodes",
                        detail="Consider analyzing a simpler query or increasing max_nodes in config",
                        source="resource_limit",
                    )

                if stack.is_empty():
                    root = node
                    stack.push(classified.depth, Context(node, ContextKind.PLAN_CHILD, level=1))
                    continue

                self._add_node(stack, classified.depth, node, line_number, line)

            elif isinstance(classified, StructureMarker):
                self._open_marker(stack, classified.depth, classified.kind)

            elif isinstance(classified, CteMarker):
                self._open_marker(stack, classified.depth, ContextKind.CTE, classified.name)

            elif isinstance(classified, ExtraInfo):
                found = stack.nearest_below(classified.depth)
                if found is None or found[1].node is None:
                    self._discard(line_number, classified.text, discarded)
                    continue
                found[1].node.add_extra_info(classified.text)

            elif isinstance(classified, Ignore):
                continue

        if root is None:
            raise ParseError(
                "No plan nodes found - this doesn't look like EXPLAIN output",
                detail="Expected at least one line like 'Seq Scan on t  (cost=0.00..1.00 rows=1 width=4)'",
                source="structure",
            )

        logger.debug(
            "Parsed text plan: %d nodes, %d discarded lines", node_count, len(discarded)
        )

        planning_time, execution_time = _extract_trailer_times(discarded)
        return ExplainOutput(
            plan=root,
            source_format="text",
            planning_time=planning_time,
            execution_time=execution_time,
            discarded_lines=discarded,
        )

    def _add_node(
        self,
        stack: DepthStack,
        depth: int,
        node: PlanNode,
        line_number: int,
        line: str,
    ) -> None:
        stack.prune_from(depth)
        found = stack.deepest()
        if found is None:
            raise StructuralError(
                "Plan node has no enclosing node",
                line_number=line_number,
                line=line,
            )

        parent_depth, parent = found
        if parent.node is None:
            raise StructuralError(
                f"Plan node follows a {parent.kind.value} marker that has no enclosing node",
                line_number=line_number,
                line=line,
            )

        level = parent.level + 1
        if level > self.config.max_depth:
            raise ParseError(
                f"Plan too deeply nested: depth {level} (max {self.config.max_depth})",
                detail="This may indicate a pathological query or corrupted EXPLAIN output",
                source="resource_limit",
            )

        stack.push(depth, Context(node, ContextKind.PLAN_CHILD, level=level))

        try:
            _attach(parent, node)
        except StructuralError as e:
            raise StructuralError(e.message, line_number=line_number, line=line) from e

        # A CTE context accepts exactly one body
        if parent.kind is ContextKind.CTE:
            stack.remove(parent_depth)

    def _open_marker(
        self,
        stack: DepthStack,
        depth: int,
        kind: ContextKind,
        cte_name: str | None = None,
    ) -> None:
        stack.prune_from(depth)
        found = stack.deepest()
        if found is None:
            # Tolerated until a node header tries to attach here
            context = Context(None, kind, cte_name=cte_name)
        else:
            parent = found[1]
            context = Context(parent.node, kind, cte_name=cte_name, level=parent.level)
        stack.push(depth, context)

    def _discard(self, line_number: int, text: str, discarded: list[str]) -> None:
        discarded.append(text)
        level = logging.WARNING if self.config.warn_on_discarded_lines else logging.DEBUG
        logger.log(level, "Discarding line %d with no enclosing node: %r", line_number, text)


def _attach(parent: Context, node: PlanNode) -> None:
    """Put node into the slot of parent.node selected by parent.kind."""
    target = parent.node
    if target is None:
        raise StructuralError(f"Cannot attach '{node.type}' to an empty context")

    if parent.kind is ContextKind.PLAN_CHILD:
        target.add_sub_node(node)
    elif parent.kind is ContextKind.INIT_PLAN:
        target.add_initplan(node)
    elif parent.kind is ContextKind.SUB_PLAN:
        target.add_subplan(node)
    elif parent.kind is ContextKind.CTE and parent.cte_name is not None:
        target.add_cte(parent.cte_name, node)
    else:
        raise StructuralError(f"Bad context kind {parent.kind!r} under '{target.type}'")


def _extract_trailer_times(lines: list[str]) -> tuple[float | None, float | None]:
    """Pull (planning_time, execution_time) out of discarded summary lines."""
    planning_time: float | None = None
    execution_time: float | None = None
    for line in lines:
        match = _TRAILER_RE.match(line)
        if not match:
            continue
        ms = float(match.group("ms"))
        if match.group("label").lower().startswith("planning"):
            planning_time = ms
        else:
            execution_time = ms
    return planning_time, execution_time

