"""
Pydantic models for a parsed PostgreSQL query plan.

The structure is:
- ExplainOutput: Top-level wrapper containing the plan and timing info
- PlanNode: Recursive structure representing each node in the query plan tree
- ScanTarget: Table / index a scan node reads

Both the text parser and the JSON parser produce these same models, so
consumers never need to know which EXPLAIN format the plan came from.

Reference: https://www.postgresql.org/docs/current/using-explain.html
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pgexplain import metrics
from pgexplain.exceptions import StructuralError

# Scan headers carry their target in the type text, e.g.
# "Index Scan Backward using users_pkey on users u"
_TABLE_SCAN_RE = re.compile(
    r"\A(Seq\sScan|Bitmap\s+Heap\s+Scan)\son\s(\S+)(?:\s+(\S+))?\Z"
)
_BITMAP_INDEX_SCAN_RE = re.compile(r"\A(Bitmap\s+Index\s+Scan)\son\s(\S+)\Z")
_INDEX_SCAN_RE = re.compile(
    r"\A(Index\sScan(?:\sBackward)?)\susing\s(\S+)\son\s(\S+)(?:\s+(\S+))?\Z"
)

_ACTUAL_FIELDS = ("actual_time_first", "actual_time_last", "actual_rows", "actual_loops")


class ScanTarget(BaseModel):
    """What a scan node reads: a table (optionally aliased) and/or an index."""

    model_config = ConfigDict(frozen=True)

    table_name: str | None = None
    table_alias: str | None = None
    index_name: str | None = None


def split_scan_type(raw_type: str) -> tuple[str, ScanTarget | None]:
    """
    Split a raw header type into the bare scan keyword and its target.

    >>> split_scan_type("Seq Scan on tenk1")
    ('Seq Scan', ScanTarget(table_name='tenk1', table_alias=None, index_name=None))
    >>> split_scan_type("Hash Join")
    ('Hash Join', None)
    """
    match = _TABLE_SCAN_RE.match(raw_type)
    if match:
        return match.group(1), ScanTarget(
            table_name=match.group(2),
            table_alias=match.group(3),
        )

    match = _BITMAP_INDEX_SCAN_RE.match(raw_type)
    if match:
        return match.group(1), ScanTarget(index_name=match.group(2))

    match = _INDEX_SCAN_RE.match(raw_type)
    if match:
        return match.group(1), ScanTarget(
            index_name=match.group(2),
            table_name=match.group(3),
            table_alias=match.group(4),
        )

    return raw_type, None


class PlanNode(BaseModel):
    """
    Represents a single node in the PostgreSQL query execution plan.

    This is a recursive structure. Children live in four separate slots,
    because PostgreSQL charges their time differently:
    - sub_nodes: ordinary data sources (join inputs, the scan under a Sort)
    - initplans: evaluated once before the node runs
    - subplans: evaluated per outer row
    - ctes: CTE bodies, keyed by CTE name

    Fields are divided into:
    - Estimate fields: Present on all nodes
    - EXPLAIN ANALYZE fields: Only present when ANALYZE was used
    - Annotations: free-text lines printed under the node header

    Nodes are assembled by the parsers through the add_* methods and must be
    treated as read-only once parse_explain() returns.
    """

    model_config = ConfigDict(extra="forbid")

    # =========================================================================
    # Estimate fields (present on all nodes)
    # =========================================================================

    type: str = Field(
        ...,
        min_length=1,
        description="The type of plan node (e.g., 'Seq Scan', 'Nested Loop')",
    )

    estimated_startup_cost: float = Field(
        ...,
        ge=0,
        description="Estimated cost to return the first row",
    )

    estimated_total_cost: float = Field(
        ...,
        ge=0,
        description="Estimated cost to return all rows",
    )

    estimated_rows: int = Field(
        ...,
        ge=0,
        description="Estimated number of rows to be returned",
    )

    estimated_row_width: int = Field(
        ...,
        ge=0,
        description="Estimated average width of rows in bytes",
    )

    # =========================================================================
    # EXPLAIN ANALYZE fields (only present with ANALYZE option)
    # =========================================================================

    actual_time_first: float | None = Field(
        default=None,
        description="Actual time in ms to return first row (per loop)",
    )

    actual_time_last: float | None = Field(
        default=None,
        description="Actual time in ms to return all rows (per loop)",
    )

    actual_rows: int | None = Field(
        default=None,
        ge=0,
        description="Actual number of rows returned (per loop)",
    )

    actual_loops: int | None = Field(
        default=None,
        ge=0,
        description="Number of times this node was executed",
    )

    never_executed: bool = Field(
        default=False,
        description="ANALYZE ran, but the executor never reached this node",
    )

    # =========================================================================
    # Annotations
    # =========================================================================

    scan_on: ScanTarget | None = Field(
        default=None,
        description="Table / index read by scan nodes",
    )

    extra_info: list[str] = Field(
        default_factory=list,
        description="Free-text lines printed under the node (Filter, Sort Key, ...)",
    )

    # =========================================================================
    # Child nodes
    # =========================================================================

    sub_nodes: list[PlanNode] = Field(default_factory=list)
    initplans: list[PlanNode] = Field(default_factory=list)
    subplans: list[PlanNode] = Field(default_factory=list)
    ctes: dict[str, PlanNode] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _build_canonical_fields(cls, data: Any) -> Any:
        """Derive scan_on from the raw type and apply the never-executed rule."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        raw_type = data.get("type")
        if isinstance(raw_type, str) and data.get("scan_on") is None:
            data["type"], data["scan_on"] = split_scan_type(raw_type)

        if data.get("never_executed"):
            data["actual_loops"] = 0
            data["actual_time_first"] = None
            data["actual_time_last"] = None
            data["actual_rows"] = None

        return data

    @model_validator(mode="after")
    def _check_actual_fields(self) -> PlanNode:
        if self.never_executed:
            return self
        defined = [name for name in _ACTUAL_FIELDS if getattr(self, name) is not None]
        if defined and len(defined) != len(_ACTUAL_FIELDS):
            missing = sorted(set(_ACTUAL_FIELDS) - set(defined))
            raise ValueError(
                f"Partial ANALYZE data: {', '.join(defined)} set but {', '.join(missing)} missing"
            )
        return self

    # =========================================================================
    # Assembly (used by the parsers only)
    # =========================================================================

    def add_sub_node(self, node: PlanNode) -> None:
        """Add a data source, e.g. one side of a join."""
        self.sub_nodes.append(node)

    def add_initplan(self, node: PlanNode) -> None:
        """
        Add an initplan, run once before this node.

         Result  (cost=0.01..0.02 rows=1 width=0)
           InitPlan 1 (returns $0)
             ->  Result  (cost=0.00..0.01 rows=1 width=0)
        """
        self.initplans.append(node)

    def add_subplan(self, node: PlanNode) -> None:
        """
        Add a subplan, run once per row of this node.

         Seq Scan on pg_class c  (cost=0.00..1885.60 rows=227 width=200)
           SubPlan 1
             ->  Index Scan using pg_class_relname_nsp_index on pg_class c2  (...)
        """
        self.subplans.append(node)

    def add_cte(self, name: str, node: PlanNode) -> None:
        """Add the body of CTE `name`. Each name has exactly one body."""
        if name in self.ctes:
            raise StructuralError(f"CTE '{name}' defined twice under '{self.type}'")
        self.ctes[name] = node

    def add_extra_info(self, info: str) -> None:
        """Add an annotation line (leading/trailing whitespace already removed)."""
        self.extra_info.append(info)

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def is_scan_node(self) -> bool:
        """Check if this is a table/index scan node."""
        return self.scan_on is not None

    @property
    def is_analyzed(self) -> bool:
        """Check if EXPLAIN ANALYZE data is present."""
        return metrics.is_analyzed(self)

    @property
    def total_inclusive_time(self) -> float | None:
        """Time in ms including all loops and all children. None without ANALYZE."""
        return metrics.total_inclusive_time(self)

    @property
    def total_exclusive_time(self) -> float | None:
        """Time in ms spent in this node only. None without ANALYZE."""
        return metrics.total_exclusive_time(self)

    def iter_nodes(self) -> list[PlanNode]:
        """
        All nodes in the plan tree (depth-first), CTE bodies included.

        Useful for finding all nodes of a certain type or property.
        """
        return list(metrics.iter_nodes(self))

    def snapshot(self) -> dict[str, Any]:
        """Plain nested dict of this subtree; see metrics.snapshot()."""
        return metrics.snapshot(self)


class ExplainOutput(BaseModel):
    """
    Top-level result of parsing one EXPLAIN output.

    Usage:
        output = parse_explain(source=text)

        for node in output.all_nodes:
            if node.type == "Seq Scan":
                print(f"Sequential scan on {node.scan_on.table_name}")
    """

    plan: PlanNode = Field(
        ...,
        description="Root node of the execution plan tree",
    )

    source_format: Literal["text", "json"] = Field(
        ...,
        description="Which EXPLAIN format the plan was parsed from",
    )

    planning_time: float | None = Field(
        default=None,
        description="Time spent planning the query in milliseconds",
    )

    execution_time: float | None = Field(
        default=None,
        description="Total execution time in milliseconds (ANALYZE only)",
    )

    discarded_lines: list[str] = Field(
        default_factory=list,
        description="Non-blank text lines the parser could not attach to any node",
    )

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def has_analyze_data(self) -> bool:
        """Check if EXPLAIN ANALYZE data is present."""
        return self.plan.is_analyzed

    @property
    def all_nodes(self) -> list[PlanNode]:
        """Get all nodes in the plan tree as a flat list."""
        return self.plan.iter_nodes()

    def find_nodes_by_type(self, node_type: str) -> list[PlanNode]:
        """Find all nodes of a specific type."""
        return [n for n in self.all_nodes if n.type == node_type]

    def find_slow_nodes(self, threshold_ms: float = 100.0) -> list[PlanNode]:
        """
        Find nodes whose exclusive time exceeds the threshold.

        Only works with ANALYZE data. Returns empty list without it.
        """
        return [
            n for n in self.all_nodes
            if n.total_exclusive_time is not None and n.total_exclusive_time > threshold_ms
        ]

    def snapshot(self) -> dict[str, Any]:
        """Plain nested dict of the whole plan."""
        return self.plan.snapshot()
