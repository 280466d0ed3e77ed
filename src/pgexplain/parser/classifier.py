"""
Line classifier for text-format EXPLAIN output.

Every input line maps to exactly one outcome, tried in this order:

1. NodeHeader       "  ->  Hash Join  (cost=1.00..2.00 rows=10 width=8) (actual ...)"
2. StructureMarker  "  InitPlan 1 (returns $0)" / "  SubPlan 2"
3. CteMarker        "  CTE recent_orders"
4. ExtraInfo        "        Filter: (id > 10)"
5. Ignore           blank lines

Each outcome carries a depth: the character length of the line prefix. For
node headers the prefix includes the "->" arrow, for every other outcome it
is whitespace only. The arrow-inclusive length is the signal the tree
assembler nests on; raw indentation alone would misplace info lines and
markers relative to the nodes around them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from pgexplain.parser.stack import ContextKind

_NODE_HEADER_RE = re.compile(
    r"""
    \A
    (?P<prefix>\s*->\s*|\s*)
    (?P<type>\S.*?)
    \s+
    \(cost=(?P<startup_cost>\d+\.\d+)\.\.(?P<total_cost>\d+\.\d+)
    \s+rows=(?P<rows>\d+)
    \s+width=(?P<width>\d+)\)
    (?:
        \s+
        \(
            (?:
                actual\stime=(?P<time_first>\d+\.\d+)\.\.(?P<time_last>\d+\.\d+)
                \srows=(?P<actual_rows>\d+)
                \sloops=(?P<loops>\d+)
            |
                (?P<never_executed>never\s+executed)
            )
        \)
    )?
    \s*
    \Z
    """,
    re.VERBOSE,
)

_STRUCTURE_MARKER_RE = re.compile(
    r"\A(?P<prefix>\s*)(?P<kind>SubPlan|InitPlan)\s*(?:\d+\s*)?(?:\(returns.*\)\s*)?\Z"
)

_CTE_MARKER_RE = re.compile(r"\A(?P<prefix>\s*)CTE\s+(?P<name>\S+)\s*\Z")

_EXTRA_INFO_RE = re.compile(r"\A(?P<prefix>\s*)(?P<text>\S(?:.*\S)?)\s*\Z")

_MARKER_KINDS = {
    "InitPlan": ContextKind.INIT_PLAN,
    "SubPlan": ContextKind.SUB_PLAN,
}


@dataclass(frozen=True)
class NodeHeader:
    """A plan node line: type, estimates and (optionally) actual statistics."""

    depth: int
    type: str
    startup_cost: float
    total_cost: float
    rows: int
    width: int
    actual_time_first: float | None = None
    actual_time_last: float | None = None
    actual_rows: int | None = None
    actual_loops: int | None = None
    never_executed: bool = False

    def node_fields(self) -> dict[str, Any]:
        """Keyword arguments for PlanNode."""
        return {
            "type": self.type,
            "estimated_startup_cost": self.startup_cost,
            "estimated_total_cost": self.total_cost,
            "estimated_rows": self.rows,
            "estimated_row_width": self.width,
            "actual_time_first": self.actual_time_first,
            "actual_time_last": self.actual_time_last,
            "actual_rows": self.actual_rows,
            "actual_loops": self.actual_loops,
            "never_executed": self.never_executed,
        }


@dataclass(frozen=True)
class StructureMarker:
    """An "InitPlan" or "SubPlan" line; redirects where the next node attaches."""

    depth: int
    kind: ContextKind


@dataclass(frozen=True)
class CteMarker:
    """A "CTE name" line; the next node at a deeper depth is the CTE body."""

    depth: int
    name: str


@dataclass(frozen=True)
class ExtraInfo:
    """Free text (Filter, Sort Key, Buffers, ...) belonging to an open node."""

    depth: int
    text: str


@dataclass(frozen=True)
class Ignore:
    """A line with nothing to contribute (blank)."""

    line: str


ClassifiedLine = Union[NodeHeader, StructureMarker, CteMarker, ExtraInfo, Ignore]


def _optional_float(value: str | None) -> float | None:
    return float(value) if value is not None else None


def _optional_int(value: str | None) -> int | None:
    return int(value) if value is not None else None


def classify_line(line: str) -> ClassifiedLine:
    """
    Classify a single line of text EXPLAIN output.

    A trailing stray double quote (common when plans are copied out of
    spreadsheets or CSV exports) is removed first.
    """
    if line.endswith('"'):
        line = line[:-1]

    match = _NODE_HEADER_RE.match(line)
    if match:
        return NodeHeader(
            depth=len(match.group("prefix")),
            type=match.group("type"),
            startup_cost=float(match.group("startup_cost")),
            total_cost=float(match.group("total_cost")),
            rows=int(match.group("rows")),
            width=int(match.group("width")),
            actual_time_first=_optional_float(match.group("time_first")),
            actual_time_last=_optional_float(match.group("time_last")),
            actual_rows=_optional_int(match.group("actual_rows")),
            actual_loops=_optional_int(match.group("loops")),
            never_executed=match.group("never_executed") is not None,
        )

    match = _STRUCTURE_MARKER_RE.match(line)
    if match:
        return StructureMarker(
            depth=len(match.group("prefix")),
            kind=_MARKER_KINDS[match.group("kind")],
        )

    match = _CTE_MARKER_RE.match(line)
    if match:
        return CteMarker(depth=len(match.group("prefix")), name=match.group("name"))

    match = _EXTRA_INFO_RE.match(line)
    if match:
        return ExtraInfo(depth=len(match.group("prefix")), text=match.group("text"))

    return Ignore(line=line)
