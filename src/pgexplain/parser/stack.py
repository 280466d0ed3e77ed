"""
Depth stack used while assembling a text plan.

Maps an integer depth (the prefix length of the line that opened it) to an
open Context: a node plus the kind of child that node is currently
accepting. Lives for exactly one parse call and is never shared.

The stack only exposes the handful of operations the assembler needs;
callers never iterate over it directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pgexplain.parser.models import PlanNode


@unique
class ContextKind(str, Enum):
    """Which child slot of the context's node the next node header fills."""

    PLAN_CHILD = "plan_child"
    INIT_PLAN = "init_plan"
    SUB_PLAN = "sub_plan"
    CTE = "cte"


@dataclass(frozen=True)
class Context:
    """
    An open attachment point.

    Attributes:
        node: Node that receives the next child. None when a marker line
            appeared with no node above it; attaching there is an error.
        kind: Slot the next child goes into.
        cte_name: Name of the CTE being defined (CTE contexts only).
        level: Tree depth of `node` (root is 1, 0 when node is None).
    """

    node: PlanNode | None
    kind: ContextKind
    cte_name: str | None = None
    level: int = 0

    def __post_init__(self) -> None:
        if (self.kind is ContextKind.CTE) != (self.cte_name is not None):
            raise ValueError("cte_name must be set for CTE contexts and only for them")


class DepthStack:
    """Open contexts keyed by depth."""

    def __init__(self) -> None:
        self._contexts: dict[int, Context] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def is_empty(self) -> bool:
        return not self._contexts

    def push(self, depth: int, context: Context) -> None:
        """Open `context` at `depth`, replacing whatever was there."""
        self._contexts[depth] = context

    def remove(self, depth: int) -> None:
        """Close the context at `depth` (no-op if none is open there)."""
        self._contexts.pop(depth, None)

    def prune_from(self, depth: int) -> None:
        """Close every context opened at `depth` or deeper."""
        for key in [key for key in self._contexts if key >= depth]:
            del self._contexts[key]

    def deepest(self) -> tuple[int, Context] | None:
        """Deepest open context, or None when the stack is empty."""
        if not self._contexts:
            return None
        key = max(self._contexts)
        return key, self._contexts[key]

    def nearest_below(self, depth: int) -> tuple[int, Context] | None:
        """Deepest context opened strictly shallower than `depth`."""
        keys = [key for key in self._contexts if key < depth]
        if not keys:
            return None
        key = max(keys)
        return key, self._contexts[key]
