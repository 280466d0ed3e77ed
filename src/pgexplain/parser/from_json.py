"""
Builder for EXPLAIN (FORMAT JSON) output.

JSON plans spell out their nesting, so this is a direct structural walk:
each object in "Plans" becomes a child, and its "Parent Relationship" /
"Subplan Name" decide which slot it goes into. The result uses the same
PlanNode model as the text parser.

EXPLAIN (FORMAT JSON) returns: [{"Plan": {...}, "Planning Time": ...}]
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pgexplain.exceptions import ParseError, StructuralError
from pgexplain.parser.config import DEFAULT_CONFIG, ParserConfig
from pgexplain.parser.models import ExplainOutput, PlanNode, ScanTarget

logger = logging.getLogger(__name__)

# JSON key -> PlanNode field
FIELD_MAP: dict[str, str] = {
    "Node Type": "type",
    "Startup Cost": "estimated_startup_cost",
    "Total Cost": "estimated_total_cost",
    "Plan Rows": "estimated_rows",
    "Plan Width": "estimated_row_width",
    "Actual Startup Time": "actual_time_first",
    "Actual Total Time": "actual_time_last",
    "Actual Rows": "actual_rows",
    "Actual Loops": "actual_loops",
}

_REVERSE_FIELD_MAP = {field: key for key, field in FIELD_MAP.items()}

# Keys consumed structurally; never copied into extra_info
_STRUCTURAL_KEYS = frozenset(
    {"Plans", "Parent Relationship", "Subplan Name", "Relation Name", "Alias", "Index Name"}
)


class JSONPlanParser:
    """Builds a PlanNode tree from decoded EXPLAIN JSON."""

    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def parse(self, data: dict[str, Any] | list[Any]) -> ExplainOutput:
        """
        Convert decoded EXPLAIN JSON into an ExplainOutput.

        Raises:
            ParseError: Wrong top-level shape, invalid node, or a resource
                limit was hit.
        """
        if isinstance(data, list):
            # EXPLAIN emits one element per statement; only single plans are supported
            if len(data) != 1:
                raise ParseError(
                    f"Expected a single-element array, got {len(data)} elements",
                    detail="EXPLAIN (FORMAT JSON) output for one statement is [{\"Plan\": ...}]",
                    source="structure",
                )
            data = data[0]

        if not isinstance(data, dict):
            raise ParseError(
                f"Expected a plan object, got {type(data).__name__}",
                source="structure",
            )

        plan = data.get("Plan")
        if not isinstance(plan, dict):
            raise ParseError(
                "Missing 'Plan' field - this doesn't look like EXPLAIN output",
                detail="EXPLAIN (FORMAT JSON) output must contain a 'Plan' object",
                source="validation",
            )

        counter = [0]
        root = self._build_node(plan, level=1, path="Plan", counter=counter)
        logger.debug("Parsed JSON plan: %d nodes", counter[0])

        return ExplainOutput(
            plan=root,
            source_format="json",
            planning_time=_optional_ms(data.get("Planning Time")),
            execution_time=_optional_ms(
                data.get("Execution Time", data.get("Total Runtime"))
            ),
        )

    def _build_node(
        self,
        raw: dict[str, Any],
        *,
        level: int,
        path: str,
        counter: list[int],
    ) -> PlanNode:
        if level > self.config.max_depth:
            raise ParseError(
                f"Plan too deeply nested: depth {level} (max {self.config.max_depth})",
                detail="This may indicate a pathological query or corrupted EXPLAIN output",
                source="resource_limit",
            )

        counter[0] += 1
        if counter[0] > self.config.max_nodes:
            raise ParseError(
                f"Plan too large: more than {self.config.max_nodes:,} nodes",
                detail="Consider analyzing a simpler query or increasing max_nodes in config",
                source="resource_limit",
            )

        fields: dict[str, Any] = {
            field: raw[key] for key, field in FIELD_MAP.items() if key in raw
        }
        # Text output folds the direction into the type: "Index Scan Backward"
        if fields.get("type") == "Index Scan" and raw.get("Scan Direction") == "Backward":
            fields["type"] = "Index Scan Backward"
        if raw.get("Actual Loops") == 0:
            fields["never_executed"] = True

        fields["scan_on"] = _scan_target(raw)
        fields["extra_info"] = [
            _format_extra(key, value)
            for key, value in raw.items()
            if key not in FIELD_MAP and key not in _STRUCTURAL_KEYS and _is_plain(value)
        ]

        try:
            node = PlanNode(**fields)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = " -> ".join(
                    _REVERSE_FIELD_MAP.get(str(x), str(x)) for x in error["loc"]
                )
                errors.append(f"  {path} -> {loc}: {error['msg']}" if loc else f"  {path}: {error['msg']}")
            raise ParseError(
                "EXPLAIN output validation failed",
                detail="\n".join(errors),
                source="validation",
            ) from e

        children = raw.get("Plans", [])
        if not isinstance(children, list):
            raise ParseError(
                f"Expected 'Plans' to be an array at {path}",
                source="validation",
            )

        for index, child in enumerate(children):
            child_path = f"{path} -> Plans[{index}]"
            if not isinstance(child, dict):
                raise ParseError(
                    f"Expected object at {child_path}, got {type(child).__name__}",
                    source="validation",
                )
            child_node = self._build_node(child, level=level + 1, path=child_path, counter=counter)
            try:
                _attach(node, child, child_node, child_path)
            except StructuralError as e:
                raise StructuralError(f"{e.message} at {child_path}") from e

        return node


def _attach(parent: PlanNode, raw_child: dict[str, Any], child: PlanNode, path: str) -> None:
    relationship = raw_child.get("Parent Relationship")
    subplan_name = raw_child.get("Subplan Name") or ""
    if not isinstance(subplan_name, str):
        raise ParseError(
            f"Expected 'Subplan Name' to be a string at {path}, "
            f"got {type(subplan_name).__name__}",
            source="validation",
        )

    if relationship == "InitPlan" and subplan_name.startswith("CTE "):
        parent.add_cte(subplan_name[len("CTE "):].strip(), child)
    elif relationship == "InitPlan":
        parent.add_initplan(child)
    elif relationship == "SubPlan":
        parent.add_subplan(child)
    else:
        parent.add_sub_node(child)


def _scan_target(raw: dict[str, Any]) -> ScanTarget | None:
    table = raw.get("Relation Name")
    index = raw.get("Index Name")
    if table is None and index is None:
        return None
    alias = raw.get("Alias")
    # JSON always reports an alias; text output omits it when it equals the table
    if alias == table:
        alias = None
    return ScanTarget(
        table_name=table,
        table_alias=alias if table is not None else None,
        index_name=index,
    )


def _is_plain(value: Any) -> bool:
    if isinstance(value, (str, int, float, bool)):
        return True
    return isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value)


def _format_extra(key: str, value: Any) -> str:
    if isinstance(value, list):
        return f"{key}: {', '.join(str(v) for v in value)}"
    if isinstance(value, bool):
        return f"{key}: {'true' if value else 'false'}"
    return f"{key}: {value}"


def _optional_ms(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None

