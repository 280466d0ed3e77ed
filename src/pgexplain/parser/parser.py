"""
Entry points for parsing PostgreSQL EXPLAIN output.

This module handles:
- Enforcing the (source | source_file) construction contract
- Loading the source from a file, with a size limit
- Detecting whether the input is text or JSON format
- Dispatching to the text or JSON tree builder
- Detecting whether ANALYZE data is present

Error handling philosophy: Fail fast with clear messages. If we can't parse
the input, tell the user exactly what's wrong rather than returning garbage.
Individual lines that don't fit the text grammar are the one exception:
they are discarded and reported on ExplainOutput.discarded_lines.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pgexplain.exceptions import ParseError, SourceReadError, UsageError
from pgexplain.parser.config import ParserConfig, get_config
from pgexplain.parser.from_json import JSONPlanParser
from pgexplain.parser.from_text import TextPlanParser
from pgexplain.parser.models import ExplainOutput

logger = logging.getLogger(__name__)


def parse_explain(
    source: str | dict[str, Any] | list[Any] | None = None,
    *,
    source_file: str | Path | None = None,
    config: ParserConfig | None = None,
) -> ExplainOutput:
    """
    Parse PostgreSQL EXPLAIN output into a PlanNode tree.

    Exactly one of `source` and `source_file` must be given.

    Accepted sources:
    - Text EXPLAIN / EXPLAIN ANALYZE output (str)
    - EXPLAIN (FORMAT JSON) output as a string, or already decoded (dict/list)
    - A file containing either of the above (source_file)

    Args:
        source: EXPLAIN output in any of the supported in-memory forms
        source_file: Path to a file holding EXPLAIN output
        config: Parser configuration with resource limits. If None,
            uses get_config() (environment / PGEXPLAIN_CONFIG_FILE).

    Returns:
        ExplainOutput: Root node plus timing info and discarded lines

    Raises:
        UsageError: Neither or both of source/source_file given
        SourceReadError: source_file is missing or unreadable
        StructuralError: A plan node could not be placed in the tree
        ParseError: Input cannot be parsed or exceeds limits

    Example:
        >>> output = parse_explain("Seq Scan on tenk1  (cost=0.00..333.00 rows=10000 width=148)")
        >>> output.plan.type
        'Seq Scan'
        >>> output = parse_explain(source_file="plan.txt")
    """
    if source is None and source_file is None:
        raise UsageError("One of (source, source_file) has to be provided")
    if source is not None and source_file is not None:
        raise UsageError("Only one of (source, source_file) can be provided")

    config = config or get_config()

    if source_file is not None:
        source = _read_source_file(Path(source_file), config)

    if isinstance(source, (dict, list)):
        return JSONPlanParser(config).parse(source)

    if not isinstance(source, str):
        raise UsageError(
            f"Unsupported source type: {type(source).__name__} "
            "(expected str, dict or list; pass file paths as source_file)"
        )

    stripped = source.strip()
    if stripped.startswith(("{", "[")):
        logger.debug("Source looks like JSON, using the JSON parser")
        return JSONPlanParser(config).parse(_parse_json_string(stripped))

    block = _extract_json_block(source)
    if block is not None:
        logger.debug("Found a JSON plan inside surrounding text, using the JSON parser")
        return JSONPlanParser(config).parse(_parse_json_string(block))

    return TextPlanParser(config).parse(source)


def parse_explain_file(path: str | Path, config: ParserConfig | None = None) -> ExplainOutput:
    """
    Parse EXPLAIN output from a file.

    Convenience wrapper around parse_explain(source_file=...).
    """
    return parse_explain(source_file=path, config=config)


def _read_source_file(path: Path, config: ParserConfig) -> str:
    """Read a source file after checking it exists and fits the size limit."""
    if not path.exists():
        raise SourceReadError(f"File not found: {path}", str(path))

    if not path.is_file():
        raise SourceReadError(f"Path is not a file: {path}", str(path))

    size_mb = path.stat().st_size / (1024 * 1024)
    if size_mb > config.max_file_size_mb:
        raise ParseError(
            f"File too large: {size_mb:.1f}MB (max {config.max_file_size_mb}MB)",
            detail="Use a smaller EXPLAIN output or increase max_file_size_mb in config",
            source="resource_limit",
        )

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceReadError(f"Cannot read file: {path}", str(path), detail=str(e)) from e

    if not content.strip():
        raise ParseError(f"File is empty: {path}", source="file_read")

    return content


def _extract_json_block(source: str) -> str | None:
    """
    Pull a JSON plan out of surrounding text, e.g. psql output:

         QUERY PLAN
        ------------
         [
           { "Plan": { ... } }
         ]
        (1 row)

    The block runs from the first line starting with "[" to the first "]"
    line with the same indentation. Returns None if there is no such block.
    """
    lines = source.splitlines()
    for start, line in enumerate(lines):
        if not line.strip().startswith("["):
            continue
        indent = line[: len(line) - len(line.lstrip())]
        for end in range(start + 1, len(lines)):
            closing = lines[end]
            if closing.startswith(indent) and closing[len(indent):].startswith("]"):
                return "\n".join(lines[start : end + 1])
        return None
    return None


def _parse_json_string(content: str) -> dict[str, Any] | list[Any]:
    """Parse a JSON string."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(
            "Invalid JSON format",
            detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
            source="json_decode",
        ) from e

    if not isinstance(data, (dict, list)):
        raise ParseError(
            f"Expected JSON object or array, got {type(data).__name__}",
            source="json_decode",
        )

    return data


def validate_has_analyze(output: ExplainOutput) -> None:
    """
    Verify that EXPLAIN ANALYZE data is present.

    Raises ParseError if only EXPLAIN (not ANALYZE) was run.
    Call this when your analysis requires actual execution data.

    Args:
        output: Parsed EXPLAIN output

    Raises:
        ParseError: If ANALYZE data is missing
    """
    if not output.has_analyze_data:
        raise ParseError(
            "Missing EXPLAIN ANALYZE data",
            detail=(
                "This looks like plain EXPLAIN output without ANALYZE.\n"
                "For timing metrics, run: EXPLAIN ANALYZE <your query>\n"
                "Note: ANALYZE actually executes the query, so be careful with mutations."
            ),
            source="validation",
        )
