"""EXPLAIN output parsing module (text and JSON formats)."""

from pgexplain.exceptions import ParseError, SourceReadError, StructuralError, UsageError
from pgexplain.parser.config import DEFAULT_CONFIG, STRICT_CONFIG, ParserConfig
from pgexplain.parser.models import ExplainOutput, PlanNode, ScanTarget
from pgexplain.parser.parser import parse_explain, parse_explain_file

__all__ = [
    "ExplainOutput",
    "PlanNode",
    "ScanTarget",
    "parse_explain",
    "parse_explain_file",
    "ParseError",
    "SourceReadError",
    "StructuralError",
    "UsageError",
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
]
