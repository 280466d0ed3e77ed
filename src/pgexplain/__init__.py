"""pgexplain - PostgreSQL EXPLAIN output parser with per-node timing metrics."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from pgexplain.exceptions import (
    ExplainError,
    UsageError,
    ParseError,
    SourceReadError,
    StructuralError,
)

# Public API exports
from pgexplain.metrics import (
    is_analyzed,
    iter_nodes,
    snapshot,
    total_exclusive_time,
    total_inclusive_time,
)
from pgexplain.parser.config import (
    ParserConfig,
    get_config,
)
from pgexplain.parser.models import (
    ExplainOutput,
    PlanNode,
    ScanTarget,
)
from pgexplain.parser.parser import (
    parse_explain,
    parse_explain_file,
    validate_has_analyze,
)

__all__ = [
    # Exception hierarchy
    "ExplainError",
    "UsageError",
    "ParseError",
    "SourceReadError",
    "StructuralError",
    # Core
    "parse_explain",
    "parse_explain_file",
    "validate_has_analyze",
    # Models
    "ExplainOutput",
    "PlanNode",
    "ScanTarget",
    # Metrics
    "total_inclusive_time",
    "total_exclusive_time",
    "is_analyzed",
    "iter_nodes",
    "snapshot",
    # Configuration
    "ParserConfig",
    "get_config",
    # Metadata
    "__version__",
    "__license__",
]
