"""
Package-level exception hierarchy for pgexplain.

All exceptions inherit from ExplainError, enabling:
- Catching all pgexplain errors with a single except clause
- Rich context fields for debugging (detail, source, line number)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    ExplainError
    ├── UsageError            – Bad arguments to parse_explain()
    └── ParseError            – Failed to turn the input into a plan tree
        ├── SourceReadError   – source_file missing or unreadable
        └── StructuralError   – Plan text shape the grammar does not model

Malformed individual lines are NOT errors. Plan text is semi-structured and
varies between PostgreSQL versions, so such lines are discarded and reported
on ExplainOutput.discarded_lines instead.
"""

from __future__ import annotations

from typing import Any


class ExplainError(Exception):
    """
    Base exception for all pgexplain errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Usage Errors ─────────────────────────────────────────────────────────


class UsageError(ExplainError):
    """
    parse_explain() was called with neither or both of (source, source_file).
    """
    pass


# ── Parse Errors ─────────────────────────────────────────────────────────


class ParseError(ExplainError):
    """
    Raised when EXPLAIN output cannot be parsed.

    Attributes:
        message: Human-readable error description
        detail: Technical details for debugging (optional)
        source: Where the error occurred (e.g., "structure", "json_decode")
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        result["source"] = self.source
        return result


class SourceReadError(ParseError):
    """
    The source_file does not refer to a readable file.

    Attributes:
        path: The path that could not be read.
    """

    def __init__(self, message: str, path: str, *, detail: str | None = None) -> None:
        self.path = path
        super().__init__(message, detail=detail, source="file_read")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = self.path
        return result


class StructuralError(ParseError):
    """
    A node header could not be attached to the tree.

    Happens when a header has no enclosing context (e.g. an InitPlan marker
    before any node, or a header shallower than the root), or when the
    enclosing context is of a kind no attachment rule covers.

    Attributes:
        line_number: 1-based number of the offending line (if known).
        line: The offending line as it appeared in the input (if known).
    """

    def __init__(
        self,
        message: str,
        *,
        line_number: int | None = None,
        line: str | None = None,
    ) -> None:
        self.line_number = line_number
        self.line = line
        detail = None
        if line_number is not None:
            detail = f"Line {line_number}: {line!r}"
        super().__init__(message, detail=detail, source="structure")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["line_number"] = self.line_number
        result["line"] = self.line
        return result
