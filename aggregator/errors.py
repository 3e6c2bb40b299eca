"""
Pageview Aggregator — exception types.

Every error that aborts an aggregation run derives from ``AggregationError``
so the scheduler can tell a failed run from a programming error.
"""


class AggregationError(Exception):
    """Base class for fatal aggregation failures."""


class BufferRotationError(AggregationError):
    """The buffer file could not be renamed or its replacement created."""


class BufferReadError(AggregationError):
    """A rotated snapshot could not be opened for reading."""


class DecodeError(AggregationError):
    """A buffer line does not decode to ``[path, new_visitor, unique_pageview, referrer]``."""

    def __init__(self, line: str, reason: str, line_number: int | None = None):
        self.line = line
        self.reason = reason
        self.line_number = line_number
        where = f" on line {line_number}" if line_number is not None else ""
        super().__init__(f"Malformed buffer record{where}: {reason} ({line[:80]!r})")


class DimensionResolutionError(AggregationError):
    """A URL has no dimension id after insert-if-absent + lookup."""
