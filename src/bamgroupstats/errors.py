"""Exception types raised by the statistics and QC engines."""

from __future__ import annotations

from typing import Optional


class BamStatsError(RuntimeError):
    """Base class for errors raised by bamgroupstats."""


class HeaderError(BamStatsError):
    """Raised when an alignment header cannot be read or is malformed."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class RecordError(BamStatsError):
    """Raised when a single alignment record fails an integrity check."""

    def __init__(self, message: str, *, qname: Optional[str] = None) -> None:
        super().__init__(message)
        self.qname = qname


class TagParseError(BamStatsError):
    """Raised when an MD tag cannot be parsed.

    Callers scoring divergence recover from this locally; it never aborts a run.
    """

    def __init__(self, message: str, *, md: Optional[str] = None, offset: int = -1) -> None:
        super().__init__(message)
        self.md = md
        self.offset = int(offset)
