# ========================
# src/cur_ingest/errors.py
# ========================

"""
Parse Errors

Fatal errors abort the whole parse and no partial result is returned.
RowParseError is the only recoverable kind: the parser catches it, logs it
and counts it in the run metadata.
"""

from typing import Optional


class CurParseError(Exception):
    """Base class for errors that abort a CUR parse."""


class SourceReadError(CurParseError):
    """The byte source failed to produce (decodable) data."""


class HeaderResolutionError(CurParseError):
    """A required column could not be found in the header line."""

    def __init__(self, column: str, message: Optional[str] = None):
        self.column = column
        super().__init__(message or f"Could not find required '{column}' column in CUR header")


class EmptyDataError(CurParseError):
    """The input has no header or a header but no data rows."""


class CapacityExceededError(CurParseError):
    """A hard cap was exceeded; the cap is named so callers can report it."""

    def __init__(self, cap: str, limit: int, message: Optional[str] = None):
        self.cap = cap
        self.limit = limit
        super().__init__(message or f"Capacity exceeded for '{cap}' (limit {limit:,})")


class ParseTimeoutError(CurParseError):
    """The caller-supplied wall-clock budget ran out."""

    def __init__(self, timeout_seconds: float, elapsed_seconds: float):
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"CUR parse exceeded its time budget of {timeout_seconds:.1f}s "
            f"(elapsed {elapsed_seconds:.1f}s)"
        )


class RowParseError(Exception):
    """A single data line could not be tokenized or processed."""

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Line {line_number}: {reason}")
