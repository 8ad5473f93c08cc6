# ========================
# src/cur_ingest/scheduler.py
# ========================

"""
Batch Scheduling

Keeps each unit of work small: oversized text chunks are split into
sub-chunks, suspension points are counted, and the wall-clock budget of
the parse is checked at each of them.
"""

import logging
import time
from typing import Iterator, Optional

from .errors import ParseTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LARGE_CHUNK_THRESHOLD_CHARS = 500_000
DEFAULT_SUB_CHUNK_CHARS = 100_000
DEFAULT_PARSE_TIMEOUT_SECONDS = 300


class BatchScheduler:
    """Sub-chunking plus a deadline checked at suspension points."""

    def __init__(self, timeout_seconds: Optional[float] = DEFAULT_PARSE_TIMEOUT_SECONDS,
                 large_chunk_threshold: int = DEFAULT_LARGE_CHUNK_THRESHOLD_CHARS,
                 sub_chunk_chars: int = DEFAULT_SUB_CHUNK_CHARS):
        """
        Initialize the scheduler.

        Args:
            timeout_seconds (float): Wall-clock budget; None or 0 disables it
            large_chunk_threshold (int): Chunks longer than this are split
            sub_chunk_chars (int): Size of the pieces a large chunk is split into
        """
        self.timeout_seconds = timeout_seconds or None
        self.large_chunk_threshold = large_chunk_threshold
        self.sub_chunk_chars = sub_chunk_chars
        self.suspensions = 0
        self._started_at: Optional[float] = None

    def start(self) -> None:
        self._started_at = time.monotonic()
        self.suspensions = 0

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def split(self, chunk: str) -> Iterator[str]:
        """Yield the chunk whole, or in sub_chunk_chars pieces if it is large."""
        if len(chunk) <= self.large_chunk_threshold:
            yield chunk
            return

        logger.debug(f"Splitting large chunk of {len(chunk):,} chars into {self.sub_chunk_chars:,}-char pieces")
        for start in range(0, len(chunk), self.sub_chunk_chars):
            yield chunk[start:start + self.sub_chunk_chars]

    def checkpoint(self) -> None:
        """
        Record a suspension point and enforce the time budget.

        Raises:
            ParseTimeoutError: If the budget is exhausted
        """
        self.suspensions += 1
        self.check_deadline()

    def check_deadline(self) -> None:
        if self.timeout_seconds is None or self._started_at is None:
            return
        elapsed = self.elapsed
        if elapsed > self.timeout_seconds:
            logger.error(f"CUR parse timed out after {elapsed:.1f}s (budget {self.timeout_seconds:.1f}s)")
            raise ParseTimeoutError(self.timeout_seconds, elapsed)
