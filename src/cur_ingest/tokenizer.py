# ========================
# src/cur_ingest/tokenizer.py
# ========================

"""
Line Tokenizer

Buffers decoded text across chunk boundaries and hands out complete lines
in bounded batches, so no single step processes an unbounded number of
lines.
"""

import logging
from typing import Iterator, List, Optional

from .errors import CapacityExceededError

logger = logging.getLogger(__name__)

DEFAULT_LINE_BATCH_SIZE = 1000
DEFAULT_MAX_PENDING_LINE_CHARS = 40_000_000


class LineTokenizer:
    """
    Splits a stream of text chunks into lines.

    Consumed text is tracked with a read position instead of re-slicing the
    buffer for every line; the buffer is compacted once per batch.
    """

    def __init__(self, batch_size: int = DEFAULT_LINE_BATCH_SIZE,
                 max_pending_chars: int = DEFAULT_MAX_PENDING_LINE_CHARS):
        self.batch_size = batch_size
        self.max_pending_chars = max_pending_chars
        self._buffer = ''
        self._position = 0

    def feed(self, text: str) -> None:
        """
        Append a decoded chunk.

        Raises:
            CapacityExceededError: If a single unterminated line outgrows the cap
        """
        if self._position:
            self._buffer = self._buffer[self._position:]
            self._position = 0
        self._buffer += text

        if len(self._buffer) > self.max_pending_chars:
            partial = len(self._buffer) - self._buffer.rfind('\n') - 1
            if partial > self.max_pending_chars:
                raise CapacityExceededError(
                    'pending_line_chars',
                    self.max_pending_chars,
                    f"Line exceeds {self.max_pending_chars:,} characters without a line break",
                )

    def next_batch(self) -> List[str]:
        """Up to batch_size complete lines; the rest stays queued."""
        lines = []
        buffer = self._buffer
        position = self._position

        while len(lines) < self.batch_size:
            newline = buffer.find('\n', position)
            if newline == -1:
                break
            line = buffer[position:newline]
            if line.endswith('\r'):
                line = line[:-1]
            lines.append(line)
            position = newline + 1

        self._position = position
        if position and position >= len(buffer) // 2:
            self._buffer = buffer[position:]
            self._position = 0
        return lines

    def batches(self) -> Iterator[List[str]]:
        """Yield batches until no complete line is left in the buffer."""
        while True:
            batch = self.next_batch()
            if not batch:
                return
            yield batch

    def finish(self) -> Optional[str]:
        """Return the trailing unterminated line (None if blank) and reset."""
        tail = self._buffer[self._position:]
        self._buffer = ''
        self._position = 0
        if tail.endswith('\r'):
            tail = tail[:-1]
        return tail if tail.strip() else None
