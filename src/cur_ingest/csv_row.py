# ========================
# src/cur_ingest/csv_row.py
# ========================

"""
CSV Row Parsing

Tokenizes a single CUR line into trimmed field values. One physical line is
one record: quoted fields spanning lines are not reassembled.
"""

import logging
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINE_LENGTH = 10_000_000
DEFAULT_MAX_FIELDS = 10_000


class CsvRowParser:
    """
    Quote-aware splitter for comma-separated lines.

    A double quote toggles quoted mode, except that inside a quoted field a
    doubled quote ("") is a literal quote. Commas only end a field outside
    quotes. The parser never raises: malformed input is tolerated with a
    warning, and an internal failure yields an empty list so the caller can
    skip the row.
    """

    def __init__(self, max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
                 max_fields: int = DEFAULT_MAX_FIELDS):
        self.max_line_length = max_line_length
        self.max_fields = max_fields

    def parse(self, line: str) -> List[str]:
        """
        Split one line into fields.

        Args:
            line (str): A single line of text, without its newline

        Returns:
            list[str]: Trimmed field values, or [] if the line could not be parsed
        """
        try:
            if len(line) > self.max_line_length:
                logger.warning(
                    f"Line too long ({len(line):,} chars), truncating to {self.max_line_length:,}"
                )
                line = line[:self.max_line_length]

            if '"' in line:
                fields = self._split_quoted(line)
            else:
                fields = [value.strip() for value in line.split(',')]

            if len(fields) > self.max_fields:
                logger.warning(f"Too many fields ({len(fields):,}), keeping the first {self.max_fields:,}")
                fields = fields[:self.max_fields]

            return fields

        except Exception as e:
            logger.error(f"Error parsing CSV line: {e}")
            return []

    def _split_quoted(self, line: str) -> List[str]:
        fields = []
        current = []
        in_quotes = False
        i = 0
        length = len(line)

        while i < length:
            char = line[i]
            if char == '"':
                if in_quotes and i + 1 < length and line[i + 1] == '"':
                    current.append('"')
                    i += 2
                    continue
                in_quotes = not in_quotes
            elif char == ',' and not in_quotes:
                fields.append(''.join(current).strip())
                current = []
            else:
                current.append(char)
            i += 1

        if in_quotes:
            logger.warning("Unclosed quote at end of line, closing field")

        fields.append(''.join(current).strip())
        return fields
