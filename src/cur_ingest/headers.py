# ========================
# src/cur_ingest/headers.py
# ========================

"""
Header Resolution

Maps the CUR header line to the column positions the parser needs. CUR
exports name columns differently across versions (lineItem/UnblendedCost,
line_item_unblended_cost, ...), so each semantic column is matched by an
ordered list of case-insensitive substrings.
"""

import logging
from dataclasses import dataclass, fields
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import HeaderResolutionError

logger = logging.getLogger(__name__)

BYTE_ORDER_MARK = '\ufeff'
DEFAULT_MAX_HEADER_COLUMNS = 1000

# Priority order matters: the first pattern that hits any header wins.
COLUMN_PATTERNS: Dict[str, Tuple[str, ...]] = {
    'product_code': ('productcode', 'product_code', 'service'),
    'resource_id': ('resourceid', 'resource_id', 'resource'),
    'usage_type': ('usagetype', 'usage_type'),
    'cost': ('unblendedcost', 'cost', 'blendedcost'),
    'instance_type': ('instancetype', 'instance_type'),
    'os': ('operatingsystem', 'os', 'operating_system'),
    'region': ('location', 'region', 'availabilityzone'),
    'usage_amount': ('usageamount', 'usage_amount', 'quantity'),
    'usage_start_date': ('usagestartdate', 'usage_start_date', 'billingperiodstartdate'),
    'usage_end_date': ('usageenddate', 'usage_end_date', 'billingperiodenddate'),
}

REQUIRED_COLUMNS = ('product_code',)


@dataclass(frozen=True)
class ColumnIndex:
    """Resolved column positions; None means the column is absent."""
    product_code: Optional[int] = None
    resource_id: Optional[int] = None
    usage_type: Optional[int] = None
    cost: Optional[int] = None
    instance_type: Optional[int] = None
    os: Optional[int] = None
    region: Optional[int] = None
    usage_amount: Optional[int] = None
    usage_start_date: Optional[int] = None
    usage_end_date: Optional[int] = None

    def value(self, row: Sequence[str], column: str) -> str:
        """Field for a semantic column, or '' if absent or the row is short."""
        index = getattr(self, column)
        if index is None or index >= len(row):
            return ''
        return row[index]

    def has(self, column: str) -> bool:
        return getattr(self, column) is not None

    def missing(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is None]


def find_column(headers: Sequence[str], patterns: Sequence[str]) -> Optional[int]:
    """Index of the first header containing the highest-priority matching pattern."""
    lowered = [header.lower() for header in headers]
    for pattern in patterns:
        pattern = pattern.lower()
        for index, header in enumerate(lowered):
            if pattern in header:
                return index
    return None


class HeaderResolver:
    """Resolves a tokenized header line into a ColumnIndex."""

    def __init__(self, max_columns: int = DEFAULT_MAX_HEADER_COLUMNS):
        self.max_columns = max_columns

    def resolve(self, headers: List[str]) -> ColumnIndex:
        """
        Resolve semantic columns from header names.

        Args:
            headers (list[str]): Tokenized header line

        Returns:
            ColumnIndex: Positions of every column that could be matched

        Raises:
            HeaderResolutionError: If the header is empty or a required column is missing
        """
        if not headers or not any(headers):
            raise HeaderResolutionError('header', "CSV file has no headers or headers could not be parsed")

        if headers[0].startswith(BYTE_ORDER_MARK):
            headers = [headers[0].lstrip(BYTE_ORDER_MARK)] + list(headers[1:])

        if len(headers) > self.max_columns:
            logger.warning(f"Too many headers ({len(headers):,}), limiting to {self.max_columns:,}")
            headers = headers[:self.max_columns]

        resolved = {
            column: find_column(headers, patterns)
            for column, patterns in COLUMN_PATTERNS.items()
        }

        for column in REQUIRED_COLUMNS:
            if resolved[column] is None:
                raise HeaderResolutionError(
                    column,
                    f"Could not find ProductCode/Service column ('{column}') in CUR header",
                )

        column_index = ColumnIndex(**resolved)
        logger.info(f"CUR header resolved: {len(headers)} columns, missing optional columns: {column_index.missing()}")
        return column_index
