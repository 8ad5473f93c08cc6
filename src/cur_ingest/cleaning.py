# ========================
# src/cur_ingest/cleaning.py
# ========================

"""
Row Cleaning Module

Turns a tokenized CUR line into a typed CurRow: numbers become Decimal,
region and operating system are standardized, empty dates become None.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from .headers import ColumnIndex
from .models import MAX_AMOUNT_EXPONENT, MIN_AMOUNT_EXPONENT

logger = logging.getLogger(__name__)

DEFAULT_REGION = 'us-east-1'


@dataclass
class CurRow:
    """One CUR line item with the fields the aggregator needs."""
    product_code: str
    resource_id: str = ''
    usage_type: str = ''
    cost: Optional[Decimal] = None
    instance_type: str = ''
    os: str = 'linux'
    region: str = DEFAULT_REGION
    usage_amount: Optional[Decimal] = None
    usage_start: Optional[str] = None
    usage_end: Optional[str] = None


class RowCleaner:
    """Extracts and standardizes CurRow values from raw fields."""

    def __init__(self, columns: ColumnIndex):
        self.columns = columns

    def clean(self, fields: List[str]) -> CurRow:
        """
        Build a CurRow from one tokenized line.

        Args:
            fields (list[str]): Trimmed field values

        Returns:
            CurRow: Typed row; missing columns fall back to their defaults

        Raises:
            ValueError: If a cost or usage amount is out of range
        """
        value = self.columns.value

        usage_amount = None
        if self.columns.has('usage_amount'):
            usage_amount = self._clean_decimal(value(fields, 'usage_amount'))

        return CurRow(
            product_code=value(fields, 'product_code').strip(),
            resource_id=value(fields, 'resource_id'),
            usage_type=value(fields, 'usage_type'),
            cost=self._clean_decimal(value(fields, 'cost')),
            instance_type=value(fields, 'instance_type'),
            os=self._clean_os(value(fields, 'os')),
            region=value(fields, 'region') or DEFAULT_REGION,
            usage_amount=usage_amount,
            usage_start=value(fields, 'usage_start_date') or None,
            usage_end=value(fields, 'usage_end_date') or None,
        )

    def _clean_decimal(self, value: str) -> Optional[Decimal]:
        """
        Parse a number exactly; empty, malformed and non-finite values give None.

        Raises:
            ValueError: If the number is too large or too finely scaled to be an amount
        """
        if not value:
            return None
        try:
            number = Decimal(value)
        except (InvalidOperation, ValueError):
            logger.debug(f"Non-numeric value ignored: {value!r}")
            return None
        if not number.is_finite():
            return None
        if number.is_zero():
            return number
        if (number.adjusted() > MAX_AMOUNT_EXPONENT
                or number.as_tuple().exponent < MIN_AMOUNT_EXPONENT):
            raise ValueError(f"amount out of range: {value!r}")
        return number

    def _clean_os(self, value: str) -> str:
        return 'windows' if value.lower().startswith('windows') else 'linux'
