# ========================
# src/cur_ingest/stats.py
# ========================

"""
Run Statistics

Passive counters filled in while rows are aggregated. They never influence
which rows are accepted; they only feed the ParseMetadata cross-check.
"""

from decimal import Decimal
from typing import List

from .models import MONEY_CONTEXT, ZERO, ParseMetadata, SkippedRows, Workload


class StatsCollector:
    """Row counters and the raw cost sum for one parse."""

    def __init__(self):
        self.total_rows = 0
        self.processed_rows = 0
        self.total_raw_cost = ZERO
        self.skipped = SkippedRows()

    def record_row(self) -> None:
        self.total_rows += 1

    def record_raw_cost(self, cost: Decimal) -> None:
        self.total_raw_cost = MONEY_CONTEXT.add(self.total_raw_cost, cost)

    def record_processed(self) -> None:
        self.processed_rows += 1

    def record_no_product_code(self) -> None:
        self.skipped.no_product_code += 1

    def record_tax(self) -> None:
        self.skipped.tax += 1

    def record_zero_cost(self) -> None:
        self.skipped.zero_cost += 1

    def record_parse_error(self) -> None:
        self.skipped.parse_errors += 1

    def build_metadata(self, workloads: List[Workload]) -> ParseMetadata:
        """
        Assemble the final metadata.

        Args:
            workloads (list[Workload]): Aggregated workloads of this parse

        Returns:
            ParseMetadata: Counters plus the aggregated cost sum
        """
        total_aggregated_cost = ZERO
        for workload in workloads:
            total_aggregated_cost = MONEY_CONTEXT.add(total_aggregated_cost, workload.monthly_cost)
        return ParseMetadata(
            total_raw_cost=self.total_raw_cost,
            total_aggregated_cost=total_aggregated_cost,
            total_rows=self.total_rows,
            unique_workloads=len(workloads),
            skipped_rows=SkippedRows(**vars(self.skipped)),
            processed_rows=self.processed_rows,
        )
