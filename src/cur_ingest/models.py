# ========================
# src/cur_ingest/models.py
# ========================

"""
Data Model

Records produced by the CUR parser. Attributes are snake_case; each record's
to_dict() emits the camelCase contract consumed by the reporting layer.
Money is kept as Decimal so sums stay exact; to_dict() converts to float.
"""

from dataclasses import dataclass, field
from decimal import Context, Decimal, DivisionByZero, InvalidOperation, Overflow
from typing import Any, Dict, List, Optional, Set

ZERO = Decimal("0")

# Amounts outside these decimal exponents are rejected as malformed. Within
# them, sums of any realistic row count fit MONEY_CONTEXT without rounding.
MAX_AMOUNT_EXPONENT = 15
MIN_AMOUNT_EXPONENT = -20
MONEY_CONTEXT = Context(prec=60, traps=[InvalidOperation, Overflow, DivisionByZero])


@dataclass
class DateRange:
    """Earliest usage start and latest usage end seen for a workload."""
    start: str
    end: str

    def expand(self, start: str, end: str) -> None:
        # ISO-8601 timestamps order correctly as strings
        if start < self.start:
            self.start = start
        if end > self.end:
            self.end = end

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass
class Workload:
    """Aggregate cost and metadata for one logical billed resource."""
    id: str
    name: str
    service: str
    category: str
    os: str = "linux"
    cpu: int = 0
    memory: float = 0
    storage: Decimal = ZERO
    monthly_cost: Decimal = ZERO
    region: str = ""
    monthly_traffic: int = 0
    dependencies: List[str] = field(default_factory=list)
    instance_type: str = ""
    raw_service_code: str = ""
    date_range: Optional[DateRange] = None
    seen_dates: List[str] = field(default_factory=list)
    _seen_date_index: Set[str] = field(default_factory=set, repr=False, compare=False)

    def add_cost(self, cost: Decimal) -> None:
        self.monthly_cost = MONEY_CONTEXT.add(self.monthly_cost, cost)

    def record_usage_dates(self, start: Optional[str], end: Optional[str], max_seen_dates: int) -> None:
        """Widen the date range and remember the usage start date (bounded)."""
        if not start:
            return
        if start not in self._seen_date_index and len(self.seen_dates) < max_seen_dates:
            self.seen_dates.append(start)
            self._seen_date_index.add(start)
        if end:
            if self.date_range is None:
                self.date_range = DateRange(start, end)
            else:
                self.date_range.expand(start, end)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "service": self.service,
            "category": self.category,
            "os": self.os,
            "cpu": self.cpu,
            "memory": self.memory,
            "storage": float(self.storage),
            "monthlyCost": float(self.monthly_cost),
            "region": self.region,
            "monthlyTraffic": self.monthly_traffic,
            "dependencies": list(self.dependencies),
            "instanceType": self.instance_type,
            "rawServiceCode": self.raw_service_code,
            "dateRange": self.date_range.to_dict() if self.date_range else None,
            "seenDates": list(self.seen_dates),
        }


@dataclass
class SkippedRows:
    """Per-reason row counters. zero_cost rows are still aggregated."""
    no_product_code: int = 0
    tax: int = 0
    zero_cost: int = 0
    parse_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "noProductCode": self.no_product_code,
            "tax": self.tax,
            "zeroCost": self.zero_cost,
            "parseErrors": self.parse_errors,
        }


@dataclass
class ParseMetadata:
    """Cross-checkable statistics for one completed parse."""
    total_raw_cost: Decimal
    total_aggregated_cost: Decimal
    total_rows: int
    unique_workloads: int
    skipped_rows: SkippedRows
    processed_rows: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "totalRawCost": float(self.total_raw_cost),
            "totalAggregatedCost": float(self.total_aggregated_cost),
            "totalRows": self.total_rows,
            "uniqueWorkloads": self.unique_workloads,
            "skippedRows": self.skipped_rows.to_dict(),
            "processedRows": self.processed_rows,
        }


@dataclass(frozen=True)
class ParseProgress:
    """Snapshot handed to progress callbacks at chunk boundaries."""
    bytes_processed: int
    total_bytes: int
    percent: int
    lines_processed: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "bytesProcessed": self.bytes_processed,
            "totalBytes": self.total_bytes,
            "percent": self.percent,
            "linesProcessed": self.lines_processed,
        }


@dataclass
class ParseResult:
    """Workloads in first-seen order plus the run metadata."""
    workloads: List[Workload]
    metadata: ParseMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workloads": [workload.to_dict() for workload in self.workloads],
            "metadata": self.metadata.to_dict(),
        }
