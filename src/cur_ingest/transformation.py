# ========================
# src/cur_ingest/transformation.py
# ========================

"""
Workload Aggregation Module

Applies the row acceptance policy and folds accepted CUR rows into one
Workload per (resource, service, region) key.
"""

import logging
import re
from typing import Dict, List, Optional

from .cleaning import CurRow
from .errors import CapacityExceededError
from .instance_specs import InstanceSpecResolver
from .models import MONEY_CONTEXT, ZERO, Workload
from .service_codes import CodeNormalizer
from .stats import StatsCollector

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKLOADS = 2_000_000
DEFAULT_MAX_SEEN_DATES = 1000

# Misaligned rows put a date where the product code should be
ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}')

STORAGE_CATEGORY = 'storage'
STORAGE_USAGE_MARKER = 'GB'


def workload_key(resource_id: str, service: str, region: str) -> str:
    return f"{resource_id}_{service}_{region}".lower()


def aggregated_resource_id(service: str, region: str) -> str:
    """Synthetic id for rows that carry no resource id."""
    return f"{service}_{region}_aggregated".lower()


class AggregationStore:
    """
    Keyed accumulation of CUR rows into workloads.

    Workloads are kept in a dict, so iteration follows first-seen key order.
    """

    def __init__(self, normalizer: Optional[CodeNormalizer] = None,
                 spec_resolver: Optional[InstanceSpecResolver] = None,
                 stats: Optional[StatsCollector] = None,
                 max_workloads: int = DEFAULT_MAX_WORKLOADS,
                 max_seen_dates: int = DEFAULT_MAX_SEEN_DATES):
        """
        Initialize the aggregation store.

        Args:
            normalizer (CodeNormalizer): Product code normalizer
            spec_resolver (InstanceSpecResolver): Instance type to cpu/memory
            stats (StatsCollector): Receives row outcomes
            max_workloads (int): Hard cap on distinct workloads
            max_seen_dates (int): Cap on remembered usage dates per workload
        """
        self.normalizer = normalizer or CodeNormalizer()
        self.spec_resolver = spec_resolver or InstanceSpecResolver()
        self.stats = stats or StatsCollector()
        self.max_workloads = max_workloads
        self.max_seen_dates = max_seen_dates
        self._workloads: Dict[str, Workload] = {}

    def __len__(self) -> int:
        return len(self._workloads)

    def add_row(self, row: CurRow) -> bool:
        """
        Apply the acceptance policy to one row and aggregate it.

        Args:
            row (CurRow): Cleaned CUR row

        Returns:
            bool: True if the row was aggregated, False if it was skipped

        Raises:
            CapacityExceededError: If the row would create one workload too many
        """
        if row.cost is not None:
            self.stats.record_raw_cost(row.cost)

        if not row.product_code:
            self.stats.record_no_product_code()
            return False

        if ISO_DATE_PATTERN.match(row.product_code):
            logger.debug(f"Skipping misaligned row, product code looks like a date: {row.product_code}")
            self.stats.record_no_product_code()
            return False

        identity = self.normalizer.normalize(row.product_code)
        if identity.is_tax:
            self.stats.record_tax()
            return False

        if row.cost is not None and row.cost.is_zero():
            self.stats.record_zero_cost()

        self.stats.record_processed()

        resource_id = row.resource_id or aggregated_resource_id(identity.name, row.region)
        key = workload_key(resource_id, identity.name, row.region)

        workload = self._workloads.get(key)
        if workload is None:
            workload = self._create_workload(key, resource_id, identity.name, identity.category, row)

        if row.cost is not None:
            workload.add_cost(row.cost)

        workload.record_usage_dates(row.usage_start, row.usage_end, self.max_seen_dates)

        if (identity.category == STORAGE_CATEGORY
                and row.usage_amount is not None
                and STORAGE_USAGE_MARKER in row.usage_type):
            workload.storage = MONEY_CONTEXT.add(workload.storage, row.usage_amount)

        return True

    def _create_workload(self, key: str, resource_id: str, service: str,
                         category: str, row: CurRow) -> Workload:
        if len(self._workloads) >= self.max_workloads:
            raise CapacityExceededError(
                'workloads',
                self.max_workloads,
                f"CUR file has more than {self.max_workloads:,} unique workloads",
            )

        cpu, memory = self.spec_resolver.resolve(row.instance_type)
        workload = Workload(
            id=resource_id,
            name=resource_id.split('/')[-1] or resource_id,
            service=service,
            category=category,
            os=row.os,
            cpu=cpu,
            memory=memory,
            storage=ZERO,
            region=row.region,
            instance_type=row.instance_type,
            raw_service_code=row.product_code,
        )
        self._workloads[key] = workload
        return workload

    def workloads(self) -> List[Workload]:
        """Aggregated workloads in first-seen order."""
        return list(self._workloads.values())
