# ========================
# src/cur_ingest/storage.py
# ========================

"""
Workload Storage Module

Hand-off of parsed workloads to a persistence collaborator, plus a file
writer that saves a parse result as workloads.csv and metadata.json.
"""

import copy
import csv
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Protocol

from .models import MONEY_CONTEXT, DateRange, ParseResult, Workload
from .transformation import DEFAULT_MAX_SEEN_DATES, workload_key

logger = logging.getLogger(__name__)

WORKLOAD_CSV_COLUMNS = [
    'id', 'name', 'service', 'category', 'os', 'cpu', 'memory', 'storage',
    'monthlyCost', 'region', 'instanceType', 'rawServiceCode',
    'dateRangeStart', 'dateRangeEnd', 'seenDateCount',
]


class WorkloadSink(Protocol):
    """Anything that can persist a workload."""

    def save(self, workload: Workload) -> None:
        ...


class InMemoryWorkloadSink:
    """
    Reference sink that keeps workloads in memory.

    Saving a workload whose id, service and region match a stored one merges
    the two: costs and storage are summed, date ranges widened and seen dates
    combined under the cap.
    """

    def __init__(self, max_seen_dates: int = DEFAULT_MAX_SEEN_DATES):
        self.max_seen_dates = max_seen_dates
        self._workloads: Dict[str, Workload] = {}

    def __len__(self) -> int:
        return len(self._workloads)

    def save(self, workload: Workload) -> None:
        key = workload_key(workload.id, workload.service, workload.region)
        existing = self._workloads.get(key)
        if existing is None:
            self._workloads[key] = copy.deepcopy(workload)
            return

        existing.add_cost(workload.monthly_cost)
        existing.storage = MONEY_CONTEXT.add(existing.storage, workload.storage)
        if workload.date_range is not None:
            if existing.date_range is None:
                existing.date_range = DateRange(workload.date_range.start, workload.date_range.end)
            else:
                existing.date_range.expand(workload.date_range.start, workload.date_range.end)
        for seen in workload.seen_dates:
            existing.record_usage_dates(seen, None, self.max_seen_dates)

    def list_workloads(self) -> List[Workload]:
        return list(self._workloads.values())

    def clear(self) -> None:
        self._workloads.clear()


def publish_workloads(workloads: Iterable[Workload], sink: WorkloadSink) -> int:
    """
    Save every workload to the sink.

    Args:
        workloads: Workloads of a completed parse
        sink (WorkloadSink): Persistence collaborator

    Returns:
        int: Number of workloads saved
    """
    count = 0
    for workload in workloads:
        sink.save(workload)
        count += 1
    logger.info(f"Published {count:,} workloads to {type(sink).__name__}")
    return count


class WorkloadFileWriter:
    """
    Saves a parse result to an output directory.
    """

    def __init__(self, output_dir: str = "data/processed"):
        """
        Initialize the writer.

        Args:
            output_dir (str): Directory to save output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"WorkloadFileWriter initialized with output directory: {self.output_dir}")

    def save_result(self, result: ParseResult) -> Dict[str, str]:
        """
        Save workloads and metadata.

        Args:
            result (ParseResult): Completed parse

        Returns:
            dict: Mapping of output type to saved file path
        """
        saved_files = {
            'workloads': self.save_workloads(result.workloads),
            'metadata': self.save_metadata(result),
        }
        logger.info(f"Parse result saved to {len(saved_files)} files in {self.output_dir}")
        return saved_files

    def save_workloads(self, workloads: List[Workload]) -> str:
        """Write one CSV row per workload."""
        file_path = self.output_dir / 'workloads.csv'
        with open(file_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=WORKLOAD_CSV_COLUMNS)
            writer.writeheader()
            for workload in workloads:
                data = workload.to_dict()
                date_range = data.pop('dateRange') or {}
                seen_dates = data.pop('seenDates')
                writer.writerow({
                    **{column: data[column] for column in WORKLOAD_CSV_COLUMNS if column in data},
                    'dateRangeStart': date_range.get('start', ''),
                    'dateRangeEnd': date_range.get('end', ''),
                    'seenDateCount': len(seen_dates),
                })
        logger.info(f"Saved {len(workloads):,} workloads to {file_path}")
        return str(file_path)

    def save_metadata(self, result: ParseResult) -> str:
        """Write the run metadata as JSON."""
        file_path = self.output_dir / 'metadata.json'
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(result.metadata.to_dict(), f, indent=2)
        logger.info(f"Saved parse metadata to {file_path}")
        return str(file_path)
