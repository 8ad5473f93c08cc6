# ========================
# src/utils/performance_monitor.py
# ========================

"""
Performance Monitoring Utilities

Tracks wall time, resident memory (via psutil) and line/byte/chunk
throughput of a CUR parse.
"""

import os
import time
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional

import psutil

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """
    Performance monitor for one CUR ingestion run.
    Tracks memory usage, processing time, and throughput.
    """

    def __init__(self, name: str = "CUR ingestion", log_interval: int = 100):
        """
        Initialize performance monitor.

        Args:
            name (str): Name for this monitoring session
            log_interval (int): Log progress every N chunks
        """
        self.name = name
        self.log_interval = log_interval
        self.start_time = None
        self.end_time = None
        self.peak_memory_mb = 0.0
        self.lines_processed = 0
        self.bytes_processed = 0
        self.chunks_processed = 0
        self.checkpoints = []
        self.summary: Dict[str, Any] = {}
        self._process = psutil.Process(os.getpid())

    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        self.start_time = time.time()
        self.peak_memory_mb = self._get_memory_usage_mb()
        logger.info(f"{self.name} - Performance monitoring started, memory: {self.peak_memory_mb:.2f} MB")

    def update_progress(self, lines_processed: int, bytes_processed: int) -> None:
        """
        Record the cumulative position after a chunk.

        Args:
            lines_processed (int): Lines seen so far
            bytes_processed (int): Bytes read so far
        """
        self.lines_processed = lines_processed
        self.bytes_processed = bytes_processed
        self.chunks_processed += 1
        current_memory = self._get_memory_usage_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, current_memory)

        if self.log_interval and self.chunks_processed % self.log_interval == 0:
            self._log_progress(current_memory)

    def add_checkpoint(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Add a performance checkpoint.

        Args:
            name (str): Checkpoint name
            metadata (dict): Optional metadata to store
        """
        checkpoint = {
            'name': name,
            'timestamp': time.time(),
            'memory_mb': self._get_memory_usage_mb(),
            'lines_processed': self.lines_processed,
            'chunks_processed': self.chunks_processed,
            'metadata': metadata or {}
        }
        self.checkpoints.append(checkpoint)
        logger.debug(f"Checkpoint '{name}': {checkpoint}")

    def _log_progress(self, current_memory: float) -> None:
        elapsed = time.time() - self.start_time if self.start_time else 0
        throughput = self.lines_processed / elapsed if elapsed > 0 else 0
        logger.info(
            f"{self.name} - Progress: {self.chunks_processed} chunks, "
            f"{self.lines_processed:,} lines, "
            f"{self.bytes_processed / (1024 * 1024):.1f} MB, "
            f"{throughput:.0f} lines/sec, "
            f"Memory: {current_memory:.2f} MB"
        )

    def stop_monitoring(self) -> Dict[str, Any]:
        """
        Stop monitoring and return performance summary.

        Returns:
            dict: Performance statistics
        """
        self.end_time = time.time()
        total_time = self.end_time - self.start_time if self.start_time else 0
        throughput = self.lines_processed / total_time if total_time > 0 else 0

        summary = {
            'name': self.name,
            'total_processing_time_seconds': total_time,
            'lines_processed': self.lines_processed,
            'bytes_processed': self.bytes_processed,
            'chunks_processed': self.chunks_processed,
            'average_throughput_lines_per_second': throughput,
            'peak_memory_usage_mb': self.peak_memory_mb,
            'checkpoints': self.checkpoints
        }

        self.summary = summary
        self._log_summary(summary)
        return summary

    def _log_summary(self, summary: Dict[str, Any]) -> None:
        logger.info("=" * 60)
        logger.info(f"PERFORMANCE SUMMARY - {summary['name']}")
        logger.info("=" * 60)
        logger.info(f"Total processing time: {summary['total_processing_time_seconds']:.2f} seconds")
        logger.info(f"Lines processed: {summary['lines_processed']:,}")
        logger.info(f"Bytes processed: {summary['bytes_processed']:,}")
        logger.info(f"Chunks processed: {summary['chunks_processed']:,}")
        logger.info(f"Average throughput: {summary['average_throughput_lines_per_second']:.0f} lines/second")
        logger.info(f"Peak memory usage: {summary['peak_memory_usage_mb']:.2f} MB")
        if summary['checkpoints']:
            logger.info(f"Checkpoints recorded: {len(summary['checkpoints'])}")
        logger.info("=" * 60)

    def _get_memory_usage_mb(self) -> float:
        """Get current resident memory in MB."""
        try:
            return self._process.memory_info().rss / (1024 * 1024)
        except psutil.Error as e:
            logger.debug(f"Could not get memory usage: {e}")
            return self.peak_memory_mb


@contextmanager
def monitor_performance(name: str = "CUR ingestion", log_interval: int = 100):
    """
    Context manager for easy performance monitoring.

    Args:
        name (str): Name for this monitoring session
        log_interval (int): Log progress every N chunks

    Yields:
        PerformanceMonitor: Monitor instance
    """
    monitor = PerformanceMonitor(name, log_interval)
    monitor.start_monitoring()
    try:
        yield monitor
    finally:
        monitor.stop_monitoring()
