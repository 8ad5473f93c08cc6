# ========================
# src/utils/__init__.py
# ========================

"""
Utilities Package

Configuration, logging, performance monitoring, synthetic CUR data and job
metadata helpers for CUR ingestion.
"""

from .config import Config
from .performance_monitor import monitor_performance, PerformanceMonitor
from .logging_setup import setup_logging
from .data_generator import CurDataGenerator
from .job_metadata import JobMetadataManager

__all__ = [
    'Config',
    'monitor_performance',
    'PerformanceMonitor',
    'setup_logging',
    'CurDataGenerator',
    'JobMetadataManager'
]
