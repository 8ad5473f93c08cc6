# ========================
# src/cur_ingest/__init__.py
# ========================

"""
CUR Ingestion Package

Streaming ingestion of AWS Cost and Usage Report exports into
resource-level workload aggregates:
- ingestion: Bounded byte-chunk reading and UTF-8 decoding
- scheduler: Sub-chunking, suspension points and the time budget
- tokenizer: Complete lines in bounded batches
- csv_row / headers: Line tokenizing and header column resolution
- service_codes / instance_specs: Product code and instance type lookups
- cleaning / transformation / stats: Typed rows, aggregation and run metadata
- storage: Workload sinks and result files
- orchestrator: parse_cur, parse_cur_async and CurIngestionPipeline
"""

from .errors import (
    CapacityExceededError,
    CurParseError,
    EmptyDataError,
    HeaderResolutionError,
    ParseTimeoutError,
    RowParseError,
    SourceReadError,
)
from .models import DateRange, ParseMetadata, ParseProgress, ParseResult, SkippedRows, Workload
from .service_codes import CodeNormalizer, NormalizationCache, ServiceIdentity
from .storage import InMemoryWorkloadSink, WorkloadFileWriter, WorkloadSink, publish_workloads
from .orchestrator import CurIngestionPipeline, StreamingCurParser, parse_cur, parse_cur_async

__all__ = [
    'CapacityExceededError',
    'CurParseError',
    'EmptyDataError',
    'HeaderResolutionError',
    'ParseTimeoutError',
    'RowParseError',
    'SourceReadError',
    'DateRange',
    'ParseMetadata',
    'ParseProgress',
    'ParseResult',
    'SkippedRows',
    'Workload',
    'CodeNormalizer',
    'NormalizationCache',
    'ServiceIdentity',
    'InMemoryWorkloadSink',
    'WorkloadFileWriter',
    'WorkloadSink',
    'publish_workloads',
    'CurIngestionPipeline',
    'StreamingCurParser',
    'parse_cur',
    'parse_cur_async',
]

__version__ = "1.0.0"
