# ========================
# src/cur_ingest/orchestrator.py
# ========================

"""
CUR Ingestion Orchestrator Module

Coordinates reading, tokenizing, cleaning and aggregating a CUR export.

StreamingCurParser.iter_parse() is a generator whose yields are the
suspension points of a parse. parse_cur() drains it synchronously;
parse_cur_async() awaits the event loop at every yield so a long parse
never starves other tasks. CurIngestionPipeline wraps a file-level run
with validation, performance monitoring and result publishing.
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from .cleaning import CurRow, RowCleaner
from .csv_row import CsvRowParser
from .errors import EmptyDataError, RowParseError
from .headers import ColumnIndex, HeaderResolver
from .ingestion import ChunkReader
from .instance_specs import InstanceSpecResolver
from .models import ParseProgress, ParseResult
from .scheduler import BatchScheduler
from .service_codes import CodeNormalizer, NormalizationCache
from .stats import StatsCollector
from .storage import WorkloadFileWriter, WorkloadSink, publish_workloads
from .tokenizer import LineTokenizer
from .transformation import AggregationStore
from ..utils.config import Config
from ..utils.performance_monitor import monitor_performance

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ParseProgress], None]

# Marks "use the configured timeout"; None explicitly disables it
CONFIG_TIMEOUT = object()


def progress_percent(bytes_processed: int, total_bytes: int) -> int:
    """Percent complete, rounded half-up and capped at 100."""
    if total_bytes <= 0:
        return 0
    return min(100, int(math.floor(bytes_processed * 100 / total_bytes + 0.5)))


class StreamingCurParser:
    """
    State of one CUR parse.

    Feed it lines with process_line() or a whole source with iter_parse(),
    then call finish() for the result. Instances are single use.
    """

    def __init__(self, config: Optional[Config] = None,
                 normalization_cache: Optional[NormalizationCache] = None):
        """
        Initialize the parser.

        Args:
            config (Config): Limits and chunk sizes; defaults to Config()
            normalization_cache (NormalizationCache): Share product code
                resolutions across parses; a fresh cache is used otherwise
        """
        self.config = config or Config()
        if normalization_cache is None:
            normalization_cache = NormalizationCache(
                max_resolved=self.config.MAX_CACHED_CODES,
                max_warned=self.config.MAX_WARNED_CODES,
            )

        self.row_parser = CsvRowParser(
            max_line_length=self.config.MAX_LINE_LENGTH,
            max_fields=self.config.MAX_FIELDS,
        )
        self.header_resolver = HeaderResolver(max_columns=self.config.MAX_HEADER_COLUMNS)
        self.stats = StatsCollector()
        self.store = AggregationStore(
            normalizer=CodeNormalizer(normalization_cache),
            spec_resolver=InstanceSpecResolver(),
            stats=self.stats,
            max_workloads=self.config.MAX_WORKLOADS,
            max_seen_dates=self.config.MAX_SEEN_DATES,
        )
        self.columns: Optional[ColumnIndex] = None
        self.cleaner: Optional[RowCleaner] = None
        self.line_number = 0
        self.bytes_processed = 0
        self.total_bytes: Optional[int] = None

    def process_line(self, line: str) -> None:
        """
        Process one physical line. Blank lines are ignored; the first
        non-blank line is the header.

        Raises:
            HeaderResolutionError: If the header lacks a required column
            CapacityExceededError: If the workload cap is exceeded
        """
        self.line_number += 1
        if not line.strip():
            return

        if self.columns is None:
            self.columns = self.header_resolver.resolve(self.row_parser.parse(line))
            self.cleaner = RowCleaner(self.columns)
            return

        self.stats.record_row()
        try:
            fields = self.row_parser.parse(line)
            if not fields:
                raise RowParseError(self.line_number, "line could not be tokenized")
            row = self._clean(fields)
        except RowParseError as e:
            logger.warning(f"Skipping row: {e}")
            self.stats.record_parse_error()
            return

        self.store.add_row(row)

    def _clean(self, fields: List[str]) -> CurRow:
        try:
            return self.cleaner.clean(fields)
        except (ArithmeticError, ValueError) as e:
            raise RowParseError(self.line_number, str(e)) from e

    def iter_parse(self, source: Any, total_size: Optional[int] = None,
                   on_progress: Optional[ProgressCallback] = None,
                   timeout_seconds: Any = CONFIG_TIMEOUT) -> Iterator[None]:
        """
        Parse a whole source, yielding at every suspension point.

        Args:
            source: Bytes, path, binary file-like or iterable of bytes
            total_size (int): Total bytes, if known; enables progress
            on_progress (callable): Receives a ParseProgress after each chunk
            timeout_seconds (float): Wall-clock budget; None or 0 disables it

        Yields:
            None: After every line batch and every sub-chunk

        Raises:
            CurParseError: Any fatal error aborts the parse
        """
        if timeout_seconds is CONFIG_TIMEOUT:
            timeout_seconds = self.config.PARSE_TIMEOUT_SECONDS

        reader = ChunkReader(
            source,
            total_size=total_size,
            buffer_chunk_size=self.config.BUFFER_CHUNK_BYTES,
            stream_chunk_size=self.config.STREAM_CHUNK_BYTES,
        )
        scheduler = BatchScheduler(
            timeout_seconds=timeout_seconds,
            large_chunk_threshold=self.config.LARGE_CHUNK_THRESHOLD_CHARS,
            sub_chunk_chars=self.config.SUB_CHUNK_CHARS,
        )
        tokenizer = LineTokenizer(
            batch_size=self.config.LINE_BATCH_SIZE,
            max_pending_chars=self.config.MAX_PENDING_LINE_CHARS,
        )
        self.total_bytes = reader.total_size

        scheduler.start()
        for chunk in reader.chunks():
            scheduler.check_deadline()
            for piece in scheduler.split(chunk):
                tokenizer.feed(piece)
                for batch in tokenizer.batches():
                    for line in batch:
                        self.process_line(line)
                    scheduler.checkpoint()
                    yield
                scheduler.checkpoint()
                yield

            self.bytes_processed = reader.bytes_read
            if on_progress is not None and self.total_bytes:
                on_progress(self.progress())

        tail = tokenizer.finish()
        if tail is not None:
            self.process_line(tail)
        logger.debug(f"Parse used {scheduler.suspensions:,} suspension points in {scheduler.elapsed:.2f}s")

    def progress(self) -> ParseProgress:
        total = self.total_bytes or 0
        return ParseProgress(
            bytes_processed=self.bytes_processed,
            total_bytes=total,
            percent=progress_percent(self.bytes_processed, total),
            lines_processed=self.line_number,
        )

    def finish(self) -> ParseResult:
        """
        Build the result of the parse.

        Returns:
            ParseResult: Workloads in first-seen order and run metadata

        Raises:
            EmptyDataError: If no header or no data rows were seen
        """
        if self.columns is None:
            raise EmptyDataError("CSV file is empty or has no header line")
        if self.stats.total_rows == 0:
            raise EmptyDataError("CSV file has a header but no data rows")

        workloads = self.store.workloads()
        metadata = self.stats.build_metadata(workloads)
        self._log_summary(metadata)
        return ParseResult(workloads=workloads, metadata=metadata)

    def _log_summary(self, metadata) -> None:
        skipped = metadata.skipped_rows
        logger.info(
            f"CUR parse complete: {metadata.total_rows:,} rows, "
            f"{metadata.processed_rows:,} processed, "
            f"{metadata.unique_workloads:,} unique workloads"
        )
        logger.info(
            f"Skipped rows - no product code: {skipped.no_product_code:,}, "
            f"tax: {skipped.tax:,}, parse errors: {skipped.parse_errors:,} "
            f"(zero-cost rows kept: {skipped.zero_cost:,})"
        )
        logger.info(
            f"Cost check - raw: {metadata.total_raw_cost}, "
            f"aggregated: {metadata.total_aggregated_cost}, "
            f"excluded: {metadata.total_raw_cost - metadata.total_aggregated_cost}"
        )


def parse_cur(source: Any, total_size: Optional[int] = None,
              on_progress: Optional[ProgressCallback] = None,
              config: Optional[Config] = None,
              normalization_cache: Optional[NormalizationCache] = None,
              timeout_seconds: Any = CONFIG_TIMEOUT) -> ParseResult:
    """
    Parse a CUR export synchronously.

    Args:
        source: Bytes, path, binary file-like or iterable of bytes
        total_size (int): Total bytes, if known
        on_progress (callable): Progress callback
        config (Config): Limits and chunk sizes
        normalization_cache (NormalizationCache): Optional shared cache
        timeout_seconds (float): Wall-clock budget; None or 0 disables it

    Returns:
        ParseResult: Aggregated workloads and metadata

    Raises:
        CurParseError: On any fatal error; no partial result is returned
    """
    parser = StreamingCurParser(config, normalization_cache)
    for _ in parser.iter_parse(source, total_size, on_progress, timeout_seconds):
        pass
    return parser.finish()


async def parse_cur_async(source: Any, total_size: Optional[int] = None,
                          on_progress: Optional[ProgressCallback] = None,
                          config: Optional[Config] = None,
                          normalization_cache: Optional[NormalizationCache] = None,
                          timeout_seconds: Any = CONFIG_TIMEOUT) -> ParseResult:
    """Same as parse_cur, handing control back to the event loop at every suspension point."""
    parser = StreamingCurParser(config, normalization_cache)
    for _ in parser.iter_parse(source, total_size, on_progress, timeout_seconds):
        await asyncio.sleep(0)
    return parser.finish()


class CurIngestionPipeline:
    """
    Runs a CUR file through the parser.
    Adds input validation, performance monitoring, result files and sink publishing.
    """

    def __init__(self,
                 input_file: str,
                 output_dir: Optional[str] = None,
                 config: Optional[Config] = None,
                 normalization_cache: Optional[NormalizationCache] = None,
                 on_progress: Optional[ProgressCallback] = None):
        """
        Initialize the ingestion pipeline.

        Args:
            input_file (str): Path to the CUR CSV file
            output_dir (str): Directory for workloads.csv / metadata.json; None skips writing
            config (Config): Configuration object
            normalization_cache (NormalizationCache): Optional shared cache
            on_progress (callable): Progress callback
        """
        self.input_file = str(input_file)
        self.output_dir = output_dir
        self.config = config or Config()
        self.normalization_cache = normalization_cache
        self.on_progress = on_progress
        self.result: Optional[ParseResult] = None

        logger.info("CurIngestionPipeline initialized:")
        logger.info(f"  Input: {self.input_file}")
        logger.info(f"  Output: {self.output_dir or '(none)'}")
        logger.info(f"  Line batch size: {self.config.LINE_BATCH_SIZE}")

    def run(self, sink: Optional[WorkloadSink] = None) -> Dict[str, Any]:
        """
        Execute the ingestion from start to finish.

        Args:
            sink (WorkloadSink): Receives every workload after a successful parse

        Returns:
            dict: Summary of the run; the full ParseResult is kept on self.result

        Raises:
            CurParseError: If the parse fails; nothing is published in that case
        """
        logger.info(f"Starting CUR ingestion for '{self.input_file}'...")

        with monitor_performance(f"CUR ingestion ({Path(self.input_file).name})",
                                 self.config.LOG_PROGRESS_INTERVAL) as monitor:

            def track_progress(progress: ParseProgress) -> None:
                monitor.update_progress(progress.lines_processed, progress.bytes_processed)
                if self.on_progress is not None:
                    self.on_progress(progress)

            self.result = parse_cur(
                self.input_file,
                on_progress=track_progress,
                config=self.config,
                normalization_cache=self.normalization_cache,
            )
            monitor.add_checkpoint('parsed', {'workloads': len(self.result.workloads)})

            saved_files = {}
            if self.output_dir:
                saved_files = WorkloadFileWriter(self.output_dir).save_result(self.result)

            published = 0
            if sink is not None:
                published = publish_workloads(self.result.workloads, sink)

        performance = {key: value for key, value in monitor.summary.items() if key != 'checkpoints'}
        results = {
            'pipeline_status': 'completed',
            'input_file': self.input_file,
            'output_directory': self.output_dir,
            'saved_files': saved_files,
            'workload_count': len(self.result.workloads),
            'published_workloads': published,
            'metadata': self.result.metadata.to_dict(),
            'processing_stats': {
                'input_file_size': Path(self.input_file).stat().st_size,
                **performance,
            },
        }

        logger.info("CUR ingestion finished successfully.")
        self._log_final_summary(results)
        return results

    def _log_final_summary(self, results: Dict[str, Any]) -> None:
        metadata = results['metadata']
        logger.info("=" * 60)
        logger.info("CUR INGESTION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Input file: {results['input_file']}")
        logger.info(f"Rows: {metadata['totalRows']:,} total, {metadata['processedRows']:,} processed")
        logger.info(f"Unique workloads: {metadata['uniqueWorkloads']:,}")
        logger.info(f"Raw cost: {metadata['totalRawCost']:,.2f}")
        logger.info(f"Aggregated cost: {metadata['totalAggregatedCost']:,.2f}")
        if results['saved_files']:
            for output_type, file_path in results['saved_files'].items():
                logger.info(f"  {output_type}: {file_path}")
        if results['published_workloads']:
            logger.info(f"Published workloads: {results['published_workloads']:,}")
        logger.info("=" * 60)

    def validate_input(self) -> bool:
        """
        Validate input file exists and is readable.

        Returns:
            bool: True if input is valid
        """
        input_path = Path(self.input_file)
        if not input_path.exists():
            logger.error(f"Input file does not exist: {self.input_file}")
            return False

        if not input_path.is_file():
            logger.error(f"Input path is not a file: {self.input_file}")
            return False

        try:
            with open(self.input_file, 'rb') as f:
                f.readline()
        except OSError as e:
            logger.error(f"Cannot read input file: {e}")
            return False

        logger.info(f"Input validation passed: {self.input_file}")
        return True

    def estimate_processing_time(self) -> Dict[str, Any]:
        """
        Estimate processing time based on file size.

        Returns:
            dict: Processing time estimates
        """
        try:
            file_size = Path(self.input_file).stat().st_size
        except OSError as e:
            logger.warning(f"Could not estimate processing time: {e}")
            return {}

        # Rough figures: CUR rows average ~400 bytes, ~50k rows/s
        estimated_rows = file_size // 400
        estimated_seconds = estimated_rows / 50000

        return {
            'file_size_mb': file_size / (1024 * 1024),
            'estimated_rows': estimated_rows,
            'estimated_processing_time_seconds': estimated_seconds,
            'estimated_processing_time_minutes': estimated_seconds / 60,
            'chunk_count_estimate': math.ceil(file_size / self.config.STREAM_CHUNK_BYTES) if file_size else 0,
        }
