#!/usr/bin/env python3
# ========================
# main.py
# ========================

"""
Main Entry Point for CUR Workload Ingestion

Parses an AWS Cost and Usage Report into workload aggregates. Without an
argument, a synthetic sample CUR is generated first.

Usage:
    python main.py [cur_file.csv]
"""

import sys
import logging
from pathlib import Path

from src.cur_ingest import CurIngestionPipeline, CurParseError, InMemoryWorkloadSink
from src.utils import Config, setup_logging, CurDataGenerator


def main(argv=None):
    """Main execution function."""
    argv = sys.argv[1:] if argv is None else argv
    config = Config()

    setup_logging(
        log_level=config.LOG_LEVEL,
        log_file="cur_ingest.log",
        log_dir="logs"
    )

    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("CUR WORKLOAD INGESTION - MAIN EXECUTION")
    logger.info("=" * 60)

    invalid_settings = [name for name, ok in config.validate_config().items() if not ok]
    if invalid_settings:
        logger.error(f"Invalid configuration settings: {invalid_settings}")
        return 1
    logger.debug(str(config))

    config.ensure_directories()

    generation_stats = None
    if argv:
        input_file = argv[0]
    else:
        input_file = config.DEFAULT_INPUT_FILE
        logger.info("Step 1: Generating sample CUR data...")
        generator = CurDataGenerator(seed=42)
        generation_stats = generator.generate_dataset(
            file_path=input_file,
            num_rows=config.DEFAULT_SAMPLE_ROWS,
        )

    logger.info("Step 2: Running CUR ingestion...")
    pipeline = CurIngestionPipeline(
        input_file=input_file,
        output_dir=config.DEFAULT_OUTPUT_DIR,
        config=config,
    )

    if not pipeline.validate_input():
        logger.error("Input validation failed. Exiting.")
        return 1

    estimates = pipeline.estimate_processing_time()
    if estimates:
        logger.info(f"Processing estimates: {estimates}")

    sink = InMemoryWorkloadSink(max_seen_dates=config.MAX_SEEN_DATES)
    try:
        results = pipeline.run(sink=sink)
    except CurParseError as e:
        logger.error(f"CUR ingestion failed: {e}")
        return 1

    _print_execution_summary(results, generation_stats)
    logger.info("CUR ingestion completed successfully!")
    return 0


def _print_execution_summary(results: dict, generation_stats: dict = None) -> None:
    """Print final execution summary."""
    metadata = results['metadata']
    skipped = metadata['skippedRows']

    print("\n" + "=" * 70)
    print("CUR INGESTION SUMMARY")
    print("=" * 70)

    if generation_stats:
        print("Sample data:")
        print(f"   - Rows generated: {generation_stats['total_rows']:,}")
        print(f"   - Injected edge cases: {generation_stats['anomaly_types']}")
        matches = generation_stats['expected_processed_rows'] == metadata['processedRows']
        print(f"   - Processed rows match expectation: {'yes' if matches else 'NO'}")

    print("\nParsing:")
    print(f"   - Data rows: {metadata['totalRows']:,}")
    print(f"   - Processed rows: {metadata['processedRows']:,}")
    print(f"   - Unique workloads: {metadata['uniqueWorkloads']:,}")
    print(f"   - Skipped (no product code / tax / parse errors): "
          f"{skipped['noProductCode']:,} / {skipped['tax']:,} / {skipped['parseErrors']:,}")
    print(f"   - Zero-cost rows kept: {skipped['zeroCost']:,}")

    print("\nCosts:")
    print(f"   - Raw total: {metadata['totalRawCost']:,.2f}")
    print(f"   - Aggregated total: {metadata['totalAggregatedCost']:,.2f}")

    if results['saved_files']:
        print("\nGenerated outputs:")
        for output_type, file_path in results['saved_files'].items():
            print(f"   - {output_type}: {Path(file_path).name}")

    print("=" * 70)


if __name__ == '__main__':
    exit_code = main()
    sys.exit(exit_code)
