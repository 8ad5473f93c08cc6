#!/usr/bin/env python3
# ========================
# scripts/run_large_scale_test.py
# ========================

"""
Script to test CUR ingestion with a large synthetic export.
Generates the file in chunks, parses it and cross-checks the result against
the generator's expected figures.
"""

import sys
import os

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.cur_ingest import CurIngestionPipeline
from src.utils import Config, CurDataGenerator, setup_logging


def main():
    """Run a large-scale test of CUR ingestion."""

    if len(sys.argv) > 1:
        try:
            num_rows = int(sys.argv[1])
        except ValueError:
            print("Usage: python run_large_scale_test.py [num_rows]")
            print("Example: python run_large_scale_test.py 1000000")
            sys.exit(1)
    else:
        num_rows = 1_000_000

    config = Config()
    setup_logging(config.LOG_LEVEL)

    input_file = 'data/raw/large_cur.csv'
    output_dir = 'data/processed/large_scale'

    print("=" * 60)
    print("LARGE SCALE CUR INGESTION TEST")
    print("=" * 60)
    print(f"Target dataset size: {num_rows:,} rows")
    print(f"Input file: {input_file}")
    print(f"Output directory: {output_dir}")
    print("=" * 60)

    print(f"\nStep 1: Generating {num_rows:,} CUR rows...")
    generator = CurDataGenerator(seed=42, resources_per_service=5000)
    expected = generator.generate_large_dataset_chunked(input_file, num_rows, chunk_size=100000)

    print("\nStep 2: Parsing...")
    pipeline = CurIngestionPipeline(input_file, output_dir, config=config)
    results = pipeline.run()
    metadata = pipeline.result.metadata

    print("\nStep 3: Cross-checking against generated figures...")
    checks = {
        'processed rows': (metadata.processed_rows, expected['expected_processed_rows']),
        'unique workloads': (metadata.unique_workloads, expected['expected_unique_workloads']),
        'raw cost': (metadata.total_raw_cost, expected['expected_total_raw_cost']),
        'aggregated cost': (metadata.total_aggregated_cost, expected['expected_aggregated_cost']),
        'skipped rows': (metadata.skipped_rows.to_dict(), expected['expected_skipped_rows']),
    }

    failures = 0
    for name, (actual, wanted) in checks.items():
        ok = actual == wanted
        failures += 0 if ok else 1
        print(f"{'OK  ' if ok else 'FAIL'} {name}: {actual} (expected {wanted})")

    stats = results['processing_stats']
    print(f"\nParsed in {stats['total_processing_time_seconds']:.1f}s, "
          f"peak memory {stats['peak_memory_usage_mb']:.0f} MB")

    if failures:
        print(f"\n{failures} cross-checks failed!")
        sys.exit(1)
    print("\nAll cross-checks passed.")


if __name__ == '__main__':
    main()
