# ========================
# tests/test_pipeline.py
# ========================

import unittest
import asyncio
import csv
import itertools
import json
import os
import shutil
import sys
import tempfile
from decimal import Decimal
from unittest import mock

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.cur_ingest import (
    CapacityExceededError,
    CurIngestionPipeline,
    EmptyDataError,
    HeaderResolutionError,
    InMemoryWorkloadSink,
    NormalizationCache,
    ParseTimeoutError,
    SourceReadError,
    parse_cur,
    parse_cur_async,
    publish_workloads,
)
from src.cur_ingest.models import DateRange, Workload
from src.cur_ingest.transformation import workload_key
from src.utils.config import Config
from src.utils.data_generator import CurDataGenerator

HEADER = "ProductCode,ResourceId,UnblendedCost"


def cur_bytes(*rows, header=HEADER, newline="\n"):
    return newline.join((header,) + rows).encode("utf-8") + newline.encode("utf-8")


def chunked(data, size):
    return iter([data[i:i + size] for i in range(0, len(data), size)])


class TestParseCur(unittest.TestCase):
    """Test row policy and aggregation through parse_cur."""

    def test_rows_for_same_resource_aggregate(self):
        result = parse_cur(cur_bytes("AmazonEC2,i-1,10.00", "AmazonEC2,i-1,5.50"))

        self.assertEqual(len(result.workloads), 1)
        workload = result.workloads[0]
        self.assertEqual(workload.service, "EC2")
        self.assertEqual(workload.category, "vm")
        self.assertEqual(workload.region, "us-east-1")
        self.assertEqual(workload.monthly_cost, Decimal("15.50"))
        self.assertEqual(result.metadata.processed_rows, 2)

    def test_tax_row_is_excluded_but_counted_in_raw_cost(self):
        result = parse_cur(cur_bytes("AmazonEC2,i-1,1.00", "TAX,,3.00"))

        self.assertEqual([w.id for w in result.workloads], ["i-1"])
        self.assertEqual(result.metadata.total_raw_cost, Decimal("4.00"))
        self.assertEqual(result.metadata.total_aggregated_cost, Decimal("1.00"))
        self.assertEqual(result.metadata.skipped_rows.tax, 1)

    def test_zero_cost_row_is_kept(self):
        result = parse_cur(cur_bytes("AmazonEC2,i-2,0.00"))

        self.assertEqual(result.metadata.processed_rows, 1)
        self.assertEqual(result.workloads[0].monthly_cost, Decimal("0"))
        self.assertEqual(result.metadata.skipped_rows.zero_cost, 1)

    def test_date_in_product_code_column_is_skipped(self):
        result = parse_cur(cur_bytes("AmazonEC2,i-1,1.00", "2025-09-22T09:00:00Z,i-3,2.00"))

        self.assertEqual(len(result.workloads), 1)
        self.assertEqual(result.metadata.skipped_rows.no_product_code, 1)
        self.assertEqual(result.metadata.total_raw_cost, Decimal("3.00"))

    def test_blank_product_code_is_skipped(self):
        result = parse_cur(cur_bytes("AmazonEC2,i-1,1.00", ",i-4,2.00"))
        self.assertEqual(result.metadata.skipped_rows.no_product_code, 1)

    def test_rows_without_resource_id_are_grouped(self):
        result = parse_cur(cur_bytes("AmazonCloudFront,,1.00", "AmazonCloudFront,,2.00"))

        self.assertEqual(len(result.workloads), 1)
        workload = result.workloads[0]
        self.assertEqual(workload.id, "cloudfront_us-east-1_aggregated")
        self.assertEqual(workload.monthly_cost, Decimal("3.00"))

    def test_workload_name_is_last_path_segment(self):
        arn = "arn:aws:dynamodb:us-east-1:123456789012:table/orders"
        result = parse_cur(cur_bytes(f"AmazonDynamoDB,{arn},1.00"))

        self.assertEqual(result.workloads[0].id, arn)
        self.assertEqual(result.workloads[0].name, "orders")

    def test_workloads_keep_first_seen_order(self):
        result = parse_cur(cur_bytes(
            "AmazonS3,bucket-b,1", "AmazonEC2,i-1,1", "AmazonS3,bucket-b,1", "AWSLambda,fn-a,1",
        ))
        self.assertEqual([w.id for w in result.workloads], ["bucket-b", "i-1", "fn-a"])

    def test_metadata_row_counts_add_up(self):
        result = parse_cur(cur_bytes(
            "AmazonEC2,i-1,1", "TAX,,1", ",x,1", "AmazonEC2,i-2,0", "CustomThing,c-1,2",
        ))
        metadata = result.metadata
        skipped = metadata.skipped_rows

        self.assertEqual(metadata.total_rows, 5)
        self.assertEqual(
            metadata.total_rows,
            metadata.processed_rows + skipped.no_product_code + skipped.tax + skipped.parse_errors,
        )
        self.assertEqual(metadata.unique_workloads, len(result.workloads))
        self.assertEqual(result.workloads[-1].service, "CustomThing")

    def test_full_cur_row(self):
        header = ("lineItem/UsageStartDate,lineItem/UsageEndDate,lineItem/ProductCode,"
                  "lineItem/ResourceId,lineItem/UsageType,lineItem/UsageAmount,"
                  "lineItem/UnblendedCost,product/instanceType,product/operatingSystem,product/region")
        result = parse_cur(cur_bytes(
            "2025-09-02T00:00:00Z,2025-09-02T01:00:00Z,AmazonEC2,i-1,BoxUsage,1,0.10,m5.large,Windows,eu-west-1",
            "2025-09-01T00:00:00Z,2025-09-01T01:00:00Z,AmazonEC2,i-1,BoxUsage,1,0.10,m5.large,Windows,eu-west-1",
            "2025-09-01T00:00:00Z,2025-09-01T01:00:00Z,AmazonS3,bucket,TimedStorage-GB-Mo,12.5,0.30,,,eu-west-1",
            header=header,
        ))
        ec2, s3 = result.workloads

        self.assertEqual((ec2.cpu, ec2.memory, ec2.os), (2, 8, "windows"))
        self.assertEqual(ec2.date_range, DateRange("2025-09-01T00:00:00Z", "2025-09-02T01:00:00Z"))
        self.assertEqual(ec2.seen_dates, ["2025-09-02T00:00:00Z", "2025-09-01T00:00:00Z"])
        self.assertEqual(s3.storage, Decimal("12.5"))
        self.assertEqual(ec2.storage, Decimal("0"))

    def test_wire_format(self):
        data = parse_cur(cur_bytes("AmazonEC2,i-1,1.25")).to_dict()

        self.assertEqual(data["workloads"][0]["monthlyCost"], 1.25)
        self.assertEqual(data["metadata"]["skippedRows"]["zeroCost"], 0)
        self.assertIn("uniqueWorkloads", data["metadata"])


class TestStreamingBehaviour(unittest.TestCase):
    """Test chunking, limits and the async entry point."""

    ROWS = tuple(f"AmazonEC2,i-{n % 7},{n}.25" for n in range(60)) + ('AmazonS3,"arn:aws:s3:::b,c",1',)

    def test_chunk_size_and_line_endings_do_not_change_the_result(self):
        baseline = parse_cur(cur_bytes(*self.ROWS)).to_dict()

        for size in (1, 7, 64):
            crlf = cur_bytes(*self.ROWS, newline="\r\n")
            self.assertEqual(parse_cur(chunked(crlf, size)).to_dict(), baseline)

    def test_sub_chunking_does_not_change_the_result(self):
        config = Config({'LARGE_CHUNK_THRESHOLD_CHARS': 50, 'SUB_CHUNK_CHARS': 16, 'LINE_BATCH_SIZE': 2})
        baseline = parse_cur(cur_bytes(*self.ROWS)).to_dict()

        self.assertEqual(parse_cur(cur_bytes(*self.ROWS), config=config).to_dict(), baseline)

    def test_last_line_without_newline(self):
        result = parse_cur(b"ProductCode,ResourceId,UnblendedCost\nAmazonEC2,i-1,2.00")
        self.assertEqual(result.metadata.total_aggregated_cost, Decimal("2.00"))

    def test_blank_lines_are_ignored(self):
        result = parse_cur(b"\n\nProductCode,ResourceId,UnblendedCost\n\nAmazonEC2,i-1,2.00\n\n")
        self.assertEqual(result.metadata.total_rows, 1)

    def test_parse_is_deterministic(self):
        self.assertEqual(
            parse_cur(cur_bytes(*self.ROWS)).to_dict(),
            parse_cur(cur_bytes(*self.ROWS)).to_dict(),
        )

    def test_empty_inputs(self):
        for data in (b"", b"\n\n", cur_bytes()):
            with self.assertRaises(EmptyDataError):
                parse_cur(data)

    def test_missing_product_code_column(self):
        with self.assertRaises(HeaderResolutionError):
            parse_cur(b"ResourceId,UnblendedCost\ni-1,1.00\n")

    def test_workload_cap(self):
        with self.assertRaises(CapacityExceededError) as ctx:
            parse_cur(cur_bytes("AmazonEC2,i-1,1", "AmazonEC2,i-1,1", "AmazonEC2,i-2,1"),
                      config=Config({'MAX_WORKLOADS': 1}))
        self.assertEqual(ctx.exception.cap, "workloads")

    def test_unterminated_line_cap(self):
        with self.assertRaises(CapacityExceededError) as ctx:
            parse_cur(b"ProductCode\n" + b"A" * 50, config=Config({'MAX_PENDING_LINE_CHARS': 20}))
        self.assertEqual(ctx.exception.cap, "pending_line_chars")

    def test_invalid_utf8(self):
        with self.assertRaises(SourceReadError):
            parse_cur(b"ProductCode\n\xff\n")

    def test_timeout(self):
        clock = itertools.count(0, 10)
        with mock.patch('src.cur_ingest.scheduler.time.monotonic', side_effect=lambda: next(clock)):
            with self.assertRaises(ParseTimeoutError):
                parse_cur(cur_bytes(*self.ROWS), timeout_seconds=5)

            result = parse_cur(cur_bytes(*self.ROWS), timeout_seconds=None)
        self.assertEqual(result.metadata.total_rows, len(self.ROWS))

    def test_progress_reaches_100(self):
        data = cur_bytes(*self.ROWS)
        updates = []

        parse_cur(data, on_progress=updates.append, config=Config({'BUFFER_CHUNK_BYTES': 64}))

        percents = [update.percent for update in updates]
        self.assertGreater(len(updates), 1)
        self.assertEqual(percents, sorted(percents))
        self.assertEqual(updates[-1].percent, 100)
        self.assertEqual(updates[-1].bytes_processed, len(data))
        self.assertEqual(updates[-1].total_bytes, len(data))

    def test_no_progress_without_total_size(self):
        data = cur_bytes(*self.ROWS)
        updates = []

        parse_cur(chunked(data, 64), on_progress=updates.append)
        self.assertEqual(updates, [])

        parse_cur(chunked(data, 64), total_size=len(data), on_progress=updates.append)
        self.assertEqual(updates[-1].percent, 100)

    def test_out_of_range_cost_is_a_row_error(self):
        result = parse_cur(cur_bytes(
            "AmazonEC2,i-1,1.00",
            "AmazonEC2,i-2,1E+1000000",
            "AmazonEC2,i-3,0.1E-30",
            "AmazonEC2,i-1,2.00",
        ))

        metadata = result.metadata
        self.assertEqual([w.id for w in result.workloads], ["i-1"])
        self.assertEqual(metadata.skipped_rows.parse_errors, 2)
        self.assertEqual(metadata.total_rows, 4)
        self.assertEqual(metadata.processed_rows, 2)
        self.assertEqual(metadata.total_raw_cost, Decimal("3.00"))

    def test_sums_stay_exact_beyond_default_precision(self):
        result = parse_cur(cur_bytes(
            "AmazonEC2,i-1,100000000000000.00000000000000000001",
            "AmazonEC2,i-1,0.00000000000000000001",
        ))

        expected = Decimal("100000000000000.00000000000000000002")
        self.assertEqual(result.workloads[0].monthly_cost, expected)
        self.assertEqual(result.metadata.total_raw_cost, expected)
        self.assertEqual(result.metadata.total_aggregated_cost, expected)

    def test_seen_dates_are_capped(self):
        rows = [f"AmazonEC2,i-1,1,2024-01-01T{hour:02d}:00:00Z" for hour in range(24)]
        result = parse_cur(
            cur_bytes(*rows, header=HEADER + ",UsageStartDate"),
            config=Config({'MAX_SEEN_DATES': 5}),
        )

        workload = result.workloads[0]
        self.assertEqual(len(workload.seen_dates), 5)
        self.assertEqual(workload.seen_dates[0], "2024-01-01T00:00:00Z")
        self.assertEqual(workload.monthly_cost, Decimal("24"))

    def test_shared_normalization_cache(self):
        cache = NormalizationCache()
        parse_cur(cur_bytes("AmazonEC2,i-1,1"), normalization_cache=cache)
        self.assertIsNotNone(cache.get("AMAZONEC2"))

    def test_async_matches_sync(self):
        data = cur_bytes(*self.ROWS)
        result = asyncio.run(parse_cur_async(data))
        self.assertEqual(result.to_dict(), parse_cur(data).to_dict())

    def test_async_parse_yields_to_other_tasks(self):
        config = Config({'LINE_BATCH_SIZE': 1})

        async def run():
            ticks = []
            done = asyncio.Event()

            async def ticker():
                while not done.is_set():
                    ticks.append(1)
                    await asyncio.sleep(0)

            task = asyncio.ensure_future(ticker())
            await parse_cur_async(cur_bytes(*self.ROWS), config=config)
            done.set()
            await task
            return len(ticks)

        self.assertGreater(asyncio.run(run()), 10)


class TestGeneratedDataset(unittest.TestCase):
    """Cross-check a parse against a generated CUR file."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.input_file = os.path.join(self.temp_dir, "cur.csv")
        generator = CurDataGenerator(seed=7, resources_per_service=10)
        self.expected = generator.generate_dataset(self.input_file, num_rows=2000, anomaly_rate=0.3)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_parse_matches_generated_figures(self):
        result = parse_cur(self.input_file)
        metadata = result.metadata

        self.assertEqual(metadata.total_rows, 2000)
        self.assertEqual(metadata.processed_rows, self.expected['expected_processed_rows'])
        self.assertEqual(metadata.total_raw_cost, self.expected['expected_total_raw_cost'])
        self.assertEqual(metadata.total_aggregated_cost, self.expected['expected_aggregated_cost'])
        self.assertEqual(metadata.skipped_rows.to_dict(), self.expected['expected_skipped_rows'])
        self.assertEqual(metadata.unique_workloads, self.expected['expected_unique_workloads'])

        costs = {workload_key(w.id, w.service, w.region): w.monthly_cost for w in result.workloads}
        self.assertEqual(costs, self.expected['expected_workload_costs'])

    def test_pipeline_run_writes_files_and_publishes(self):
        output_dir = os.path.join(self.temp_dir, "out")
        sink = InMemoryWorkloadSink()
        pipeline = CurIngestionPipeline(self.input_file, output_dir)

        self.assertTrue(pipeline.validate_input())
        results = pipeline.run(sink=sink)

        self.assertEqual(results['pipeline_status'], 'completed')
        self.assertEqual(results['workload_count'], len(pipeline.result.workloads))
        self.assertEqual(results['published_workloads'], results['workload_count'])
        self.assertEqual(len(sink), results['workload_count'])
        self.assertEqual(results['processing_stats']['input_file_size'], os.path.getsize(self.input_file))

        with open(results['saved_files']['metadata'], encoding='utf-8') as f:
            self.assertEqual(json.load(f), results['metadata'])
        with open(results['saved_files']['workloads'], newline='', encoding='utf-8') as f:
            self.assertEqual(len(list(csv.DictReader(f))), results['workload_count'])

    def test_estimate_processing_time(self):
        estimates = CurIngestionPipeline(self.input_file).estimate_processing_time()

        self.assertGreater(estimates['file_size_mb'], 0)
        self.assertIn('estimated_processing_time_seconds', estimates)


class TestCurIngestionPipelineErrors(unittest.TestCase):
    """Test pipeline behaviour for unusable input."""

    def test_missing_file(self):
        pipeline = CurIngestionPipeline("non_existent_file.csv")

        self.assertFalse(pipeline.validate_input())
        self.assertEqual(pipeline.estimate_processing_time(), {})
        with self.assertRaises(SourceReadError):
            pipeline.run()

    def test_failed_parse_publishes_nothing(self):
        with tempfile.NamedTemporaryFile(mode='wb', suffix='.csv', delete=False) as f:
            f.write(b"ProductCode,UnblendedCost\n")
            temp_file_path = f.name

        try:
            sink = InMemoryWorkloadSink()
            with self.assertRaises(EmptyDataError):
                CurIngestionPipeline(temp_file_path).run(sink=sink)
            self.assertEqual(len(sink), 0)
        finally:
            os.unlink(temp_file_path)


class TestInMemoryWorkloadSink(unittest.TestCase):
    """Test the reference workload sink."""

    def _workload(self, cost, start, end):
        workload = Workload(id="i-1", name="i-1", service="EC2", category="vm",
                            region="us-east-1", monthly_cost=Decimal(cost))
        workload.record_usage_dates(start, end, 10)
        return workload

    def test_matching_workloads_are_merged(self):
        sink = InMemoryWorkloadSink()
        first = self._workload("1.00", "2025-09-02T00:00:00Z", "2025-09-02T01:00:00Z")
        second = self._workload("2.00", "2025-09-01T00:00:00Z", "2025-09-01T01:00:00Z")

        self.assertEqual(publish_workloads([first, second], sink), 2)

        self.assertEqual(len(sink), 1)
        merged = sink.list_workloads()[0]
        self.assertEqual(merged.monthly_cost, Decimal("3.00"))
        self.assertEqual(merged.date_range, DateRange("2025-09-01T00:00:00Z", "2025-09-02T01:00:00Z"))
        self.assertEqual(merged.seen_dates, ["2025-09-02T00:00:00Z", "2025-09-01T00:00:00Z"])

    def test_saved_workload_is_copied(self):
        sink = InMemoryWorkloadSink()
        workload = self._workload("1.00", "2025-09-02T00:00:00Z", "2025-09-02T01:00:00Z")

        sink.save(workload)
        sink.save(self._workload("1.00", "2025-09-03T00:00:00Z", "2025-09-03T01:00:00Z"))

        self.assertEqual(workload.monthly_cost, Decimal("1.00"))
        self.assertEqual(len(workload.seen_dates), 1)

    def test_different_regions_stay_apart(self):
        sink = InMemoryWorkloadSink()
        east = self._workload("1.00", "2025-09-01T00:00:00Z", "2025-09-01T01:00:00Z")
        west = self._workload("1.00", "2025-09-01T00:00:00Z", "2025-09-01T01:00:00Z")
        west.region = "us-west-2"

        publish_workloads([east, west], sink)
        self.assertEqual(len(sink), 2)

        sink.clear()
        self.assertEqual(len(sink), 0)


if __name__ == '__main__':
    unittest.main()
