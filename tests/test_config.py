# ========================
# tests/test_config.py
# ========================

import unittest
import os
import sys
import tempfile
from unittest import mock

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.utils.config import Config
from src.utils.performance_monitor import monitor_performance


class TestConfig(unittest.TestCase):
    """Test environment-driven configuration."""

    def test_environment_overrides(self):
        with mock.patch.dict(os.environ, {'CUR_LINE_BATCH_SIZE': '250', 'CUR_MAX_WORKLOADS': '10'}):
            config = Config()

        self.assertEqual(config.LINE_BATCH_SIZE, 250)
        self.assertEqual(config.MAX_WORKLOADS, 10)

    def test_timeout_can_be_disabled(self):
        for value in ('0', 'none', ''):
            with mock.patch.dict(os.environ, {'CUR_PARSE_TIMEOUT_SECONDS': value}):
                self.assertIsNone(Config().PARSE_TIMEOUT_SECONDS)

        with mock.patch.dict(os.environ, {'CUR_PARSE_TIMEOUT_SECONDS': '12.5'}):
            self.assertEqual(Config().PARSE_TIMEOUT_SECONDS, 12.5)

    def test_dict_overrides_ignore_unknown_keys(self):
        config = Config({'max_seen_dates': 5, 'NOT_A_SETTING': 1})

        self.assertEqual(config.MAX_SEEN_DATES, 5)
        self.assertFalse(hasattr(config, 'NOT_A_SETTING'))

    def test_validate_config(self):
        self.assertTrue(all(Config().validate_config().values()))

        validations = Config({'LINE_BATCH_SIZE': 0, 'MAX_WORKLOADS': -1}).validate_config()
        self.assertFalse(validations['line_batch_size'])
        self.assertFalse(validations['max_workloads'])

    def test_file_round_trip(self):
        config = Config({'MAX_WORKLOADS': 42, 'LOG_LEVEL': 'DEBUG'})
        temp_dir = tempfile.mkdtemp()
        file_path = os.path.join(temp_dir, 'config.json')

        try:
            config.save_to_file(file_path)
            loaded = Config.load_from_file(file_path)
        finally:
            os.unlink(file_path)
            os.rmdir(temp_dir)

        self.assertEqual(loaded.to_dict(), config.to_dict())
        self.assertIn("MAX_WORKLOADS: 42", str(loaded))


class TestPerformanceMonitor(unittest.TestCase):
    """Test the psutil-backed performance monitor."""

    def test_summary_tracks_cumulative_progress(self):
        with monitor_performance("test run", log_interval=1) as monitor:
            monitor.update_progress(10, 100)
            monitor.update_progress(25, 300)
            monitor.add_checkpoint('parsed', {'workloads': 3})

        summary = monitor.summary
        self.assertEqual(summary['lines_processed'], 25)
        self.assertEqual(summary['bytes_processed'], 300)
        self.assertEqual(summary['chunks_processed'], 2)
        self.assertEqual(summary['checkpoints'][0]['metadata'], {'workloads': 3})
        self.assertGreater(summary['peak_memory_usage_mb'], 0)

    def test_summary_is_recorded_when_the_block_fails(self):
        with self.assertRaises(RuntimeError):
            with monitor_performance("failing run") as monitor:
                raise RuntimeError("boom")

        self.assertIn('total_processing_time_seconds', monitor.summary)


if __name__ == '__main__':
    unittest.main()
