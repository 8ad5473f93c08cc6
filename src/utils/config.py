# ========================
# src/utils/config.py
# ========================

"""
Configuration Management

Centralized configuration for CUR ingestion with environment support.
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional


def _optional_float(value: str) -> Optional[float]:
    """Parse a timeout-style value where '', 'none' and '0' mean disabled."""
    if value is None or value.strip().lower() in ('', 'none', '0'):
        return None
    return float(value)


class Config:
    """
    Configuration class for the CUR ingestion engine.
    Supports environment variables and default values.
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_dict (dict): Optional configuration overrides
        """
        # Chunking
        self.BUFFER_CHUNK_BYTES = int(os.getenv('CUR_BUFFER_CHUNK_BYTES', str(10 * 1024 * 1024)))
        self.STREAM_CHUNK_BYTES = int(os.getenv('CUR_STREAM_CHUNK_BYTES', str(1024 * 1024)))
        self.LARGE_CHUNK_THRESHOLD_CHARS = int(os.getenv('CUR_LARGE_CHUNK_THRESHOLD_CHARS', '500000'))
        self.SUB_CHUNK_CHARS = int(os.getenv('CUR_SUB_CHUNK_CHARS', '100000'))
        self.LINE_BATCH_SIZE = int(os.getenv('CUR_LINE_BATCH_SIZE', '1000'))

        # Line and header limits
        self.MAX_LINE_LENGTH = int(os.getenv('CUR_MAX_LINE_LENGTH', '10000000'))
        self.MAX_PENDING_LINE_CHARS = int(os.getenv('CUR_MAX_PENDING_LINE_CHARS', '40000000'))
        self.MAX_FIELDS = int(os.getenv('CUR_MAX_FIELDS', '10000'))
        self.MAX_HEADER_COLUMNS = int(os.getenv('CUR_MAX_HEADER_COLUMNS', '1000'))

        # Aggregation limits
        self.MAX_WORKLOADS = int(os.getenv('CUR_MAX_WORKLOADS', '2000000'))
        self.MAX_SEEN_DATES = int(os.getenv('CUR_MAX_SEEN_DATES', '1000'))
        self.MAX_CACHED_CODES = int(os.getenv('CUR_MAX_CACHED_CODES', '100000'))
        self.MAX_WARNED_CODES = int(os.getenv('CUR_MAX_WARNED_CODES', '10000'))

        # Time budget
        self.PARSE_TIMEOUT_SECONDS = _optional_float(os.getenv('CUR_PARSE_TIMEOUT_SECONDS', '300'))

        # File Paths
        self.DEFAULT_INPUT_FILE = os.getenv('CUR_INPUT_FILE', 'data/raw/cur_sample.csv')
        self.DEFAULT_OUTPUT_DIR = os.getenv('CUR_OUTPUT_DIR', 'data/processed')
        self.UPLOAD_DIR = os.getenv('CUR_UPLOAD_DIR', 'data/uploads')
        self.JOB_METADATA_FILE = os.getenv('CUR_JOB_METADATA_FILE', 'data/job_metadata.json')

        # Data Generation Settings
        self.DEFAULT_SAMPLE_ROWS = int(os.getenv('CUR_SAMPLE_ROWS', '10000'))

        # API Settings
        self.API_PORT = int(os.getenv('CUR_API_PORT', '8000'))
        self.MAX_RETAINED_JOB_SINKS = int(os.getenv('CUR_MAX_RETAINED_JOB_SINKS', '10'))

        # Logging Configuration
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
        self.LOG_PROGRESS_INTERVAL = int(os.getenv('CUR_LOG_PROGRESS_INTERVAL', '100'))

        # Override with provided config
        if config_dict:
            self._update_from_dict(config_dict)

    def _update_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        for key, value in config_dict.items():
            if hasattr(self, key.upper()):
                setattr(self, key.upper(), value)

    def get_data_paths(self) -> Dict[str, Path]:
        """Get all configured data paths as Path objects."""
        return {
            'input_file': Path(self.DEFAULT_INPUT_FILE),
            'output_dir': Path(self.DEFAULT_OUTPUT_DIR),
            'upload_dir': Path(self.UPLOAD_DIR),
            'job_metadata_file': Path(self.JOB_METADATA_FILE),
        }

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        paths = self.get_data_paths()
        for path_name, path in paths.items():
            if path_name.endswith('_dir'):
                path.mkdir(parents=True, exist_ok=True)
            else:
                path.parent.mkdir(parents=True, exist_ok=True)

    def validate_config(self) -> Dict[str, bool]:
        """
        Validate configuration values.

        Returns:
            dict: Validation results for each setting
        """
        validations = {}

        validations['buffer_chunk_bytes'] = self.BUFFER_CHUNK_BYTES > 0
        validations['stream_chunk_bytes'] = self.STREAM_CHUNK_BYTES > 0
        validations['sub_chunk_chars'] = 0 < self.SUB_CHUNK_CHARS <= self.LARGE_CHUNK_THRESHOLD_CHARS
        validations['line_batch_size'] = self.LINE_BATCH_SIZE > 0
        validations['max_line_length'] = self.MAX_LINE_LENGTH > 0
        validations['max_pending_line_chars'] = self.MAX_PENDING_LINE_CHARS >= self.MAX_LINE_LENGTH
        validations['max_fields'] = self.MAX_FIELDS > 0
        validations['max_header_columns'] = self.MAX_HEADER_COLUMNS > 0
        validations['max_workloads'] = self.MAX_WORKLOADS > 0
        validations['max_seen_dates'] = self.MAX_SEEN_DATES >= 0
        validations['max_cached_codes'] = self.MAX_CACHED_CODES >= 0
        validations['max_warned_codes'] = self.MAX_WARNED_CODES >= 0
        validations['parse_timeout'] = self.PARSE_TIMEOUT_SECONDS is None or self.PARSE_TIMEOUT_SECONDS > 0
        validations['sample_rows'] = self.DEFAULT_SAMPLE_ROWS > 0
        validations['api_port'] = 1000 <= self.API_PORT <= 65535
        validations['max_retained_job_sinks'] = self.MAX_RETAINED_JOB_SINKS >= 0

        # Validate log level
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        validations['log_level'] = self.LOG_LEVEL.upper() in valid_log_levels

        return validations

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            attr: getattr(self, attr)
            for attr in dir(self)
            if not attr.startswith('_') and not callable(getattr(self, attr))
        }

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_from_file(cls, file_path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(file_path, 'r') as f:
            config_dict = json.load(f)
        return cls(config_dict)

    def __str__(self) -> str:
        """String representation of configuration."""
        lines = ["Configuration Settings:"]
        config_dict = self.to_dict()
        for key, value in sorted(config_dict.items()):
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)
