# ========================
# src/utils/logging_setup.py
# ========================

"""
Logging Configuration

Centralized logging setup for CUR ingestion entry points.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str = "INFO",
                  log_file: Optional[str] = None,
                  log_dir: str = "logs") -> None:
    """
    Set up root logging for a CLI run or the API server.

    Args:
        log_level (str): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file (str): Optional log file name; the file receives DEBUG and up
        log_dir (str): Directory for log files
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_path = log_path / log_file
        file_handler = logging.FileHandler(file_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        # The file sees everything, so the root must let DEBUG through
        root_logger.setLevel(logging.DEBUG)
        logging.info(f"Logging to file: {file_path}")

    # Per-row debug lines stay out of the log file unless DEBUG was requested
    if level > logging.DEBUG:
        logging.getLogger('src.cur_ingest.cleaning').setLevel(logging.INFO)
    logging.getLogger('multipart').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    logging.info(f"Logging initialized - Level: {log_level}")
