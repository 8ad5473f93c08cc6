# ========================
# src/utils/job_metadata.py
# ========================

"""
Job Metadata Management

Handles persistent storage and discovery of CUR ingestion job metadata.
"""

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

logger = logging.getLogger(__name__)


class JobMetadataManager:
    """Manages persistent job metadata storage."""

    def __init__(self, metadata_file: str = "data/job_metadata.json"):
        self.metadata_file = Path(metadata_file)
        self.metadata_file.parent.mkdir(parents=True, exist_ok=True)

    def save_job_metadata(self, job_status_dict: Dict[str, Dict[str, Any]]) -> None:
        """Save all job metadata to persistent storage."""
        try:
            with open(self.metadata_file, 'w') as f:
                json.dump(job_status_dict, f, indent=2, default=str)
            logger.debug(f"Saved job metadata for {len(job_status_dict)} jobs")
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save job metadata: {e}")

    def load_job_metadata(self) -> Dict[str, Dict[str, Any]]:
        """Load job metadata from persistent storage."""
        if not self.metadata_file.exists():
            return {}
        try:
            with open(self.metadata_file, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load job metadata: {e}")
            return {}
        logger.info(f"Loaded metadata for {len(data)} persisted jobs")
        return data

    def discover_existing_jobs(self, output_root: str) -> Dict[str, Dict[str, Any]]:
        """
        Rebuild metadata for finished jobs whose output directories survived
        but whose metadata file did not.

        Args:
            output_root (str): Directory holding one sub-directory per job id

        Returns:
            dict: job_id -> reconstructed job metadata
        """
        discovered_jobs = {}
        root = Path(output_root)
        if not root.exists():
            return discovered_jobs

        for job_dir in root.iterdir():
            if not job_dir.is_dir() or not self._is_valid_uuid(job_dir.name):
                continue

            metadata_path = job_dir / "metadata.json"
            if not metadata_path.exists():
                continue

            try:
                with open(metadata_path, 'r') as f:
                    parse_metadata = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Could not read metadata for job {job_dir.name}: {e}")
                continue

            completed_at = datetime.fromtimestamp(metadata_path.stat().st_mtime).isoformat()
            discovered_jobs[job_dir.name] = {
                'job_id': job_dir.name,
                'filename': 'unknown_file.csv',
                'status': 'completed',
                'created_at': completed_at,
                'completed_at': completed_at,
                'output_dir': str(job_dir),
                'type': 'discovered',
                'results': {
                    'metadata': parse_metadata,
                    'saved_files': {
                        'workloads': str(job_dir / "workloads.csv"),
                        'metadata': str(metadata_path),
                    },
                },
            }

        if discovered_jobs:
            logger.info(f"Discovered {len(discovered_jobs)} existing jobs in {root}")
        return discovered_jobs

    def _is_valid_uuid(self, uuid_string: str) -> bool:
        """Check if string is a valid UUID."""
        try:
            uuid.UUID(uuid_string)
            return True
        except ValueError:
            return False
