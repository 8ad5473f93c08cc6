# ========================
# api_server.py
# ========================

"""
FastAPI Server for CUR Workload Ingestion

REST endpoints for parsing AWS Cost and Usage Report uploads, either inline
or as background jobs whose workloads can be fetched afterwards.
"""

import asyncio
import logging
import shutil
import uuid
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from fastapi import FastAPI, File, UploadFile, HTTPException, BackgroundTasks, Query
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from src.cur_ingest import (
    CurIngestionPipeline,
    CurParseError,
    InMemoryWorkloadSink,
    ParseProgress,
    parse_cur_async,
)
from src.utils.config import Config
from src.utils.data_generator import CurDataGenerator
from src.utils.logging_setup import setup_logging
from src.utils.job_metadata import JobMetadataManager

# Configuration
config = Config()
setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(config.UPLOAD_DIR)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
JOB_OUTPUT_ROOT = Path(config.DEFAULT_OUTPUT_DIR) / "jobs"
JOB_OUTPUT_ROOT.mkdir(parents=True, exist_ok=True)

job_metadata_manager = JobMetadataManager(config.JOB_METADATA_FILE)

# Constants
JOB_NOT_FOUND_MSG = "Job not found"
JOB_NOT_COMPLETED_MSG = "Job not completed yet"

app = FastAPI(
    title="CUR Workload Ingestion API",
    description="Upload AWS Cost and Usage Reports and aggregate them into workloads",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def initialize_job_status() -> Dict[str, Dict[str, Any]]:
    """Load saved job metadata and add finished jobs found on disk."""
    job_status = job_metadata_manager.load_job_metadata()

    discovered_jobs = job_metadata_manager.discover_existing_jobs(str(JOB_OUTPUT_ROOT))
    for job_id, job_data in discovered_jobs.items():
        if job_id not in job_status:
            job_status[job_id] = job_data
            logger.info(f"Added discovered job {job_id}")

    if job_status:
        job_metadata_manager.save_job_metadata(job_status)
    return job_status


# Global state for tracking jobs; workloads of the most recent jobs stay in memory
job_status: Dict[str, Dict[str, Any]] = initialize_job_status()
job_sinks: "OrderedDict[str, InMemoryWorkloadSink]" = OrderedDict()


def retain_job_sink(job_id: str, sink: InMemoryWorkloadSink) -> None:
    """Keep a finished job's workloads, evicting the oldest beyond MAX_RETAINED_JOB_SINKS."""
    job_sinks[job_id] = sink
    while len(job_sinks) > config.MAX_RETAINED_JOB_SINKS:
        evicted_id, _ = job_sinks.popitem(last=False)
        logger.info(f"Released in-memory workloads of job {evicted_id}")


def persist_job_status():
    """Save current job status to persistent storage."""
    job_metadata_manager.save_job_metadata(job_status)


def _error_detail(error: CurParseError) -> Dict[str, Any]:
    detail = {"error": type(error).__name__, "message": str(error)}
    cap = getattr(error, 'cap', None)
    if cap:
        detail["cap"] = cap
    column = getattr(error, 'column', None)
    if column:
        detail["column"] = column
    return detail


class IngestionJobManager:
    """Runs CUR ingestion jobs in the background."""

    @staticmethod
    def run_ingestion(job_id: str, input_file: str, output_dir: str) -> None:
        """Run a CurIngestionPipeline for one uploaded or generated file."""
        job = job_status[job_id]
        logger.info(f"Starting ingestion job {job_id}")
        job['status'] = 'processing'
        job['started_at'] = datetime.now().isoformat()

        def record_progress(progress: ParseProgress) -> None:
            job['progress'] = progress.to_dict()

        sink = InMemoryWorkloadSink(max_seen_dates=config.MAX_SEEN_DATES)
        pipeline = CurIngestionPipeline(
            input_file=input_file,
            output_dir=output_dir,
            config=config,
            on_progress=record_progress,
        )

        try:
            if not pipeline.validate_input():
                raise CurParseError(f"Input file validation failed: {input_file}")
            results = pipeline.run(sink=sink)
        except CurParseError as e:
            logger.error(f"Ingestion job {job_id} failed: {e}")
            IngestionJobManager._mark_failed(job, _error_detail(e))
            return
        except Exception as e:
            logger.exception(f"Ingestion job {job_id} failed unexpectedly")
            IngestionJobManager._mark_failed(job, {"error": type(e).__name__, "message": str(e)})
            return

        retain_job_sink(job_id, sink)
        job['status'] = 'completed'
        job['completed_at'] = datetime.now().isoformat()
        job['results'] = results
        persist_job_status()
        logger.info(f"Ingestion job {job_id} completed: {results['workload_count']:,} workloads")

    @staticmethod
    def run_sample(job_id: str, num_rows: int, input_file: str, output_dir: str) -> None:
        """Generate a synthetic CUR and ingest it."""
        job = job_status[job_id]
        generator = CurDataGenerator(seed=42)
        try:
            generation_stats = generator.generate_dataset(file_path=input_file, num_rows=num_rows)
        except Exception as e:
            logger.exception(f"Sample generation for job {job_id} failed")
            IngestionJobManager._mark_failed(job, {"error": type(e).__name__, "message": str(e)})
            return

        job['generation_stats'] = {
            'total_rows': generation_stats['total_rows'],
            'anomaly_types': generation_stats['anomaly_types'],
            'expected_processed_rows': generation_stats['expected_processed_rows'],
            'expected_unique_workloads': generation_stats['expected_unique_workloads'],
        }
        IngestionJobManager.run_ingestion(job_id, input_file, output_dir)

    @staticmethod
    def _mark_failed(job: Dict[str, Any], detail: Dict[str, Any]) -> None:
        job['status'] = 'failed'
        job['error'] = detail
        job['failed_at'] = datetime.now().isoformat()
        persist_job_status()


def _new_job(job_id: str, filename: str, input_file: Path, job_type: str, **extra) -> Dict[str, Any]:
    output_dir = JOB_OUTPUT_ROOT / job_id
    job_status[job_id] = {
        'job_id': job_id,
        'filename': filename,
        'status': 'queued',
        'created_at': datetime.now().isoformat(),
        'input_file': str(input_file),
        'output_dir': str(output_dir),
        'type': job_type,
        **extra,
    }
    persist_job_status()
    return job_status[job_id]


def _get_job(job_id: str) -> Dict[str, Any]:
    if job_id not in job_status:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)
    return job_status[job_id]


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "CUR Workload Ingestion API",
        "version": "1.0.0",
        "endpoints": {
            "parse": "/parse - Parse a CUR CSV upload and return workloads",
            "upload": "/upload - Upload a CUR CSV for background ingestion",
            "run_sample": "/run-sample - Ingest a generated sample CUR",
            "status": "/status/{job_id} - Check job status",
            "jobs": "/jobs - List all jobs",
            "workloads": "/jobs/{job_id}/workloads - Workloads of a completed job",
            "download": "/download/{job_id}?file_type=workloads|metadata - Download job output",
            "health": "/health - Health check",
            "api_docs": "/docs - API documentation"
        },
        "api_docs_url": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "active_jobs": len([j for j in job_status.values() if j['status'] == 'processing'])
    }


@app.post("/parse")
async def parse_file(file: UploadFile = File(...)):
    """
    Parse a CUR upload inline.

    The upload is streamed through the parser, yielding to the event loop
    between line batches.

    Args:
        file: CUR CSV file

    Returns:
        dict: workloads and metadata
    """
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(status_code=400, detail="Only CSV files are supported")

    try:
        result = await parse_cur_async(file.file, total_size=getattr(file, 'size', None), config=config)
    except CurParseError as e:
        logger.warning(f"Parse of {file.filename} failed: {e}")
        raise HTTPException(status_code=422, detail=_error_detail(e))
    except Exception as e:
        logger.exception(f"Unexpected error parsing {file.filename}")
        raise HTTPException(status_code=500, detail=f"Parse failed: {e}")

    logger.info(f"Parsed {file.filename}: {len(result.workloads):,} workloads")
    return result.to_dict()


@app.post("/upload")
async def upload_file(background_tasks: BackgroundTasks, file: UploadFile = File(...)):
    """
    Upload a CUR file and queue an ingestion job.

    Args:
        file: CUR CSV file

    Returns:
        dict: Job ID and status information
    """
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(status_code=400, detail="Only CSV files are supported")

    job_id = str(uuid.uuid4())
    file_path = UPLOAD_DIR / f"{job_id}_{Path(file.filename).name}"

    def write_file():
        with open(file_path, "wb") as buffer:
            shutil.copyfileobj(file.file, buffer)

    try:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, write_file)
    except OSError as e:
        logger.error(f"Upload failed: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {e}")

    job = _new_job(job_id, file.filename, file_path, 'upload', file_size=file_path.stat().st_size)
    background_tasks.add_task(IngestionJobManager.run_ingestion, job_id, job['input_file'], job['output_dir'])

    logger.info(f"Queued ingestion job {job_id} for file {file.filename}")
    return {
        "job_id": job_id,
        "filename": file.filename,
        "status": "queued",
        "message": "File uploaded successfully. Ingestion started.",
        "estimated_processing_info": "Use /status/{job_id} to check progress"
    }


@app.post("/run-sample")
async def run_sample(
    background_tasks: BackgroundTasks,
    num_rows: int = Query(10000, description="Number of CUR rows to generate", ge=100, le=1000000)
):
    """
    Generate a synthetic CUR and ingest it (equivalent to running main.py).

    Args:
        num_rows: Number of sample rows to generate

    Returns:
        dict: Job ID and status information
    """
    job_id = str(uuid.uuid4())
    input_file = UPLOAD_DIR / f"{job_id}_sample_cur.csv"
    job = _new_job(job_id, f"sample_cur_{num_rows}_rows.csv", input_file, 'sample', num_rows=num_rows)
    background_tasks.add_task(
        IngestionJobManager.run_sample, job_id, num_rows, job['input_file'], job['output_dir']
    )

    logger.info(f"Queued sample ingestion job {job_id} with {num_rows} rows")
    return {
        "job_id": job_id,
        "type": "sample",
        "status": "queued",
        "parameters": {"num_rows": num_rows},
        "estimated_processing_info": "Use /status/{job_id} to check progress"
    }


@app.get("/status/{job_id}")
async def get_job_status(job_id: str):
    """
    Get the status of an ingestion job.

    Args:
        job_id: Unique job identifier

    Returns:
        dict: Job status and results
    """
    job = _get_job(job_id).copy()

    if job['status'] == 'completed' and 'results' in job:
        metadata = job['results'].get('metadata', {})
        job['summary'] = {
            'processed_rows': metadata.get('processedRows', 0),
            'unique_workloads': metadata.get('uniqueWorkloads', 0),
            'total_aggregated_cost': metadata.get('totalAggregatedCost', 0),
        }

    return job


@app.get("/jobs")
async def list_jobs(
    status: Optional[str] = Query(None, description="Filter by status: queued, processing, completed, failed"),
    limit: int = Query(50, description="Maximum number of jobs to return", ge=1, le=100)
):
    """
    List ingestion jobs with optional filtering.

    Args:
        status: Filter jobs by status
        limit: Maximum number of jobs to return

    Returns:
        dict: List of jobs
    """
    jobs = list(job_status.values())
    if status:
        jobs = [job for job in jobs if job['status'] == status]

    jobs.sort(key=lambda x: x.get('created_at') or '', reverse=True)
    jobs = jobs[:limit]

    return {
        "jobs": jobs,
        "total_count": len(job_status),
        "filtered_count": len(jobs)
    }


@app.get("/jobs/{job_id}/workloads")
async def get_job_workloads(
    job_id: str,
    offset: int = Query(0, ge=0),
    limit: int = Query(1000, ge=1, le=10000)
):
    """
    Workloads produced by a completed job, in first-seen order.

    Args:
        job_id: Unique job identifier
        offset: Index of the first workload to return
        limit: Maximum number of workloads to return

    Returns:
        dict: A page of workloads and the total count
    """
    job = _get_job(job_id)
    if job['status'] != 'completed':
        raise HTTPException(status_code=400, detail=JOB_NOT_COMPLETED_MSG)

    sink = job_sinks.get(job_id)
    if sink is None:
        raise HTTPException(status_code=404, detail="Workloads are no longer held in memory; use /download")

    workloads = sink.list_workloads()
    return {
        "job_id": job_id,
        "total_count": len(workloads),
        "workloads": [workload.to_dict() for workload in workloads[offset:offset + limit]],
    }


@app.get("/download/{job_id}")
async def download_results(job_id: str, file_type: str = Query(..., description="workloads or metadata")):
    """
    Download an output file of a completed job.

    Args:
        job_id: Unique job identifier
        file_type: 'workloads' (CSV) or 'metadata' (JSON)

    Returns:
        FileResponse: The requested file
    """
    job = _get_job(job_id)
    if job['status'] != 'completed':
        raise HTTPException(status_code=400, detail=JOB_NOT_COMPLETED_MSG)

    saved_files = job.get('results', {}).get('saved_files', {})
    if file_type not in saved_files:
        raise HTTPException(
            status_code=404,
            detail=f"File type '{file_type}' not found. Available types: {list(saved_files)}"
        )

    file_path = Path(saved_files[file_type])
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="File not found on disk")

    return FileResponse(
        path=file_path,
        filename=f"{job_id}_{file_path.name}",
        media_type='application/octet-stream'
    )


@app.delete("/jobs/{job_id}")
async def delete_job(job_id: str):
    """
    Delete a job and its associated files.

    Args:
        job_id: Unique job identifier

    Returns:
        dict: Deletion status
    """
    job = _get_job(job_id)

    try:
        input_file = Path(job.get('input_file', ''))
        if input_file.is_file():
            input_file.unlink()

        output_dir = Path(job['output_dir'])
        if output_dir.exists():
            shutil.rmtree(output_dir)
    except OSError as e:
        logger.error(f"Failed to delete job {job_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete job: {e}")

    del job_status[job_id]
    job_sinks.pop(job_id, None)
    persist_job_status()

    logger.info(f"Deleted job {job_id} and associated files")
    return {"message": f"Job {job_id} and associated files deleted successfully"}


def start_server(host: str = "0.0.0.0", port: int = config.API_PORT, reload: bool = False):
    """Start the FastAPI server."""
    logger.info(f"Starting CUR Workload Ingestion API server on {host}:{port}")
    uvicorn.run(
        "api_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    start_server(reload=True)
