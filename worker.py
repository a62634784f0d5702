#!/usr/bin/env python3
"""
Async Job Worker Process

Continuously polls the job queue and executes listing workflows.
Can be run as a separate process/service from the web app.
"""

import logging
import os
import sys
import time

import jobs
from jobs import (
    JOB_PROCESS_APPROVED,
    JOB_REPROCESS,
    JOB_STAGE_DRAFTS,
    claim_next_job,
    record_progress,
    requeue_stale_jobs,
    update_job_status,
)
from settings import ConfigError, load_settings
from workflows.listing_workflows import (
    build_pipeline,
    run_process_approved_workflow,
    run_reprocess_workflow,
    run_stage_drafts_workflow,
)

WORKER_ID = f"worker-{os.getpid()}"

JOB_HANDLERS = {
    JOB_STAGE_DRAFTS: run_stage_drafts_workflow,
    JOB_PROCESS_APPROVED: run_process_approved_workflow,
    JOB_REPROCESS: run_reprocess_workflow,
}


def make_progress_callback(job_id: str):
    """Callback that stores workflow progress on the job row."""
    def progress_callback(stage: str, data: dict):
        try:
            record_progress(job_id, {'stage': stage, **data})
        except Exception as e:
            logging.warning(f"Could not record progress for job {job_id}: {e}")
    return progress_callback


def process_job(job, pipeline, handlers=None):
    """
    Process a single job.

    Args:
        job: Job dict from database
        pipeline: Pipeline shared across jobs
        handlers: job type -> workflow function (defaults to JOB_HANDLERS)
    """
    handlers = handlers or JOB_HANDLERS
    job_id = job['id']
    job_type = job['type']

    logging.info(f"Processing job {job_id} (type: {job_type})")

    handler = handlers.get(job_type)
    if handler is None:
        error = f"Unknown job type: {job_type}"
        update_job_status(job_id, 'failed', error=error)
        logging.error(f"Job {job_id} failed: {error}")
        return

    try:
        update_job_status(job_id, 'running', progress={'stage': 'starting'})
        result = handler(pipeline, job.get('payload') or {}, make_progress_callback(job_id))

        status_code = result.get('status_code', 200) if isinstance(result, dict) else 200
        if status_code >= 400:
            error = result.get('error') or f"Workflow returned {status_code}"
            update_job_status(job_id, 'failed', result=result, error=error)
            logging.error(f"Job {job_id} failed: {error}")
        else:
            update_job_status(job_id, 'succeeded', result=result)
            logging.info(f"Job {job_id} succeeded")

    except Exception as e:
        error = f"Worker exception: {str(e)}"
        attempts = job['attempts'] + 1

        logging.exception(f"Job {job_id} raised exception")

        if attempts >= job['max_attempts']:
            update_job_status(job_id, 'failed', error=error, attempts=attempts)
            logging.error(f"Job {job_id} failed permanently after {attempts} attempts")
        else:
            update_job_status(job_id, 'queued', error=error, attempts=attempts)
            logging.warning(f"Job {job_id} exception (attempt {attempts}/{job['max_attempts']}), requeuing")


def worker_loop(pipeline, poll_interval: int = 2, stale_timeout: int = 600, max_iterations=None):
    """
    Main worker loop.
    Continuously polls for jobs and processes them one at a time.
    """
    logging.info(f"Worker {WORKER_ID} starting")
    logging.info(f"Configuration: poll_interval={poll_interval}s, stale_timeout={stale_timeout}s")

    consecutive_empty_polls = 0
    iterations = 0

    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        try:
            # Requeue any stale jobs (workers that crashed)
            if consecutive_empty_polls % 30 == 0:
                requeued = requeue_stale_jobs(stale_timeout)
                if requeued:
                    logging.warning(f"Requeued {requeued} stale jobs")

            job = claim_next_job(WORKER_ID)

            if job:
                consecutive_empty_polls = 0
                process_job(job, pipeline)
            else:
                consecutive_empty_polls += 1
                if consecutive_empty_polls == 1:
                    logging.info("No jobs in queue, waiting...")
                time.sleep(poll_interval)

        except KeyboardInterrupt:
            logging.info("Worker shutting down (KeyboardInterrupt)")
            break

        except Exception:
            logging.exception("Worker loop error")
            time.sleep(poll_interval)


def main():
    """Entry point for worker process."""
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [WORKER] %(levelname)s %(message)s")
        logging.error(str(e))
        logging.error("Make sure config.env is properly configured")
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [WORKER] %(levelname)s %(message)s",
    )
    logging.info("=" * 60)
    logging.info("Listing Pipeline - Async Job Worker")
    logging.info("=" * 60)

    if settings.jobs_db_path:
        jobs.set_db_path(settings.jobs_db_path)

    try:
        pipeline = build_pipeline(settings)
        worker_loop(pipeline, settings.worker_poll_interval, settings.worker_stale_job_timeout)
    except Exception:
        logging.exception("Worker crashed")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
