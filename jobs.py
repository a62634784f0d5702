#!/usr/bin/env python3
"""
Job Queue Management System
Provides SQLite-backed job queue for async workflow execution.
"""

import json
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Dict, List

JOB_STAGE_DRAFTS = 'stage_drafts'
JOB_PROCESS_APPROVED = 'process_approved'
JOB_REPROCESS = 'reprocess'
JOB_TYPES = (JOB_STAGE_DRAFTS, JOB_PROCESS_APPROVED, JOB_REPROCESS)

ACTIVE_STATUSES = ('queued', 'running')

# Database path (JOBS_DB_PATH overrides)
DB_PATH = Path(os.environ.get('JOBS_DB_PATH') or Path(__file__).parent / "jobs.db")

_initialized_paths = set()


def set_db_path(path) -> None:
    """Point the queue at a different database file."""
    global DB_PATH
    DB_PATH = Path(path)


@contextmanager
def get_db():
    """Get database connection with WAL mode for concurrent access."""
    conn = sqlite3.connect(str(DB_PATH), timeout=10.0)
    conn.execute('PRAGMA journal_mode=WAL')
    conn.row_factory = sqlite3.Row
    try:
        if str(DB_PATH) not in _initialized_paths:
            _create_schema(conn)
            _initialized_paths.add(str(DB_PATH))
        yield conn
    finally:
        conn.close()


def _create_schema(db):
    db.execute('''
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            type TEXT NOT NULL,
            status TEXT NOT NULL,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL,
            started_at REAL,
            finished_at REAL,
            requested_by TEXT,
            payload TEXT NOT NULL,
            result TEXT,
            error TEXT,
            attempts INTEGER DEFAULT 0,
            max_attempts INTEGER DEFAULT 3,
            progress TEXT,
            worker_id TEXT
        )
    ''')
    db.execute('CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status, created_at)')
    db.execute('CREATE INDEX IF NOT EXISTS idx_jobs_type ON jobs(type)')
    db.commit()


def _row_to_job(row) -> Dict:
    job = dict(row)
    # Parse JSON fields
    for key in ('payload', 'result', 'progress'):
        if job[key]:
            job[key] = json.loads(job[key])
    return job


def enqueue_job(job_type: str, payload: dict, requested_by: Optional[str] = None, max_attempts: int = 3) -> str:
    """
    Enqueue a new job.

    Args:
        job_type: One of JOB_TYPES
        payload: Job parameters as dict
        requested_by: Caller identifier (optional)
        max_attempts: Maximum retry attempts

    Returns:
        Job ID (UUID)
    """
    if job_type not in JOB_TYPES:
        raise ValueError(f"Unknown job type: {job_type}")

    job_id = str(uuid.uuid4())
    now = time.time()

    with get_db() as db:
        db.execute('''
            INSERT INTO jobs (id, type, status, created_at, updated_at, payload, requested_by, max_attempts)
            VALUES (?, ?, 'queued', ?, ?, ?, ?, ?)
        ''', (job_id, job_type, now, now, json.dumps(payload), requested_by, max_attempts))
        db.commit()

    return job_id


def find_active_job(job_type: str) -> Optional[Dict]:
    """Oldest queued or running job of this type, if any."""
    with get_db() as db:
        row = db.execute('''
            SELECT * FROM jobs
            WHERE type = ? AND status IN (?, ?)
            ORDER BY created_at, rowid
            LIMIT 1
        ''', (job_type,) + ACTIVE_STATUSES).fetchone()
        return _row_to_job(row) if row else None


def enqueue_unless_active(job_type: str, payload: dict, requested_by: Optional[str] = None):
    """
    Enqueue a job unless one of the same type is already waiting or running.

    Returns:
        (job_id, created) where created is False when an existing job was reused
    """
    existing = find_active_job(job_type)
    if existing:
        return existing['id'], False
    return enqueue_job(job_type, payload, requested_by=requested_by), True


def get_job(job_id: str) -> Optional[Dict]:
    """Get job by ID."""
    with get_db() as db:
        row = db.execute('SELECT * FROM jobs WHERE id = ?', (job_id,)).fetchone()
        if not row:
            return None
        return _row_to_job(row)


def claim_next_job(worker_id: str) -> Optional[Dict]:
    """
    Atomically claim the next queued job.

    Args:
        worker_id: Identifier for the worker claiming the job

    Returns:
        Job dict or None if no jobs available
    """
    now = time.time()

    with get_db() as db:
        row = db.execute('''
            SELECT id FROM jobs
            WHERE status = 'queued'
            ORDER BY created_at, rowid
            LIMIT 1
        ''').fetchone()

        if not row:
            return None

        job_id = row['id']

        cursor = db.execute('''
            UPDATE jobs
            SET status = 'running',
                started_at = ?,
                worker_id = ?,
                updated_at = ?
            WHERE id = ? AND status = 'queued'
        ''', (now, worker_id, now, job_id))
        db.commit()

        # Another worker got there first
        if cursor.rowcount == 0:
            return None

    return get_job(job_id)


def update_job_status(
    job_id: str,
    status: str,
    result: Optional[dict] = None,
    error: Optional[str] = None,
    progress: Optional[dict] = None,
    attempts: Optional[int] = None
):
    """
    Update job status and metadata.

    Args:
        job_id: Job ID
        status: New status (queued|running|succeeded|failed)
        result: Result data (for succeeded jobs)
        error: Error message (for failed jobs)
        progress: Progress information
        attempts: Updated attempt count
    """
    now = time.time()

    updates = ['updated_at = ?', 'status = ?']
    params = [now, status]

    if status in ('succeeded', 'failed'):
        updates.append('finished_at = ?')
        params.append(now)

    if result is not None:
        updates.append('result = ?')
        params.append(json.dumps(result))

    if error is not None:
        updates.append('error = ?')
        params.append(error)

    if progress is not None:
        updates.append('progress = ?')
        params.append(json.dumps(progress))

    if attempts is not None:
        updates.append('attempts = ?')
        params.append(attempts)

    params.append(job_id)

    with get_db() as db:
        db.execute(f'''
            UPDATE jobs
            SET {', '.join(updates)}
            WHERE id = ?
        ''', params)
        db.commit()


def record_progress(job_id: str, progress: dict):
    """Store the latest progress without touching status."""
    with get_db() as db:
        db.execute(
            'UPDATE jobs SET progress = ?, updated_at = ? WHERE id = ?',
            (json.dumps(progress), time.time(), job_id),
        )
        db.commit()


def list_jobs(status: Optional[str] = None, job_type: Optional[str] = None, limit: int = 50) -> List[Dict]:
    """
    List jobs with optional filters, newest first.
    """
    query = 'SELECT * FROM jobs WHERE 1=1'
    params = []

    if status:
        query += ' AND status = ?'
        params.append(status)

    if job_type:
        query += ' AND type = ?'
        params.append(job_type)

    query += ' ORDER BY created_at DESC LIMIT ?'
    params.append(limit)

    with get_db() as db:
        rows = db.execute(query, params).fetchall()
        return [_row_to_job(row) for row in rows]


def count_jobs_by_status() -> Dict[str, int]:
    with get_db() as db:
        rows = db.execute('SELECT status, COUNT(*) AS n FROM jobs GROUP BY status').fetchall()
        return {row['status']: row['n'] for row in rows}


def requeue_stale_jobs(timeout_seconds: int = 600) -> int:
    """
    Requeue jobs that have been running too long (likely worker crashed).

    Returns:
        Number of jobs requeued
    """
    cutoff = time.time() - timeout_seconds

    with get_db() as db:
        cursor = db.execute('''
            UPDATE jobs
            SET status = 'queued',
                worker_id = NULL,
                updated_at = ?
            WHERE status = 'running'
            AND started_at < ?
        ''', (time.time(), cutoff))
        db.commit()
        return cursor.rowcount
