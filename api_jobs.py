#!/usr/bin/env python3
"""
Job API endpoints for Flask app.
Separated for clarity - import and register with Flask app.
"""

from datetime import datetime

from flask import jsonify, request

from jobs import count_jobs_by_status, get_job, list_jobs

TIMESTAMP_FIELDS = ('created_at', 'started_at', 'finished_at')


def _format_timestamps(job: dict) -> dict:
    for field in TIMESTAMP_FIELDS:
        if job.get(field):
            job[f'{field}_formatted'] = datetime.fromtimestamp(job[field]).strftime('%Y-%m-%d %H:%M:%S')
    return job


def register_job_routes(app):
    """Register job-related API routes with Flask app."""

    @app.route('/api/jobs/<job_id>', methods=['GET'])
    def get_job_status(job_id):
        """
        Get status and details of a specific job.

        Returns:
            200: Job details
            404: Job not found
        """
        job = get_job(job_id)
        if not job:
            return jsonify({'error': 'Job not found'}), 404
        return jsonify(_format_timestamps(job))

    @app.route('/api/jobs', methods=['GET'])
    def list_all_jobs():
        """
        List jobs with optional filters.

        Query params:
            status: Filter by status (queued|running|succeeded|failed)
            type: Filter by job type
            limit: Max number of jobs to return (default 50)
        """
        status = request.args.get('status')
        job_type = request.args.get('type')
        try:
            limit = int(request.args.get('limit', 50))
        except ValueError:
            return jsonify({'error': 'limit must be an integer'}), 400

        jobs = [_format_timestamps(job) for job in list_jobs(status=status, job_type=job_type, limit=limit)]

        return jsonify({
            'jobs': jobs,
            'count': len(jobs),
            'filters': {
                'status': status,
                'type': job_type,
                'limit': limit
            }
        })

    @app.route('/api/jobs/stats', methods=['GET'])
    def get_job_stats():
        """Job counts by status."""
        counts = count_jobs_by_status()
        stats = {status: counts.get(status, 0) for status in ('queued', 'running', 'succeeded', 'failed')}
        stats['total'] = sum(counts.values())
        return jsonify(stats)
