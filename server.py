#!/usr/bin/env python3
"""
Listing pipeline HTTP service.

Task endpoints for schedulers, the Drive change-notification webhook and
the async job API. Long runs go to the job queue when ASYNC_JOBS_ENABLED
is set; otherwise they run in-process.
"""

import logging
import sys
import threading

from flask import Flask, current_app, jsonify, request

from api_jobs import register_job_routes
from jobs import JOB_PROCESS_APPROVED, enqueue_unless_active, set_db_path
from settings import ConfigError, load_settings
from workflows.listing_workflows import (
    build_pipeline,
    reprocess_product,
    run_process_approved_workflow,
    run_renew_watch_workflow,
    run_stage_drafts_workflow,
)

VERSION = "1.0.0"

# Only one in-process publish run at a time
_process_lock = threading.Lock()


def _pipeline():
    pipeline = current_app.config.get("PIPELINE")
    if pipeline is None:
        pipeline = build_pipeline(current_app.config["SETTINGS"] or load_settings())
        current_app.config["PIPELINE"] = pipeline
    return pipeline


def _async_enabled() -> bool:
    return bool(current_app.config.get("ASYNC_JOBS_ENABLED"))


def _enqueue_process_approved(payload: dict):
    job_id, created = enqueue_unless_active(JOB_PROCESS_APPROVED, payload, requested_by=request.remote_addr)
    return {
        "mode": "async",
        "jobId": job_id,
        "statusUrl": f"/api/jobs/{job_id}",
        "message": "Job queued successfully" if created else "A process-approved job is already queued",
    }


def _process_in_background(pipeline, payload: dict) -> bool:
    """Start a publish run on a thread. False if one is already running."""
    if not _process_lock.acquire(blocking=False):
        logging.info("Process-approved already running; skipping background trigger")
        return False

    def run():
        try:
            run_process_approved_workflow(pipeline, payload)
        except Exception:
            logging.exception("Background process-approved run failed")
        finally:
            _process_lock.release()

    threading.Thread(target=run, name="process-approved", daemon=True).start()
    return True


def create_app(pipeline=None, settings=None, async_jobs=None) -> Flask:
    """
    Build the Flask app.

    Args:
        pipeline: prebuilt Pipeline (tests); built lazily from settings otherwise
        settings: Settings; loaded from the environment on first use when None
        async_jobs: override settings.async_jobs_enabled
    """
    app = Flask(__name__)
    app.config["PIPELINE"] = pipeline
    app.config["SETTINGS"] = settings
    if async_jobs is None:
        async_jobs = settings.async_jobs_enabled if settings else False
    app.config["ASYNC_JOBS_ENABLED"] = async_jobs
    if settings and settings.jobs_db_path:
        set_db_path(settings.jobs_db_path)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"ok": True, "version": VERSION})

    @app.route("/tasks/stage-drafts", methods=["POST"])
    def stage_drafts():
        try:
            summary = run_stage_drafts_workflow(_pipeline())
        except Exception as e:
            logging.exception("Stage drafts failed")
            return jsonify({"error": str(e)}), 500
        return jsonify(summary)

    @app.route("/tasks/process-approved", methods=["POST"])
    def process_approved():
        if _async_enabled():
            return jsonify(_enqueue_process_approved({})), 202

        try:
            with _process_lock:
                result = run_process_approved_workflow(_pipeline())
        except Exception as e:
            logging.exception("Process approved failed")
            return jsonify({"error": str(e)}), 500
        return jsonify(result)

    @app.route("/tasks/reprocess", methods=["POST"])
    def reprocess():
        try:
            status, body = reprocess_product(_pipeline(), request.args.get("key"))
        except Exception as e:
            logging.exception("Reprocess failed")
            return jsonify({"error": str(e)}), 500
        return jsonify(body), status

    @app.route("/webhooks/drive", methods=["POST"])
    def drive_webhook():
        channel_id = request.headers.get("X-Goog-Channel-Id")
        resource_id = request.headers.get("X-Goog-Resource-Id")
        if not channel_id or not resource_id:
            return jsonify({"error": "Missing Drive channel headers"}), 400

        state = request.headers.get("X-Goog-Resource-State", "")
        logging.info("Drive notification channel=%s state=%s", channel_id, state)
        if state == "sync":
            return jsonify({"ok": True, "state": state})

        pipeline = _pipeline()
        try:
            summary = run_stage_drafts_workflow(pipeline)
        except Exception as e:
            logging.exception("Stage drafts from webhook failed")
            return jsonify({"error": str(e)}), 500

        body = {"ok": True, "stagedDrafts": summary}
        if _async_enabled():
            body["processApproved"] = _enqueue_process_approved({"skip_staging": True})
        else:
            body["processApproved"] = {
                "mode": "thread",
                "started": _process_in_background(pipeline, {"skip_staging": True}),
            }
        return jsonify(body)

    @app.route("/tasks/renew-drive-watch", methods=["POST"])
    def renew_drive_watch():
        try:
            result = run_renew_watch_workflow(_pipeline())
        except ConfigError as e:
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logging.exception("Drive watch renewal failed")
            return jsonify({"error": str(e)}), 500
        return jsonify(result)

    register_job_routes(app)
    return app


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
        logging.error(str(e))
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    app = create_app(settings=settings)
    logging.info("Starting listing pipeline service on port %d", settings.port)
    app.run(host="0.0.0.0", port=settings.port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
