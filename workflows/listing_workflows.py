#!/usr/bin/env python3
"""
Listing workflows.
Shared by the Flask routes, the async job worker and the CLI so a run
behaves the same whichever way it is triggered.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from content_generator import ContentGenerator
from ledger import ProductLedger
from metaobjects import MetaobjectCache
from publish_product import ProductPublisher
from settings import ConfigError, Settings
from shopify_client import ShopifyClient
from stage_drafts import DraftStager

ProgressCallback = Optional[Callable[[str, dict], None]]


@dataclass
class Pipeline:
    """Everything one process needs to stage and publish."""
    ledger: ProductLedger
    storage: object
    shopify: object
    generator: object
    metaobjects: MetaobjectCache
    stager: DraftStager
    publisher: ProductPublisher
    settings: Optional[Settings] = None


def assemble_pipeline(ledger, storage, shopify, generator, settings: Optional[Settings] = None) -> Pipeline:
    """Wire already-built collaborators into a Pipeline."""
    default_vendor = settings.default_vendor if settings else "Pleasant"
    metaobjects = MetaobjectCache(shopify)
    return Pipeline(
        ledger=ledger,
        storage=storage,
        shopify=shopify,
        generator=generator,
        metaobjects=metaobjects,
        stager=DraftStager(ledger, storage, generator, default_vendor=default_vendor),
        publisher=ProductPublisher(
            ledger,
            storage,
            shopify,
            generator,
            metaobjects,
            location_id=settings.shopify_location_id if settings else None,
            default_vendor=default_vendor,
        ),
        settings=settings,
    )


def build_pipeline(settings: Settings) -> Pipeline:
    """Construct live clients from settings."""
    credentials = None
    if settings.ledger_backend == "sheets" or settings.storage_backend == "drive":
        from google_clients import get_credentials
        credentials = get_credentials(
            settings.google_service_account_file,
            settings.google_client_email,
            settings.google_private_key,
        )

    if settings.ledger_backend == "sheets":
        from google_clients import get_sheets_service
        from ledger_sheets import GoogleSheetsBackend
        backend = GoogleSheetsBackend(get_sheets_service(credentials), settings.google_sheet_id)
    else:
        from ledger_workbook import WorkbookBackend
        backend = WorkbookBackend(settings.ledger_workbook_path)

    if settings.storage_backend == "drive":
        from drive_storage import DriveStorage
        from google_clients import get_drive_service
        storage = DriveStorage(
            get_drive_service(credentials),
            settings.drive_folder_id,
            settings.drive_archive_folder_id,
        )
    else:
        from r2_storage import R2Storage, get_r2_client
        storage = R2Storage(
            get_r2_client(settings.r2_account_id, settings.r2_access_key_id, settings.r2_secret_access_key),
            settings.r2_bucket_name,
            incoming_prefix=settings.r2_incoming_prefix,
            archive_prefix=settings.r2_archive_prefix,
        )

    shopify = ShopifyClient(
        settings.shopify_store_domain,
        settings.shopify_admin_token,
        api_version=settings.shopify_api_version,
    )
    generator = ContentGenerator(settings.anthropic_api_key, model=settings.anthropic_model)

    return assemble_pipeline(ProductLedger(backend), storage, shopify, generator, settings)


def _reporter(progress_callback: ProgressCallback):
    def report_progress(stage: str, data: dict = None):
        """Helper to report progress if callback provided."""
        if progress_callback:
            progress_callback(stage, data or {})
        logging.info("[WORKFLOW] %s: %s", stage, data or {})
    return report_progress


def run_stage_drafts_workflow(pipeline: Pipeline, payload: dict = None, progress_callback: ProgressCallback = None) -> dict:
    """
    Stage drafts for every product key found in storage.

    Returns:
        StageSummary as a dict (processed, staged, imageUpdates, skipped,
        errors, errorDetails)
    """
    report_progress = _reporter(progress_callback)
    report_progress("staging_drafts", {})
    summary = pipeline.stager.stage_all().to_dict()
    report_progress("drafts_staged", summary)
    return summary


def run_process_approved_workflow(pipeline: Pipeline, payload: dict = None, progress_callback: ProgressCallback = None) -> dict:
    """
    Stage drafts, then run the publish saga for every approved unpublished row.

    Args:
        payload: {
            'skip_staging': bool,   # Publish only (default: False)
        }
        progress_callback: Optional callback function(stage: str, data: dict)

    Returns:
        {
            'stagedDrafts': dict,
            'processed': int,
            'created': int,
            'errors': int,
            'failedKeys': [str],
            'duration_seconds': float
        }
    """
    payload = payload or {}
    start_time = time.time()
    report_progress = _reporter(progress_callback)

    staged = {}
    if not payload.get("skip_staging"):
        staged = run_stage_drafts_workflow(pipeline, progress_callback=progress_callback)

    rows = pipeline.ledger.find_approved_unpublished()
    report_progress("rows_loaded", {"count": len(rows)})

    processed = 0
    created = 0
    failed_keys = []

    for idx, row in enumerate(rows, 1):
        processed += 1
        report_progress("publishing_product", {
            "product": row.product_key,
            "progress": f"{idx}/{len(rows)}",
        })
        try:
            result = pipeline.publisher.publish(row)
        except Exception:
            logging.exception("Publish raised for %s", row.product_key)
            failed_keys.append(row.product_key or "unknown")
            continue

        if result.success:
            created += 1
        elif not result.skipped:
            failed_keys.append(row.product_key or "unknown")

    result = {
        "stagedDrafts": staged,
        "processed": processed,
        "created": created,
        "errors": len(failed_keys),
        "failedKeys": failed_keys,
        "duration_seconds": round(time.time() - start_time, 2),
    }
    report_progress("workflow_completed", result)
    return result


def reprocess_product(pipeline: Pipeline, key: Optional[str]) -> Tuple[int, dict]:
    """
    Publish a single row on demand.

    Returns (http_status, body): 400 no key, 404 unknown key, 409 already
    published or not approved, 500 saga failure, 200 success.
    """
    key = (key or "").strip()
    if not key:
        return 400, {"error": "Missing key query parameter"}

    row = pipeline.ledger.find_by_key(key)
    if row is None:
        return 404, {"error": "No matching row for product key"}

    if row.external_product_id:
        return 409, {"error": "Row already has ShopifyProductId"}

    if not row.is_approved:
        return 409, {"error": "Row is not approved"}

    result = pipeline.publisher.publish(row)
    if result.skipped:
        return 409, {"error": result.error}
    if not result.success:
        return 500, {"error": result.error or "Unknown failure", "failedStep": result.failed_step}

    return 200, {"success": True, "productId": result.product_id}


def run_reprocess_workflow(pipeline: Pipeline, payload: dict, progress_callback: ProgressCallback = None) -> dict:
    report_progress = _reporter(progress_callback)
    key = (payload or {}).get("key")
    report_progress("reprocessing", {"key": key})
    status, body = reprocess_product(pipeline, key)
    result = dict(body, status_code=status)
    report_progress("reprocess_completed", result)
    return result


def run_renew_watch_workflow(pipeline: Pipeline, payload: dict = None, progress_callback: ProgressCallback = None) -> dict:
    """Renew the Drive changes watch (Drive storage only)."""
    renew = getattr(pipeline.storage, "renew_watch", None)
    if renew is None:
        raise ConfigError("Storage backend does not support change notifications")
    base_url = pipeline.settings.app_base_url if pipeline.settings else "http://localhost:8080"
    stored = renew(pipeline.ledger, base_url)
    _reporter(progress_callback)("watch_renewed", stored)
    return {"ok": True, "channelId": stored.get("DRIVE_CHANNEL_ID")}
