#!/usr/bin/env python3
"""
Publish saga: turn one approved ledger row into a Shopify listing.

Steps run strictly in the order returned by ProductPublisher.steps().
Writing the new product id (Status=CREATED) right after productCreate is
the point of no return: from then on the row is never picked up again
automatically, and nothing already created on Shopify is deleted.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from constants import (
    COL_PRODUCT_ID,
    COL_STATUS,
    COL_UPDATED_AT,
    CONTENT_COLUMNS,
    IMAGE_COLUMNS,
    STATUS_COMPLETE,
    STATUS_CREATED,
)
from filenames import ImageAsset, assign_positions, parse_filename
from ledger import ErrorEntry, LogEntry, ProductLedger, ProductRow, now_iso
from listing_builder import ListingBuild, build_listing, standalone_variant_input, variant_input
from merchandising import pattern_lookup_candidates

PUBLISH_HINT = "Check Shopify admin and Drive files for partial progress"
PATTERN_METAOBJECT_TYPE = "pattern"


class SagaError(Exception):
    """A saga step could not produce what the next step needs."""


@dataclass
class PublishAttempt:
    """Working state of one saga run. Never persisted as such."""
    row: ProductRow
    product_key: str
    log_entries: List[LogEntry] = field(default_factory=list)
    generated: Optional[object] = None
    build: Optional[ListingBuild] = None
    assets: List[ImageAsset] = field(default_factory=list)
    product_id: Optional[str] = None
    option_ids: Dict[str, str] = field(default_factory=dict)
    default_variant: Optional[Dict] = None
    created_variants: List[Dict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def log(self, action: str, message: str) -> None:
        self.log_entries.append(LogEntry(action, message, self.product_key))

    def warn(self, message: str) -> None:
        logging.warning("[%s] %s", self.product_key, message)
        self.warnings.append(message)


@dataclass
class SagaStep:
    name: str
    action: Callable[[PublishAttempt], None]
    fatal: bool = True


@dataclass
class PublishResult:
    success: bool
    product_key: Optional[str] = None
    product_id: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[str] = None
    skipped: bool = False
    warnings: List[str] = field(default_factory=list)


class ProductPublisher:
    def __init__(
        self,
        ledger: ProductLedger,
        storage,
        shopify,
        generator,
        metaobjects,
        location_id: Optional[str] = None,
        default_vendor: Optional[str] = None,
    ):
        self.ledger = ledger
        self.storage = storage
        self.shopify = shopify
        self.generator = generator
        self.metaobjects = metaobjects
        self.location_id = location_id
        self.default_vendor = default_vendor

    def steps(self) -> List[SagaStep]:
        return [
            SagaStep("resolve_content", self.resolve_content),
            SagaStep("build_listing", self.build_listing),
            SagaStep("create_listing", self.create_listing),
            SagaStep("create_variants", self.create_variants),
            SagaStep("set_variant_metafields", self.set_variant_metafields),
            SagaStep("upload_media", self.upload_media),
            SagaStep("set_listing_metafields", self.set_listing_metafields),
            SagaStep("persist_complete", self.persist_complete, fatal=False),
            SagaStep("archive_images", self.archive_images, fatal=False),
        ]

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    def publish(self, row: ProductRow) -> PublishResult:
        product_key = (row.product_key or "").strip()
        if not product_key:
            return PublishResult(success=False, skipped=True, error="Missing ProductKey; cannot publish")

        # Re-check against the live ledger; another invocation may have got here first
        current = self.ledger.find_by_key(product_key)
        if current is None or not current.is_publishable:
            reason = "row not found" if current is None else (
                f"already published as {current.external_product_id}" if current.external_product_id
                else f"status is {current.status or 'blank'}"
            )
            logging.info("Skipping publish for %s: %s", product_key, reason)
            return PublishResult(
                success=False,
                product_key=product_key,
                product_id=current.external_product_id if current else None,
                error=f"Skipped: {reason}",
                skipped=True,
            )

        attempt = PublishAttempt(row=current, product_key=product_key)
        attempt.log("publish:start", "Beginning Shopify publish")

        complete = True
        for step in self.steps():
            try:
                step.action(attempt)
            except Exception as e:
                if step.fatal:
                    return self._fail(attempt, step.name, e)
                logging.exception("Non-fatal step %s failed for %s", step.name, product_key)
                attempt.log(f"publish:{step.name}:error", str(e))
                self._write_error(attempt, step.name, e)
                if step.name == "persist_complete":
                    complete = False

        if complete:
            attempt.log("publish:complete", f"Published product {attempt.product_id}")
        else:
            attempt.log("publish:incomplete", f"Product {attempt.product_id} created; ledger not marked complete")
        self._flush_logs(attempt)

        return PublishResult(
            success=complete,
            product_key=product_key,
            product_id=attempt.product_id,
            error=None if complete else "persist_complete failed",
            failed_step=None if complete else "persist_complete",
            warnings=attempt.warnings,
        )

    def _fail(self, attempt: PublishAttempt, step_name: str, error: Exception) -> PublishResult:
        message = str(error)
        logging.error("Failed to publish %s at %s: %s", attempt.product_key, step_name, message)
        attempt.log("publish:error", f"{step_name}: {message}")
        self._flush_logs(attempt)
        self._write_error(attempt, step_name, error)
        return PublishResult(
            success=False,
            product_key=attempt.product_key,
            product_id=attempt.product_id,
            error=message,
            failed_step=step_name,
            warnings=attempt.warnings,
        )

    def _flush_logs(self, attempt: PublishAttempt) -> None:
        try:
            self.ledger.write_logs(attempt.log_entries)
        except Exception:
            logging.exception("Could not write publish logs for %s", attempt.product_key)

    def _write_error(self, attempt: PublishAttempt, step_name: str, error: Exception) -> None:
        snippet = json.dumps({"productKey": attempt.product_key, "productId": attempt.product_id})
        try:
            self.ledger.write_error(ErrorEntry(
                step=step_name,
                message=str(error),
                product_key=attempt.product_key,
                hint=PUBLISH_HINT,
                payload_snippet=snippet,
            ))
        except Exception:
            logging.exception("Could not write publish error for %s", attempt.product_key)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def resolve_content(self, attempt: PublishAttempt) -> None:
        if all(attempt.row.get(column) for column in CONTENT_COLUMNS):
            return
        logging.info("Generating AI content for %s", attempt.product_key)
        attempt.generated = self.generator.generate(attempt.row.values)
        attempt.log("publish:content", "Generated missing listing copy")

    def build_listing(self, attempt: PublishAttempt) -> None:
        build = build_listing(attempt.row.values, attempt.generated, self.default_vendor)
        build.metafields = self._resolve_pattern_references(attempt, build.metafields)
        for warning in build.warnings:
            attempt.warn(warning)
        attempt.build = build
        attempt.assets = self.collect_row_assets(attempt.row)
        attempt.log(
            "publish:shopify:create",
            f"Sending productCreate with {len(build.variants)} variants and {len(attempt.assets)} images",
        )

    def _resolve_pattern_references(self, attempt: PublishAttempt, metafields: List[Dict]) -> List[Dict]:
        resolved = []
        for entry in metafields:
            value = entry.get("value") or ""
            if entry["key"] != "pattern" or value.startswith("gid://"):
                resolved.append(entry)
                continue
            metaobject_id = None
            for candidate in pattern_lookup_candidates(value):
                metaobject_id = self.metaobjects.resolve(PATTERN_METAOBJECT_TYPE, candidate)
                if metaobject_id:
                    break
            if metaobject_id:
                resolved.append(dict(entry, value=metaobject_id, type="metaobject_reference"))
            else:
                attempt.warn(f"Unable to resolve pattern metaobject for {value!r}; skipping")
        return resolved

    def collect_row_assets(self, row: ProductRow) -> List[ImageAsset]:
        """Storage files for this key, plus ledger slot ids not in the listing."""
        key = row.product_key.lower()
        files = {}
        for file in self.storage.list_files():
            parsed = parse_filename(file.filename)
            if parsed and parsed.product_key.lower() == key:
                files[file.file_id] = file

        for column in IMAGE_COLUMNS:
            file_id = row.get(column)
            if not file_id or file_id in files:
                continue
            try:
                files[file_id] = self.storage.describe_file(file_id)
            except Exception as e:
                logging.warning("Failed to load referenced image %s (%s): %s", file_id, column, e)

        return assign_positions(files.values())

    def create_listing(self, attempt: PublishAttempt) -> None:
        product = self.shopify.create_listing(attempt.build.product_input)
        product_id = product.get("id")
        if not product_id:
            raise SagaError("Shopify productCreate did not return a product id")

        attempt.product_id = product_id
        attempt.option_ids = {
            option["name"]: option["id"]
            for option in product.get("options") or []
            if option.get("name") and option.get("id")
        }
        default_variants = (product.get("variants") or {}).get("nodes") or []
        attempt.default_variant = default_variants[0] if default_variants else None

        self.ledger.apply_field_updates(attempt.row, {
            COL_PRODUCT_ID: product_id,
            COL_STATUS: STATUS_CREATED,
            COL_UPDATED_AT: now_iso(),
        })
        logging.info("Created Shopify product %s for %s", product_id, attempt.product_key)

    def create_variants(self, attempt: PublishAttempt) -> None:
        build = attempt.build
        if not build.has_options:
            self.price_standalone_variant(attempt)
            return
        attempt.log("publish:shopify:variants", f"Creating {len(build.variants)} variants")
        inputs = [
            variant_input(variant, build.price, attempt.option_ids, self.location_id)
            for variant in build.variants
        ]
        attempt.created_variants = self.shopify.create_variants(attempt.product_id, inputs)

    def price_standalone_variant(self, attempt: PublishAttempt) -> None:
        """Single size: productCreate's own variant gets the price, SKU and stock."""
        if not attempt.default_variant or not attempt.default_variant.get("id"):
            raise SagaError("Shopify productCreate did not return its default variant")

        variant = attempt.build.variants[0]
        attempt.log("publish:shopify:variants", f"Updating default variant ({variant.size})")
        updated = self.shopify.update_variants(attempt.product_id, [
            standalone_variant_input(variant, attempt.build.price, attempt.default_variant["id"], self.location_id),
        ])
        attempt.created_variants = updated or [attempt.default_variant]

        if variant.inventory_quantity is None or not self.location_id:
            return
        inventory_item = (attempt.created_variants[0].get("inventoryItem")
                          or attempt.default_variant.get("inventoryItem") or {})
        if not inventory_item.get("id"):
            raise SagaError("Shopify did not return an inventory item for the default variant")
        self.shopify.set_inventory_quantities([{
            "inventoryItemId": inventory_item["id"],
            "locationId": self.location_id,
            "quantity": variant.inventory_quantity,
        }])

    def set_variant_metafields(self, attempt: PublishAttempt) -> None:
        entries = []
        for variant, fields in zip(attempt.created_variants, attempt.build.variant_metafields):
            if not variant.get("id"):
                continue
            entries.extend(dict(f, ownerId=variant["id"]) for f in fields)
        if not entries:
            return
        attempt.log("publish:shopify:variant-metafields", f"Setting {len(entries)} variant metafields")
        self.shopify.set_metafields(entries, label="variant metafieldsSet")

    def upload_media(self, attempt: PublishAttempt) -> None:
        if not attempt.assets:
            return
        attempt.log("publish:shopify:images", f"Uploading {len(attempt.assets)} images")

        files = []
        for asset in attempt.assets:
            content = self.storage.read_file_bytes(asset.file_id)
            files.append((asset, content))

        targets = self.shopify.create_upload_targets([
            {
                "resource": "IMAGE",
                "filename": asset.filename,
                "mimeType": content.mime_type,
                "httpMethod": "POST",
                "fileSize": str(len(content.data)),
            }
            for asset, content in files
        ])
        if len(targets) != len(files):
            raise SagaError(f"Expected {len(files)} staged upload targets but received {len(targets)}")

        for (asset, content), target in zip(files, targets):
            self.shopify.transfer_upload(target, asset.filename, content.data, content.mime_type)

        self.shopify.attach_media(attempt.product_id, [
            {
                "originalSource": target["resourceUrl"],
                "mediaContentType": "IMAGE",
                "alt": attempt.build.title,
            }
            for target in targets
        ])

    def set_listing_metafields(self, attempt: PublishAttempt) -> None:
        metafields = attempt.build.metafields
        if not metafields:
            return
        attempt.log("publish:shopify:metafields", f"Setting {len(metafields)} metafields")
        self.shopify.set_metafields([dict(entry, ownerId=attempt.product_id) for entry in metafields])

    def persist_complete(self, attempt: PublishAttempt) -> None:
        updates = dict(attempt.build.sheet_updates)
        updates[COL_PRODUCT_ID] = attempt.product_id
        updates[COL_STATUS] = STATUS_COMPLETE
        updates[COL_UPDATED_AT] = now_iso()
        self.ledger.apply_field_updates(attempt.row, updates)

    def archive_images(self, attempt: PublishAttempt) -> None:
        for asset in attempt.assets:
            try:
                self.storage.move_file(asset.file_id)
            except Exception as e:
                attempt.warn(f"Failed to archive image {asset.file_id}: {e}")
