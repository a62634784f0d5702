#!/usr/bin/env python3
"""
Draft staging: reconcile uploaded images with ledger rows and fill in
AI-drafted copy for rows still waiting for review.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from constants import (
    COL_CATEGORY,
    COL_COLOR,
    COL_CREATED_AT,
    COL_DESCRIPTION,
    COL_META_DESCRIPTION,
    COL_PATTERN,
    COL_ROW_ID,
    COL_SIZES,
    COL_STATUS,
    COL_STYLE,
    COL_TAGS,
    COL_TITLE,
    COL_UPDATED_AT,
    COL_VENDOR,
    CONTENT_COLUMNS,
    METAFIELD_COLUMN_MAP,
    ROLE_COLUMN_MAP,
    STATUS_PENDING,
)
from filenames import ImageAsset, RawImageFile, assign_positions, group_by_product_key
from ledger import ErrorEntry, LedgerError, LogEntry, ProductLedger, ProductRow, now_iso
from listing_builder import derive_sizes
from merchandising import derive_gpc_profile, profile_to_column_updates, profile_to_metafields

STAGE_STEP = "stageDrafts"
STAGE_HINT = "Ensure Drive filenames follow <productKey>_<role>.jpg and sheet permissions are set"

# Fallbacks when the model leaves these metafields out
METAFIELD_DEFAULTS = {
    "fabric": "Upcycled",
    "target_gender": "Unisex",
    "age_group": "Adults",
}

METAFIELD_KEY_TO_COLUMN = {key: column for column, key in METAFIELD_COLUMN_MAP.items()}

OUTCOME_GENERATED = "generated"
OUTCOME_IMAGES_SYNCED = "images-synced"
OUTCOME_UNCHANGED = "unchanged"


@dataclass
class StageSummary:
    processed: int = 0
    staged: int = 0
    image_updates: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict:
        data = asdict(self)
        return {
            "processed": data["processed"],
            "staged": data["staged"],
            "imageUpdates": data["image_updates"],
            "skipped": data["skipped"],
            "errors": data["errors"],
            "errorDetails": data["error_details"],
        }


def needs_copy(row: ProductRow) -> bool:
    """Unlocked and missing any of title, description, meta description or tags."""
    if row.is_locked:
        return False
    return any(not row.get(column) for column in CONTENT_COLUMNS)


def image_slot_updates(row: ProductRow, assets: List[ImageAsset]) -> Dict[str, str]:
    """First asset per role fills its slot, and only when the slot is empty."""
    updates = {}
    for asset in assets:
        column = ROLE_COLUMN_MAP.get(asset.role)
        if not column or column in updates or row.get(column):
            continue
        updates[column] = asset.file_id
    return updates


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class DraftStager:
    def __init__(self, ledger: ProductLedger, storage, generator, default_vendor: str = "Pleasant"):
        self.ledger = ledger
        self.storage = storage
        self.generator = generator
        self.default_vendor = default_vendor

    def stage_all(self) -> StageSummary:
        summary = StageSummary()

        groups = group_by_product_key(self.storage.list_files())
        if not groups:
            return summary

        rows_by_key = {
            row.product_key.lower(): row
            for row in self.ledger.snapshot().rows
            if row.product_key
        }

        for product_key, files in groups.items():
            summary.processed += 1
            try:
                outcome = self.stage_product(product_key, files, rows_by_key.get(product_key.lower()))
            except Exception as e:
                summary.errors += 1
                summary.error_details.append({"productKey": product_key, "message": str(e)})
                logging.exception("Failed to stage draft for %s", product_key)
                self._record_failure(product_key, e)
                continue

            if outcome == OUTCOME_GENERATED:
                summary.staged += 1
            elif outcome == OUTCOME_IMAGES_SYNCED:
                summary.image_updates += 1
            else:
                summary.skipped += 1

        logging.info(
            "Staging pass: %d processed, %d staged, %d image updates, %d errors",
            summary.processed, summary.staged, summary.image_updates, summary.errors,
        )
        return summary

    def _record_failure(self, product_key: str, error: Exception) -> None:
        try:
            self.ledger.write_logs([LogEntry("draft:error", str(error), product_key)])
            self.ledger.write_error(ErrorEntry(
                step=STAGE_STEP,
                message=str(error),
                product_key=product_key,
                hint=STAGE_HINT,
                payload_snippet=json.dumps({"productKey": product_key}),
            ))
        except Exception:
            logging.exception("Could not record staging error for %s", product_key)

    def stage_product(
        self,
        product_key: str,
        files: List[RawImageFile],
        existing: Optional[ProductRow] = None,
    ) -> str:
        """
        Stage one product key. Returns the outcome written to the Logs tab.

        Exactly one log entry is appended per call that returns.
        """
        if not files:
            return OUTCOME_UNCHANGED

        assets = assign_positions(files)
        row = existing or self.ledger.create_draft_if_absent(product_key)

        image_updates = image_slot_updates(row, assets)
        updates: Dict[str, Optional[str]] = dict(image_updates)

        if not row.get(COL_STATUS):
            updates[COL_STATUS] = STATUS_PENDING
        if not row.get(COL_ROW_ID):
            updates[COL_ROW_ID] = product_key
        if not row.get(COL_CREATED_AT):
            updates[COL_CREATED_AT] = now_iso()
        updates[COL_UPDATED_AT] = now_iso()

        sizes = derive_sizes(row.values)
        if row.get(COL_SIZES) != sizes:
            updates[COL_SIZES] = sizes

        self.ledger.apply_field_updates(row, updates)

        refreshed = self.ledger.find_by_key(product_key)
        if refreshed is None:
            raise LedgerError(f"Unable to reload ledger row for product {product_key}")

        if not needs_copy(refreshed):
            if image_updates:
                outcome = OUTCOME_IMAGES_SYNCED
                message = f"Updated image references for draft ({_plural(len(files), 'asset')})"
            else:
                outcome = OUTCOME_UNCHANGED
                message = "Draft already complete" if not refreshed.is_locked else f"Row locked ({refreshed.status})"
            self.ledger.write_logs([LogEntry(f"draft:{outcome}", message, product_key)])
            return outcome

        primary_image = self._load_primary_image(assets)
        generated = self.generator.generate(refreshed.values, primary_image)

        self.ledger.apply_field_updates(refreshed, self._content_updates(refreshed, generated))

        self.ledger.write_logs([LogEntry(
            "draft:generated",
            f"Generated AI draft with {_plural(len(assets), 'image')}",
            product_key,
        )])
        return OUTCOME_GENERATED

    def _load_primary_image(self, assets: List[ImageAsset]):
        primary = next((asset for asset in assets if asset.role == "main"), None)
        if primary is None and assets:
            primary = min(assets, key=lambda asset: asset.position)
        if primary is None:
            return None
        try:
            return self.storage.read_file_bytes(primary.file_id)
        except Exception as e:
            logging.warning("Failed to load primary image %s for AI generation: %s", primary.file_id, e)
            return None

    def _content_updates(self, row: ProductRow, generated) -> Dict[str, Optional[str]]:
        candidates = {
            COL_TITLE: generated.title,
            COL_DESCRIPTION: generated.description,
            COL_META_DESCRIPTION: generated.meta_description,
            COL_TAGS: ", ".join(generated.tags),
            COL_STYLE: generated.style,
            COL_CATEGORY: generated.category,
            COL_COLOR: generated.color,
            COL_PATTERN: generated.pattern,
            COL_VENDOR: generated.vendor or self.default_vendor,
        }
        updates: Dict[str, Optional[str]] = {
            column: value for column, value in candidates.items() if value and not row.get(column)
        }

        metafields = dict(METAFIELD_DEFAULTS)
        metafields["color"] = generated.color
        metafields["pattern"] = generated.pattern
        metafields.update(generated.metafields)

        style = row.get(COL_STYLE) or generated.style
        profile = derive_gpc_profile(
            style,
            target_gender=metafields.get("target_gender"),
            age_group=metafields.get("age_group"),
            sleeve_length=metafields.get("sleeve_length"),
            clothing_feature=metafields.get("clothing_feature"),
        )
        if profile is not None:
            updates.update({k: v for k, v in profile_to_column_updates(profile).items() if v})
            metafields.update(profile_to_metafields(profile))

        for key, value in metafields.items():
            column = METAFIELD_KEY_TO_COLUMN.get(key)
            if column and value and not row.get(column) and column not in updates:
                updates[column] = value

        updates[COL_SIZES] = derive_sizes(row.values)
        updates[COL_UPDATED_AT] = now_iso()
        return updates
