#!/usr/bin/env python3
"""
Spreadsheet-backed product ledger.

One row per product key. The ledger is a shared mutable table that other
processes (and people) edit concurrently, so it is re-read on every query
and only ever written cell-by-cell for named columns.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from backoff import RetryPolicy, is_transient_error
from constants import (
    APPROVED_VALUES,
    COL_CREATED_AT,
    COL_PRODUCT_ID,
    COL_PRODUCT_KEY,
    COL_ROW_ID,
    COL_STATUS,
    COL_UPDATED_AT,
    LOCKED_STATUSES,
    PAYLOAD_SNIPPET_LIMIT,
    STATUS_PENDING,
    STATUS_RANK,
)


class LedgerError(Exception):
    """Raised when the ledger cannot be read or written as expected."""


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_cell(value) -> Optional[str]:
    """Cell value as a trimmed string, or None when blank."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


@dataclass
class ProductRow:
    """A ledger row as of the last read."""
    row_number: int  # 1-based sheet row; the header is row 1
    header_map: Dict[str, int]
    values: Dict[str, str] = field(default_factory=dict)

    def get(self, column: str) -> Optional[str]:
        return self.values.get(column)

    @property
    def product_key(self) -> Optional[str]:
        return self.values.get(COL_PRODUCT_KEY)

    @property
    def status(self) -> Optional[str]:
        status = self.values.get(COL_STATUS)
        return status.upper() if status else None

    @property
    def external_product_id(self) -> Optional[str]:
        return self.values.get(COL_PRODUCT_ID)

    @property
    def is_approved(self) -> bool:
        return self.status in APPROVED_VALUES

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES

    @property
    def is_publishable(self) -> bool:
        return bool(self.product_key) and self.is_approved and not self.external_product_id


@dataclass
class LedgerSnapshot:
    header_row: List[str]
    header_map: Dict[str, int]
    rows: List[ProductRow]


@dataclass
class LogEntry:
    action: str
    message: str
    product_key: Optional[str] = None
    timestamp: str = field(default_factory=now_iso)

    def to_cells(self) -> List[str]:
        return [self.timestamp, self.action, self.product_key or "", self.message]


@dataclass
class ErrorEntry:
    step: str
    message: str
    product_key: Optional[str] = None
    hint: Optional[str] = None
    payload_snippet: Optional[str] = None
    timestamp: str = field(default_factory=now_iso)

    def to_cells(self) -> List[str]:
        snippet = (self.payload_snippet or "")[:PAYLOAD_SNIPPET_LIMIT]
        return [
            self.timestamp,
            self.product_key or "",
            self.step,
            self.message,
            self.hint or "",
            snippet,
        ]


def payload_snippet(payload: dict) -> str:
    return json.dumps(payload, default=str)[:PAYLOAD_SNIPPET_LIMIT]


class LedgerBackend:
    """
    Raw tabular store behind the ledger.

    Implementations: ledger_sheets.GoogleSheetsBackend, ledger_workbook.WorkbookBackend.
    Rows are lists of cell values; row numbers are 1-based with the header on row 1.
    """

    def read_products(self) -> List[List]:
        """Return all Products tab rows, header first."""
        raise NotImplementedError

    def append_product_row(self, cells: List[str]) -> None:
        raise NotImplementedError

    def update_product_cells(self, row_number: int, cells: Dict[int, str]) -> None:
        """Write cells of one row, keyed by 0-based column index."""
        raise NotImplementedError

    def append_log_rows(self, rows: List[List[str]]) -> None:
        raise NotImplementedError

    def append_error_row(self, cells: List[str]) -> None:
        raise NotImplementedError

    def read_config(self) -> List[List]:
        raise NotImplementedError

    def write_config(self, key: str, value: str, row_number: Optional[int]) -> None:
        """Overwrite the value at row_number, or append a key/value row when None."""
        raise NotImplementedError


def _rank(status: Optional[str]) -> int:
    if not status:
        return -1
    return STATUS_RANK.get(status.upper(), -1)


class ProductLedger:
    """Read/filter/update operations over the Products tab."""

    def __init__(self, backend: LedgerBackend, retry_policy: Optional[RetryPolicy] = None):
        self.backend = backend
        self.retry = retry_policy or RetryPolicy(name="ledger", should_retry=is_transient_error)

    def snapshot(self) -> LedgerSnapshot:
        values = self.retry.run(self.backend.read_products, "read products")
        if not values:
            return LedgerSnapshot(header_row=[], header_map={}, rows=[])

        header_row = [sanitize_cell(h) or "" for h in values[0]]
        header_map = {header: index for index, header in enumerate(header_row) if header}

        rows = []
        for offset, cells in enumerate(values[1:]):
            row_values = {}
            for header, index in header_map.items():
                value = sanitize_cell(cells[index]) if index < len(cells) else None
                if value is not None:
                    row_values[header] = value
            rows.append(ProductRow(row_number=offset + 2, header_map=header_map, values=row_values))

        return LedgerSnapshot(header_row=header_row, header_map=header_map, rows=rows)

    def find_approved_unpublished(self) -> List[ProductRow]:
        """Rows waiting for the publish saga."""
        return [row for row in self.snapshot().rows if row.is_publishable]

    def find_by_key(self, product_key: str) -> Optional[ProductRow]:
        normalized = (product_key or "").strip().lower()
        if not normalized:
            return None
        return _find_in(self.snapshot().rows, normalized)

    def create_draft_if_absent(self, product_key: str, row_id: Optional[str] = None) -> ProductRow:
        """
        Return the row for product_key, appending a PENDING_REVIEW draft if none exists.
        """
        product_key = product_key.strip()
        snapshot = self.snapshot()
        existing = _find_in(snapshot.rows, product_key.lower())
        if existing:
            return existing

        if not snapshot.header_row:
            raise LedgerError("Products sheet is missing headers; cannot create draft row")

        created_at = now_iso()
        base_values = {
            COL_PRODUCT_KEY: product_key,
            COL_STATUS: STATUS_PENDING,
            COL_ROW_ID: row_id or product_key,
            COL_CREATED_AT: created_at,
            COL_UPDATED_AT: created_at,
        }
        cells = [base_values.get(header, "") for header in snapshot.header_row]
        self.retry.run(lambda: self.backend.append_product_row(cells), "append draft row")
        logging.info("Created draft ledger row for %s", product_key)

        created = _find_in(self.snapshot().rows, product_key.lower())
        if not created:
            raise LedgerError(f"Failed to locate draft row for productKey {product_key}")
        return created

    def apply_field_updates(self, row: ProductRow, updates: Dict[str, Optional[str]]) -> int:
        """
        Write the named fields of one row. Returns the number of cells written.

        Columns missing from the row's header map are skipped, and a Status
        write that would move the row backwards is dropped.
        """
        cells = {}
        applied = {}
        for column, value in updates.items():
            index = row.header_map.get(column)
            if index is None:
                continue
            if column == COL_STATUS and value and _rank(value) < _rank(row.status):
                logging.warning(
                    "Refusing status regression %s -> %s for %s",
                    row.status, value, row.product_key,
                )
                continue
            cells[index] = "" if value is None else str(value)
            applied[column] = value

        if not cells:
            logging.warning("No matching columns found for update: %s", sorted(updates))
            return 0

        self.retry.run(
            lambda: self.backend.update_product_cells(row.row_number, cells),
            f"update row {row.row_number}",
        )

        for column, value in applied.items():
            cleaned = sanitize_cell(value)
            if cleaned is None:
                row.values.pop(column, None)
            else:
                row.values[column] = cleaned
        return len(cells)

    def write_logs(self, entries: List[LogEntry]) -> None:
        if not entries:
            return
        rows = [entry.to_cells() for entry in entries]
        self.retry.run(lambda: self.backend.append_log_rows(rows), "append logs")

    def write_error(self, entry: ErrorEntry) -> None:
        cells = entry.to_cells()
        self.retry.run(lambda: self.backend.append_error_row(cells), "append error")

    def get_config_value(self, key: str) -> Optional[str]:
        for cells in self.retry.run(self.backend.read_config, "read config"):
            if cells and sanitize_cell(cells[0]) == key:
                return sanitize_cell(cells[1]) if len(cells) > 1 else None
        return None

    def set_config_value(self, key: str, value: str) -> None:
        row_number = None
        for index, cells in enumerate(self.retry.run(self.backend.read_config, "read config")):
            if cells and sanitize_cell(cells[0]) == key:
                row_number = index + 1
                break
        self.retry.run(lambda: self.backend.write_config(key, value, row_number), f"write config {key}")


def _find_in(rows: List[ProductRow], normalized_key: str) -> Optional[ProductRow]:
    for row in rows:
        if (row.product_key or "").lower() == normalized_key:
            return row
    return None
