#!/usr/bin/env python3
"""
Local .xlsx backend for the product ledger (offline runs and tests).
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from openpyxl import Workbook, load_workbook

from constants import (
    CONFIG_TAB,
    DEFAULT_PRODUCT_COLUMNS,
    ERROR_COLUMNS,
    ERRORS_TAB,
    LOG_COLUMNS,
    LOGS_TAB,
    PRODUCTS_TAB,
)
from ledger import LedgerBackend

DEFAULT_HEADERS = {
    PRODUCTS_TAB: DEFAULT_PRODUCT_COLUMNS,
    LOGS_TAB: LOG_COLUMNS,
    ERRORS_TAB: ERROR_COLUMNS,
    CONFIG_TAB: [],
}


class WorkbookBackend(LedgerBackend):
    """
    Ledger tabs stored in an .xlsx file.

    The file is created with the default tabs and header rows when missing.
    Every operation reopens the file so edits made in Excel between runs
    are picked up.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()
        if not self.path.exists():
            self._create()

    def _create(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        wb = Workbook()
        wb.remove(wb.active)
        for title, headers in DEFAULT_HEADERS.items():
            ws = wb.create_sheet(title)
            if headers:
                ws.append(list(headers))
        wb.save(self.path)
        logging.info("Created ledger workbook %s", self.path)

    def _sheet(self, wb, title: str):
        if title not in wb.sheetnames:
            ws = wb.create_sheet(title)
            if DEFAULT_HEADERS.get(title):
                ws.append(list(DEFAULT_HEADERS[title]))
        return wb[title]

    def _read(self, title: str) -> List[List]:
        with self._lock:
            wb = load_workbook(self.path)
            ws = self._sheet(wb, title)
            rows = [list(row) for row in ws.iter_rows(values_only=True)]
        # Trailing blank rows are not part of the table
        while rows and all(cell in (None, "") for cell in rows[-1]):
            rows.pop()
        return rows

    def _append(self, title: str, rows: List[List]) -> None:
        with self._lock:
            wb = load_workbook(self.path)
            ws = self._sheet(wb, title)
            for row in rows:
                ws.append(list(row))
            wb.save(self.path)

    def read_products(self) -> List[List]:
        return self._read(PRODUCTS_TAB)

    def append_product_row(self, cells: List[str]) -> None:
        self._append(PRODUCTS_TAB, [cells])

    def update_product_cells(self, row_number: int, cells: Dict[int, str]) -> None:
        with self._lock:
            wb = load_workbook(self.path)
            ws = self._sheet(wb, PRODUCTS_TAB)
            for index, value in cells.items():
                ws.cell(row=row_number, column=index + 1, value=value)
            wb.save(self.path)

    def append_log_rows(self, rows: List[List[str]]) -> None:
        self._append(LOGS_TAB, rows)

    def append_error_row(self, cells: List[str]) -> None:
        self._append(ERRORS_TAB, [cells])

    def read_config(self) -> List[List]:
        return self._read(CONFIG_TAB)

    def write_config(self, key: str, value: str, row_number: Optional[int]) -> None:
        with self._lock:
            wb = load_workbook(self.path)
            ws = self._sheet(wb, CONFIG_TAB)
            if row_number is None:
                ws.append([key, value])
            else:
                ws.cell(row=row_number, column=2, value=value)
            wb.save(self.path)
