#!/usr/bin/env python3
"""
Google Sheets backend for the product ledger.
"""

import logging
from typing import Dict, List, Optional

from constants import CONFIG_TAB, ERRORS_TAB, LOGS_TAB, PRODUCTS_TAB
from ledger import LedgerBackend


def column_letter(index: int) -> str:
    """0-based column index -> A1 column letters (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class GoogleSheetsBackend(LedgerBackend):
    """Ledger tabs stored in one Google spreadsheet."""

    def __init__(self, sheets_service, spreadsheet_id: str):
        self.values = sheets_service.spreadsheets().values()
        self.spreadsheet_id = spreadsheet_id

    def _get(self, range_name: str) -> List[List]:
        response = self.values.get(spreadsheetId=self.spreadsheet_id, range=range_name).execute()
        return response.get("values", [])

    def _append(self, range_name: str, rows: List[List], value_input_option: str = "RAW") -> None:
        self.values.append(
            spreadsheetId=self.spreadsheet_id,
            range=range_name,
            valueInputOption=value_input_option,
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        ).execute()

    def read_products(self) -> List[List]:
        return self._get(f"{PRODUCTS_TAB}!A:ZZ")

    def append_product_row(self, cells: List[str]) -> None:
        self._append(f"{PRODUCTS_TAB}!A:ZZ", [cells])

    def update_product_cells(self, row_number: int, cells: Dict[int, str]) -> None:
        data = [
            {
                "range": f"{PRODUCTS_TAB}!{column_letter(index)}{row_number}",
                "values": [[value]],
            }
            for index, value in sorted(cells.items())
        ]
        self.values.batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"valueInputOption": "RAW", "data": data},
        ).execute()
        logging.debug("Updated %d cells on row %d", len(data), row_number)

    def append_log_rows(self, rows: List[List[str]]) -> None:
        self._append(f"{LOGS_TAB}!A:D", rows)

    def append_error_row(self, cells: List[str]) -> None:
        self._append(f"{ERRORS_TAB}!A:F", [cells])

    def read_config(self) -> List[List]:
        return self._get(f"{CONFIG_TAB}!A:B")

    def write_config(self, key: str, value: str, row_number: Optional[int]) -> None:
        if row_number is None:
            self._append(f"{CONFIG_TAB}!A:B", [[key, value]])
            return
        self.values.update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{CONFIG_TAB}!B{row_number}",
            valueInputOption="RAW",
            body={"values": [[value]]},
        ).execute()
