"""
Google Sheets Key-Value Backend

DESIGN DECISION: Google Sheets is offered as a remote backend because:
1. Users can look at their ledger keys directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for one household)
- No transactions (each key is one row, so writes stay independent)
- Every read lists the sheet (we filter in Python)

Rows are ``key | value | updated_at`` with a header row.
"""

from typing import Iterable, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from kakeibo_lens.config import get_settings
from kakeibo_lens.models.ledger import utcnow
from kakeibo_lens.services.storage.interface import (
    KeyValueStore,
    StorageConnectionError,
    StorageError,
)


KV_COLUMNS = ["key", "value", "updated_at"]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_store_sheet(self) -> gspread.Worksheet:
        """Get or create the key/value worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.worksheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.worksheet_name,
                rows=1000,
                cols=len(KV_COLUMNS),
            )
            sheet.append_row(KV_COLUMNS)
        return sheet


class GoogleSheetsKeyValueStore(KeyValueStore):
    """
    Google Sheets implementation of the key-value store.

    One key per row. The client is injected so tests can hand in a fake
    worksheet provider.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rows(self) -> list[list[str]]:
        """All data rows, header excluded."""
        return self._client.get_store_sheet().get_all_values()[1:]

    def _find_row(self, rows: list[list[str]], key: str) -> Optional[int]:
        """1-based sheet row index of ``key`` (row 1 is the header)."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == key:
                return idx
        return None

    async def get(self, key: str) -> Optional[str]:
        try:
            for row in self._rows():
                if row and row[0] == key:
                    return row[1] if len(row) > 1 else ""
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read key {key}: {e}")

    async def multi_get(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        wanted = list(keys)
        try:
            values = {
                row[0]: (row[1] if len(row) > 1 else "")
                for row in self._rows()
                if row and row[0]
            }
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read keys: {e}")
        return {key: values.get(key) for key in wanted}

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set(self, key: str, value: str) -> None:
        try:
            sheet = self._client.get_store_sheet()
            rows = sheet.get_all_values()[1:]
            timestamp = utcnow().isoformat()
            idx = self._find_row(rows, key)
            if idx is None:
                sheet.append_row([key, value, timestamp], value_input_option="RAW")
            else:
                sheet.update_cell(idx, 2, value)
                sheet.update_cell(idx, 3, timestamp)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write key {key}: {e}")

    async def multi_remove(self, keys: Iterable[str]) -> None:
        doomed = set(keys)
        if not doomed:
            return
        try:
            sheet = self._client.get_store_sheet()
            rows = sheet.get_all_values()[1:]
            indexes = [
                idx for idx, row in enumerate(rows, start=2)
                if row and row[0] in doomed
            ]
            # Bottom-up so earlier indexes stay valid
            for idx in sorted(indexes, reverse=True):
                sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete keys: {e}")

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            return [
                row[0] for row in self._rows()
                if row and row[0] and row[0].startswith(prefix)
            ]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list keys: {e}")
