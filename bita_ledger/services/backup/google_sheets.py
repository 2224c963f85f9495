"""
Google Sheets backup slot.

DESIGN DECISION: Sheets is offered as a second backend because:
1. Non-technical owners can see that a backup exists and when it ran
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- A cell holds at most 50,000 characters, so the base64 payload is split
  across consecutive cells of the account's row
- Large ledgers make for wide rows; fine for one bakery's data

Row layout in the Backups worksheet:
    account_id | timestamp | chunk_count | chunk_0 | chunk_1 | ...
"""

import asyncio
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bita_ledger.config import GoogleSheetsSettings, get_settings
from bita_ledger.services.backup.interface import (
    BackupRecord,
    RemoteBackupSlot,
    RemoteUnavailableError,
)
from bita_ledger.services.storage.interface import CorruptSnapshotError


BACKUP_COLUMNS = ["account_id", "timestamp", "chunk_count", "data"]

# Stay clear of the 50,000 character cell limit.
CHUNK_SIZE = 45_000


def split_payload(data: str, chunk_size: int = CHUNK_SIZE) -> list[str]:
    if not data:
        return [""]
    return [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
                raise RemoteUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteUnavailableError(f"Failed to connect to Google Sheets: {e}")

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
                raise RemoteUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_backups_sheet(self) -> gspread.Worksheet:
        """Get or create the Backups worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.backups_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.backups_sheet_name,
                rows=100,
                cols=len(BACKUP_COLUMNS),
            )
            sheet.append_row(BACKUP_COLUMNS)
        return sheet


class GoogleSheetsBackupSlot(RemoteBackupSlot):
    """
    Google Sheets implementation of the backup slot.

    One row per account; uploads overwrite the row in place.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _find_row(sheet: gspread.Worksheet, account_id: str) -> Optional[int]:
        """1-based row index of the account, skipping the header."""
        for idx, value in enumerate(sheet.col_values(1)[1:], start=2):
            if value == account_id:
                return idx
        return None

    @staticmethod
    def _record_to_row(account_id: str, record: BackupRecord) -> list:
        chunks = split_payload(record.data)
        return [account_id, str(record.timestamp), str(len(chunks)), *chunks]

    @staticmethod
    def _row_to_record(row: list) -> BackupRecord:
        try:
            timestamp = int(row[1])
            chunk_count = int(row[2])
        except (IndexError, ValueError) as e:
            raise CorruptSnapshotError(f"Malformed backup row: {e}") from e
        chunks = row[3:3 + chunk_count]
        if len(chunks) < chunk_count and not (chunk_count == 1 and not chunks):
            raise CorruptSnapshotError(
                f"Backup row has {len(chunks)} of {chunk_count} payload chunks"
            )
        return BackupRecord(data="".join(chunks), timestamp=timestamp)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(CorruptSnapshotError),
        reraise=True,
    )
    def _get_sync(self, account_id: str) -> Optional[BackupRecord]:
        sheet = self._client.get_backups_sheet()
        idx = self._find_row(sheet, account_id)
        if idx is None:
            return None
        return self._row_to_record(sheet.row_values(idx))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _put_sync(self, account_id: str, record: BackupRecord) -> None:
        sheet = self._client.get_backups_sheet()
        row = self._record_to_row(account_id, record)
        idx = self._find_row(sheet, account_id)
        if idx is None:
            sheet.append_row(row, value_input_option="RAW")
            return

        # Blank out chunks left over from a longer previous payload.
        previous_width = len(sheet.row_values(idx))
        if previous_width > len(row):
            row.extend([""] * (previous_width - len(row)))
        if len(row) > sheet.col_count:
            sheet.add_cols(len(row) - sheet.col_count)
        sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _delete_sync(self, account_id: str) -> None:
        sheet = self._client.get_backups_sheet()
        idx = self._find_row(sheet, account_id)
        if idx is not None:
            sheet.delete_rows(idx)

    async def get(self, account_id: str) -> Optional[BackupRecord]:
        """Fetch the account's backup row."""
        try:
            return await asyncio.to_thread(self._get_sync, account_id)
        except (CorruptSnapshotError, RemoteUnavailableError):
            raise
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to read backup: {e}") from e

    async def put(self, account_id: str, record: BackupRecord) -> None:
        """Overwrite the account's backup row."""
        try:
            await asyncio.to_thread(self._put_sync, account_id, record)
        except RemoteUnavailableError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to write backup: {e}") from e

    async def delete(self, account_id: str) -> None:
        """Remove the account's backup row."""
        try:
            await asyncio.to_thread(self._delete_sync, account_id)
        except RemoteUnavailableError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to delete backup: {e}") from e
