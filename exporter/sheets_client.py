"""Google Sheets client used by the export job.

Only two remote calls are needed for a run:

* ``values.get`` on the identity column of each worksheet (``A1:A``) so the
  amount of data read does not grow with the sheet width.
* A single ``values.batchUpdate`` carrying every planned row write.  Values are
  sent with ``USER_ENTERED`` so dates and numbers are parsed by Sheets, and the
  written values are not echoed back.

Rate limit and transient server errors are retried with exponential backoff at
the HTTP level.  Every other failure, including token refresh and connection
errors, surfaces as a subclass of :class:`SheetsClientError`.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from exporter.google_credentials import (
    CredentialsFileInvalidError,
    load_cached_token,
    load_service_account_data,
    store_cached_token,
)
from exporter.sheet_sync import KEY_COLUMN_RANGE, UpdateOperation

logger = logging.getLogger(__name__)

SCOPES: Sequence[str] = ("https://www.googleapis.com/auth/spreadsheets",)
VALUE_INPUT_OPTION = "USER_ENTERED"
RETRIABLE_STATUSES = {429, 500, 502, 503, 504}
MAX_RETRY_ATTEMPTS = 5
BACKOFF_SCHEDULE = (1, 2, 4, 8, 16)


class SheetsClientError(RuntimeError):
    """Base error raised for Sheets API failures."""


class SheetsCredentialsError(SheetsClientError):
    """Raised when the provided credential file is invalid or missing."""


class SheetsApiResponseError(SheetsClientError):
    """Raised when the Google API returns an error response."""


def parse_spreadsheet_id(value: str) -> str:
    """Normalise a spreadsheet identifier from raw input or URL."""

    if not value:
        return ""
    value = value.strip()
    if "/spreadsheets/d/" in value:
        value = value.split("/spreadsheets/d/", 1)[1]
        value = value.split("/", 1)[0]
    if "?" in value:
        value = value.split("?", 1)[0]
    if "#" in value:
        value = value.split("#", 1)[0]
    return value


def _http_status(exc: HttpError) -> int:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "resp", None), "status", 0)
    try:
        return int(status)
    except (TypeError, ValueError):
        return 0


def _call_with_retry(
    func: Callable[[], Any],
    description: str,
    *,
    max_attempts: int = MAX_RETRY_ATTEMPTS,
) -> Any:
    """Execute ``func`` applying exponential backoff for retriable errors."""

    attempt = 0
    while True:
        try:
            return func()
        except HttpError as exc:
            status = _http_status(exc)
            attempt += 1
            if status not in RETRIABLE_STATUSES or attempt >= max_attempts:
                raise SheetsApiResponseError(f"Sheets API {description} failed ({status}): {exc}") from exc
            delay = BACKOFF_SCHEDULE[min(attempt - 1, len(BACKOFF_SCHEDULE) - 1)]
            logger.warning(
                "Sheets API %s error (%s). Retrying in %ss (%d/%d)",
                description,
                status,
                delay,
                attempt,
                max_attempts,
            )
            time.sleep(delay)
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as exc:
            # Token refresh and connection failures.
            raise SheetsApiResponseError(f"Sheets API {description} failed: {exc}") from exc


def _load_credentials(credentials_path: Path, token_cache_path: Optional[Path] = None):
    if not credentials_path.exists():
        raise SheetsCredentialsError(f"Credentials file not found: {credentials_path}")
    try:
        payload = load_service_account_data(credentials_path)
    except CredentialsFileInvalidError as exc:
        raise SheetsCredentialsError(str(exc)) from exc

    try:
        credentials = service_account.Credentials.from_service_account_info(payload, scopes=SCOPES)
    except ValueError as exc:
        raise SheetsCredentialsError(str(exc)) from exc

    cached = load_cached_token(token_cache_path)
    if cached is not None:
        credentials.token, credentials.expiry = cached
        logger.debug("Using cached access token from %s", token_cache_path)
    return credentials


def build_service(credentials_path: Path, token_cache_path: Optional[Path] = None):
    """Return a Sheets v4 service authorised with a service account."""

    credentials = _load_credentials(Path(credentials_path), token_cache_path)
    service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
    return service, credentials


class GoogleSheetsClient:
    """Reads identity columns and submits batched row writes."""

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        service=None,
        credentials=None,
        token_cache_path: Optional[Path] = None,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> None:
        self._spreadsheet_id = parse_spreadsheet_id(spreadsheet_id)
        if not self._spreadsheet_id:
            raise SheetsClientError("A valid spreadsheet ID is required.")
        self._service = service
        self._credentials = credentials
        self._token_cache_path = token_cache_path
        self._max_attempts = max(1, max_attempts)
        self._stored_token: Optional[str] = None

    @classmethod
    def from_files(
        cls,
        spreadsheet_id: str,
        credentials_path: Path,
        *,
        token_cache_path: Optional[Path] = None,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> "GoogleSheetsClient":
        service, credentials = build_service(credentials_path, token_cache_path)
        return cls(
            spreadsheet_id,
            service=service,
            credentials=credentials,
            token_cache_path=token_cache_path,
            max_attempts=max_attempts,
        )

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    def fetch_key_column(self, sheet_name: str) -> Optional[List[List[str]]]:
        """Return the identity column of ``sheet_name``.

        ``None`` is returned when Sheets reports no values at all.  Blank rows
        come back as ``[""]`` so row positions are preserved.
        """

        request = (
            self._service.spreadsheets()
            .values()
            .get(spreadsheetId=self._spreadsheet_id, range=f"{sheet_name}!{KEY_COLUMN_RANGE}")
        )
        response = _call_with_retry(request.execute, "values.get", max_attempts=self._max_attempts)
        self.persist_token()
        values = response.get("values") if isinstance(response, dict) else None
        if values is None:
            logger.debug("Sheet %s returned no values", sheet_name)
            return None
        rows = [[str(row[0]) if row else ""] for row in values]
        logger.debug("Fetched %d key rows from %s", len(rows), sheet_name)
        return rows

    def submit_batch(self, operations: Sequence[UpdateOperation]) -> Dict[str, Any]:
        """Write all ``operations`` with one ``values.batchUpdate`` request."""

        if not operations:
            logger.info("No row updates to submit")
            return {}

        body = {
            "valueInputOption": VALUE_INPUT_OPTION,
            "includeValuesInResponse": False,
            "data": [operation.as_value_range() for operation in operations],
        }
        request = (
            self._service.spreadsheets()
            .values()
            .batchUpdate(spreadsheetId=self._spreadsheet_id, body=body)
        )
        response = _call_with_retry(request.execute, "values.batchUpdate", max_attempts=self._max_attempts)
        self.persist_token()
        if isinstance(response, dict):
            logger.info(
                "Sheets accepted %s updated rows across %s sheets",
                response.get("totalUpdatedRows", len(operations)),
                response.get("totalUpdatedSheets", "?"),
            )
            return response
        return {}

    def persist_token(self) -> None:
        """Write the current access token to the cache when it changed."""

        credentials = self._credentials
        if credentials is None:
            return
        token = getattr(credentials, "token", None)
        if not token or token == self._stored_token:
            return
        try:
            store_cached_token(self._token_cache_path, token, getattr(credentials, "expiry", None))
        except OSError:
            logger.warning("Could not write token cache %s", self._token_cache_path, exc_info=True)
            return
        self._stored_token = token


__all__ = [
    "GoogleSheetsClient",
    "SheetsApiResponseError",
    "SheetsClientError",
    "SheetsCredentialsError",
    "build_service",
    "parse_spreadsheet_id",
]
