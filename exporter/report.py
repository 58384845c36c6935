"""One export pass: database rows in, a single Sheets batch write out.

Sheets are processed sequentially.  For each logical sheet the rows are
queried, the identity column is fetched once and the rows are planned against
it.  A sheet whose query or fetch fails is reported and skipped while the
other sheets continue.  All planned writes are then submitted with one
``batchUpdate`` call; a failure there aborts the run.

Runs must not overlap for the same spreadsheet.  The append cursor of a sheet
is only valid between its fetch and the submit of the same run.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import db
from exporter.reporting_window import week_start_end, window_label
from exporter.sheet_sync import UpdateOperation, assemble_batch, duplicate_keys, plan_sheet
from exporter.sheets_client import GoogleSheetsClient, SheetsClientError
from settings import ExporterSettings

logger = logging.getLogger(__name__)

PHASE_QUERY = "query"
PHASE_FETCH = "fetch"
PHASE_PLANNED = "planned"


class ExportError(Exception):
    """Raised when an export run cannot be completed."""


@dataclass
class SheetOutcome:
    """Result of planning one logical sheet."""

    sheet_name: str
    phase: str = PHASE_PLANNED
    rows: int = 0
    existing_rows: int = 0
    updated: int = 0
    appended: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExportReport:
    window_start: datetime
    window_end: datetime
    outcomes: List[SheetOutcome] = field(default_factory=list)
    operations: List[UpdateOperation] = field(default_factory=list)
    submitted: bool = False
    dry_run: bool = False

    @property
    def failed_sheets(self) -> List[str]:
        return [outcome.sheet_name for outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        if self.failed_sheets:
            return False
        return self.submitted or self.dry_run or not self.operations

    def summary(self) -> str:
        lines = [f"Window: {window_label(self.window_start, self.window_end)}"]
        for outcome in self.outcomes:
            if outcome.ok:
                lines.append(
                    f"{outcome.sheet_name}: {outcome.rows} rows "
                    f"({outcome.updated} updated, {outcome.appended} appended)"
                )
            else:
                lines.append(f"{outcome.sheet_name}: FAILED during {outcome.phase}: {outcome.error}")
        if self.dry_run:
            lines.append(f"Dry run: {len(self.operations)} row writes planned, nothing submitted.")
        else:
            lines.append(f"Submitted {len(self.operations) if self.submitted else 0} row writes.")
        return "\n".join(lines)


def _plan_source(
    client: GoogleSheetsClient,
    conn: sqlite3.Connection,
    source: db.SheetSource,
    start: datetime,
    end: datetime,
) -> tuple[SheetOutcome, List[UpdateOperation]]:
    outcome = SheetOutcome(sheet_name=source.sheet_name)

    try:
        rows = source.fetch_rows(conn, start, end)
    except sqlite3.Error as exc:
        outcome.phase = PHASE_QUERY
        outcome.error = str(exc)
        logger.error("Sheet %s: row query failed: %s", source.sheet_name, exc)
        return outcome, []
    outcome.rows = len(rows)

    duplicates = duplicate_keys(rows)
    if duplicates:
        logger.warning(
            "Sheet %s: %d identity keys repeat within this batch, later rows win: %s",
            source.sheet_name,
            len(duplicates),
            ", ".join(str(key) for key in duplicates[:10]),
        )

    try:
        existing = client.fetch_key_column(source.sheet_name)
    except SheetsClientError as exc:
        outcome.phase = PHASE_FETCH
        outcome.error = str(exc)
        logger.error(
            "Sheet %s: key column fetch failed, %d rows not exported: %s",
            source.sheet_name,
            outcome.rows,
            exc,
        )
        return outcome, []

    outcome.existing_rows = len(existing) if existing is not None else 0
    operations = list(plan_sheet(source.sheet_name, existing, rows))
    outcome.appended = sum(1 for operation in operations if operation.row_number > outcome.existing_rows)
    outcome.updated = len(operations) - outcome.appended
    logger.info(
        "Sheet %s: %d rows planned (%d updated, %d appended, %d existing rows)",
        source.sheet_name,
        outcome.rows,
        outcome.updated,
        outcome.appended,
        outcome.existing_rows,
    )
    return outcome, operations


def export_sheets(
    client: GoogleSheetsClient,
    conn: sqlite3.Connection,
    *,
    base_date: Optional[datetime] = None,
    sources: Sequence[db.SheetSource] = db.SHEET_SOURCES,
    dry_run: bool = False,
) -> ExportReport:
    """Plan every sheet in ``sources`` and submit the combined batch."""

    start, end = week_start_end(base_date)
    report = ExportReport(window_start=start, window_end=end, dry_run=dry_run)
    logger.info("Export window %s", window_label(start, end))

    per_sheet: List[List[UpdateOperation]] = []
    for source in sources:
        outcome, operations = _plan_source(client, conn, source, start, end)
        report.outcomes.append(outcome)
        per_sheet.append(operations)

    report.operations = assemble_batch(per_sheet)

    if dry_run:
        logger.info("Dry run: %d row writes planned, skipping submit", len(report.operations))
        return report

    try:
        client.submit_batch(report.operations)
    except SheetsClientError as exc:
        logger.error("Batch submit of %d row writes failed: %s", len(report.operations), exc)
        raise ExportError(f"Batch submit failed: {exc}") from exc
    report.submitted = True
    logger.info("Submitted %d row writes to %s", len(report.operations), client.spreadsheet_id)
    return report


def run(
    settings: ExporterSettings,
    *,
    client: Optional[GoogleSheetsClient] = None,
    conn: Optional[sqlite3.Connection] = None,
    base_date: Optional[datetime] = None,
    dry_run: bool = False,
) -> ExportReport:
    """Run one export pass using ``settings`` for anything not injected."""

    settings.validate()
    if client is None:
        try:
            client = GoogleSheetsClient.from_files(
                settings.spreadsheet_id,
                Path(settings.credential_path).expanduser(),
                token_cache_path=Path(settings.token_cache_path).expanduser() if settings.token_cache_path else None,
                max_attempts=settings.max_attempts,
            )
        except SheetsClientError as exc:
            raise ExportError(f"Could not connect to Google Sheets: {exc}") from exc

    if conn is not None:
        return export_sheets(client, conn, base_date=base_date, dry_run=dry_run)

    database_path = Path(settings.database_path).expanduser()
    if not database_path.exists():
        raise ExportError(f"Database not found: {database_path}")
    with db.connection(database_path) as opened:
        return export_sheets(client, opened, base_date=base_date, dry_run=dry_run)


__all__ = [
    "ExportError",
    "ExportReport",
    "SheetOutcome",
    "export_sheets",
    "run",
]
