"""Row reconciliation between exported rows and a Google Sheets worksheet.

The export job never reads a worksheet back in full.  Only the identity
column (column ``A``) is fetched and every freshly computed row is matched
against it by its first cell:

``plan_row``
    Reducer turning ``(state, row)`` into ``(state', operation)``.  A row whose
    key is already present overwrites that sheet row, anything else is
    appended after the last known row.

``plan_sheet``
    Lazily fold ``plan_row`` over all rows destined for one worksheet.

``row_range``
    Build the single-row A1 range written by an operation.

``assemble_batch``
    Concatenate the per-sheet operations into one ``batchUpdate`` payload.

Rows with an empty key cell are never matched, so blank lines in the sheet
are skipped rather than overwritten.  Duplicate keys inside one batch are not
rejected: a key that exists in the sheet resolves to the same row for every
occurrence (the last one written wins) while a missing key is appended once
per occurrence.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

KEY_COLUMN_RANGE = "A1:A"
MAJOR_DIMENSION = "ROWS"

Row = Sequence[Any]


@dataclass(frozen=True)
class UpdateOperation:
    """A single-row write addressed by an A1 range."""

    sheet_name: str
    range: str
    values: Tuple[Any, ...]

    @property
    def row_number(self) -> int:
        cell = self.range.rsplit("!", 1)[-1].split(":", 1)[0]
        return int(cell.lstrip("ABCDEFGHIJKLMNOPQRSTUVWXYZ"))

    def as_value_range(self) -> Dict[str, Any]:
        return {
            "range": self.range,
            "majorDimension": MAJOR_DIMENSION,
            "values": [list(self.values)],
        }


@dataclass(frozen=True)
class SheetState:
    """Identity keys read from a worksheet plus the append cursor."""

    existing_keys: Tuple[str, ...] = ()
    last_row: int = 0

    @classmethod
    def from_existing(cls, rows: Optional[Sequence[Row]]) -> "SheetState":
        """Seed the state from the fetched key column.

        ``None`` (the sheet reported no values) behaves like an empty sheet.
        The cursor starts at the number of fetched rows, header included.
        """

        if rows is None:
            return cls()
        keys = tuple(_key_of(row) for row in rows)
        return cls(existing_keys=keys, last_row=len(keys))

    def advance(self) -> "SheetState":
        return replace(self, last_row=self.last_row + 1)


def _key_of(row: Row) -> Any:
    if not row:
        return ""
    value = row[0]
    return "" if value is None else value


def column_letter(index: int) -> str:
    """Return the A1 column label for the 1-based column ``index``."""

    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters: List[str] = []
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def row_range(sheet_name: str, target_row: int, row_width: int) -> str:
    """Return ``"{sheet}!A{row}:{end}{row}"`` covering one row.

    ``row_width`` is floored at 1 so an empty row still addresses column A.
    """

    if target_row < 1:
        raise ValueError("Row number must be >= 1")
    end_column = column_letter(max(row_width, 1))
    return f"{sheet_name}!A{target_row}:{end_column}{target_row}"


def find_existing_row(state: SheetState, key: Any) -> Optional[int]:
    """Return the 0-based index of the first non-blank key equal to ``key``."""

    for index, existing in enumerate(state.existing_keys):
        if existing == "":
            continue
        if existing == key:
            return index
    return None


def plan_row(state: SheetState, sheet_name: str, row: Row) -> Tuple[SheetState, UpdateOperation]:
    """Resolve the target sheet row for ``row`` and build its write."""

    found = find_existing_row(state, _key_of(row))
    if found is not None:
        target_row = found + 1
    else:
        state = state.advance()
        target_row = state.last_row

    operation = UpdateOperation(
        sheet_name=sheet_name,
        range=row_range(sheet_name, target_row, len(row)),
        values=tuple(row),
    )
    return state, operation


def plan_sheet(
    sheet_name: str,
    existing: Optional[Sequence[Row]],
    rows: Iterable[Row],
) -> Iterator[UpdateOperation]:
    """Yield one operation per row, appending unmatched rows in input order."""

    state = SheetState.from_existing(existing)
    planned = 0
    for row in rows:
        state, operation = plan_row(state, sheet_name, row)
        planned += 1
        yield operation
    logger.debug("Planned %d rows for %s, append cursor at %d", planned, sheet_name, state.last_row)


def assemble_batch(per_sheet_operations: Iterable[Iterable[UpdateOperation]]) -> List[UpdateOperation]:
    """Flatten per-sheet operations, keeping sheet order and row order."""

    batch: List[UpdateOperation] = []
    for operations in per_sheet_operations:
        batch.extend(operations)
    return batch


def duplicate_keys(rows: Iterable[Row]) -> List[Any]:
    """Return identity keys that occur more than once, in first-seen order."""

    counts = Counter(_key_of(row) for row in rows)
    return [key for key, count in counts.items() if count > 1 and key != ""]


__all__ = [
    "KEY_COLUMN_RANGE",
    "SheetState",
    "UpdateOperation",
    "assemble_batch",
    "column_letter",
    "duplicate_keys",
    "find_existing_row",
    "plan_row",
    "plan_sheet",
    "row_range",
]
