import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from exporter import sheet_sync


@pytest.mark.parametrize(
    "width, expected",
    [
        (0, "sheet!A7:A7"),
        (1, "sheet!A7:A7"),
        (2, "sheet!A7:B7"),
        (5, "sheet!A7:E7"),
        (26, "sheet!A7:Z7"),
    ],
)
def test_row_range_end_column_follows_width(width, expected):
    assert sheet_sync.row_range("sheet", 7, width) == expected


@pytest.mark.parametrize(
    "width, expected_column",
    [
        (27, "AA"),
        (28, "AB"),
        (52, "AZ"),
        (53, "BA"),
        (702, "ZZ"),
        (703, "AAA"),
    ],
)
def test_row_range_uses_multi_letter_columns_past_z(width, expected_column):
    assert sheet_sync.row_range("wide", 3, width) == f"wide!A3:{expected_column}3"


def test_row_range_keeps_sheet_name_verbatim():
    assert sheet_sync.row_range("charity-events", 12, 4) == "charity-events!A12:D12"


def test_row_range_rejects_non_positive_rows():
    with pytest.raises(ValueError):
        sheet_sync.row_range("sheet", 0, 3)


def test_column_letter_rejects_zero():
    with pytest.raises(ValueError):
        sheet_sync.column_letter(0)


def test_operation_row_number_reads_range():
    operation = sheet_sync.UpdateOperation(sheet_name="s", range="s!A41:AB41", values=("x",))
    assert operation.row_number == 41
