from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from exporter.sheet_sync import (
    SheetState,
    UpdateOperation,
    assemble_batch,
    duplicate_keys,
    find_existing_row,
    plan_row,
    plan_sheet,
)


def test_matching_key_overwrites_existing_row() -> None:
    existing = [["id", "store_hash"], ["1", "old-name"]]
    state = SheetState.from_existing(existing)

    new_state, operation = plan_row(state, "test-sheet", ["1", "test-store"])

    assert operation.range == "test-sheet!A2:B2"
    assert operation.values == ("1", "test-store")
    assert new_state.last_row == len(existing)


def test_unmatched_rows_append_after_last_row() -> None:
    existing = [["id", "store_hash"], ["2", "store-abc"]]
    state = SheetState.from_existing(existing)

    state, first = plan_row(state, "test-sheet", ["1", "test-store-1"])
    assert first.range == "test-sheet!A3:B3"
    assert state.last_row == 3

    state, second = plan_row(state, "test-sheet", ["3", "test-store-3"])
    assert second.range == "test-sheet!A4:B4"
    assert state.last_row == 4


def test_plan_row_does_not_mutate_input_state() -> None:
    state = SheetState.from_existing([["id"]])

    plan_row(state, "sheet", ["new"])

    assert state.last_row == 1


def test_missing_sheet_values_start_at_row_one() -> None:
    operations = list(plan_sheet("sheet", None, [["x", "y", "z"]]))

    assert [operation.range for operation in operations] == ["sheet!A1:C1"]


def test_empty_sequence_behaves_like_missing_values() -> None:
    assert list(plan_sheet("sheet", [], [["a"], ["b"]])) == list(plan_sheet("sheet", None, [["a"], ["b"]]))


def test_blank_key_cells_are_never_matched() -> None:
    existing = [["id"], ["", "gap"]]

    operations = list(plan_sheet("sheet", existing, [["id-value", "x"]]))

    assert operations[0].range == "sheet!A3:B3"


def test_empty_new_key_does_not_match_blank_rows() -> None:
    existing = [["id"], [""]]

    operations = list(plan_sheet("sheet", existing, [["", "orphan"]]))

    assert operations[0].row_number == 3


def test_appends_stay_consecutive_around_matches() -> None:
    existing = [["id"], ["a"], ["b"], ["c"]]
    rows = [["x"], ["b"], ["y"], ["a"], ["z"], ["c"]]

    targets = [operation.row_number for operation in plan_sheet("s", existing, rows)]

    assert targets == [5, 3, 6, 2, 7, 4]


def test_rerun_against_written_state_reuses_targets() -> None:
    existing = [["id"], ["1"], [""]]
    rows = [["1", "a"], ["2", "b"], ["3", "c"]]

    first_run = list(plan_sheet("s", existing, rows))
    written = [list(row) for row in existing]
    for operation in first_run:
        while len(written) < operation.row_number:
            written.append([""])
        written[operation.row_number - 1] = [operation.values[0]]
    second_run = list(plan_sheet("s", written, rows))

    assert [op.range for op in second_run] == [op.range for op in first_run]


def test_duplicate_existing_key_targets_same_row() -> None:
    existing = [["id"], ["k"]]

    operations = list(plan_sheet("s", existing, [["k", "first"], ["k", "second"]]))

    assert [operation.row_number for operation in operations] == [2, 2]


def test_duplicate_new_key_is_appended_twice() -> None:
    operations = list(plan_sheet("s", [["id"]], [["k", "first"], ["k", "second"]]))

    assert [operation.row_number for operation in operations] == [2, 3]


def test_first_matching_index_wins() -> None:
    state = SheetState.from_existing([["id"], ["k"], ["k"]])

    assert find_existing_row(state, "k") == 1
    assert find_existing_row(state, "missing") is None


def test_empty_row_addresses_column_a() -> None:
    operations = list(plan_sheet("s", None, [[]]))

    assert operations[0].range == "s!A1:A1"
    assert operations[0].values == ()


def test_plan_sheet_is_lazy() -> None:
    def rows():
        yield ["a"]
        raise AssertionError("planner consumed more rows than requested")

    generator = plan_sheet("s", None, rows())

    assert next(generator).range == "s!A1:A1"


def test_value_range_payload_shape() -> None:
    operation = UpdateOperation(sheet_name="s", range="s!A2:B2", values=("1", "x"))

    assert operation.as_value_range() == {
        "range": "s!A2:B2",
        "majorDimension": "ROWS",
        "values": [["1", "x"]],
    }


def test_assemble_batch_keeps_sheet_and_row_order() -> None:
    first = list(plan_sheet("one", None, [["a"], ["b"]]))
    second = list(plan_sheet("two", [["id"]], [["c"]]))

    batch = assemble_batch([first, [], second])

    assert [operation.range for operation in batch] == ["one!A1:A1", "one!A2:A2", "two!A2:A2"]


def test_each_sheet_keeps_its_own_cursor() -> None:
    first = list(plan_sheet("one", [["id"], ["1"]], [["9"]]))
    second = list(plan_sheet("two", None, [["9"]]))

    assert first[0].row_number == 3
    assert second[0].row_number == 1


def test_duplicate_keys_reports_repeats_in_order() -> None:
    rows = [["b"], ["a"], ["b"], [""], [""], ["a"], ["c"]]

    assert duplicate_keys(rows) == ["b", "a"]
