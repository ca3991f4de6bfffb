import pandas as pd
import pytest

from estimaterecon.validation import correct_totals, find_total_mismatches, validate_totals


def test_validate_totals_flags_inconsistent_rows():
    frame = pd.DataFrame(
        {
            "quantity": [10.0, 10.0, 0.0],
            "unit_price": [2.0, 2.0, 5.0],
            "total_price": [20.0, 25.0, 0.0],
        }
    )

    checked = validate_totals(frame)

    assert list(checked["total_mismatch"]) == [False, True, False]
    assert checked.loc[1, "total_difference"] == pytest.approx(5.0)
    assert "total_mismatch" not in frame.columns


def test_find_and_correct_mismatching_totals():
    items = [
        {"description": "Paint walls", "quantity": 10, "unit_price": 2.0, "total_price": 25.0},
        {"description": "Tape drywall", "quantity": 4, "unit_price": 3.0},
        {"description": "Texture", "quantity": 100, "unit_price": 1.0, "total_price": 100.2},
    ]

    flagged = find_total_mismatches(items)
    corrected = correct_totals(items)

    assert [item.description for item in flagged] == ["Paint walls"]
    assert [item.total_price for item in corrected] == [20.0, 12.0, 100.2]
    assert find_total_mismatches([]) == []
