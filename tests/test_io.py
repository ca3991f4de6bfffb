import json

import numpy as np
import pandas as pd
import pytest

from estimaterecon.config import ColumnMapping
from estimaterecon.io import (
    coerce_numeric,
    load_catalog,
    load_estimate,
    load_line_item_frame,
    load_line_items,
    load_measurements,
    load_rules,
    load_synonym_pairs,
)


def test_load_line_items_autodetects_headers(tmp_path):
    data = pd.DataFrame(
        {
            "Code": ["DRY100", ""],
            "Description": ["Install drywall 1/2 inch", "Tape & mud drywall"],
            "Qty": ["1,200", "100"],
            "Unit": ["SF", "SF"],
            "Unit Price": ["$2.00", "1.10"],
            "Total": ["$2,400.00", ""],
        }
    )
    csv_path = tmp_path / "estimate.csv"
    data.to_csv(csv_path, index=False)

    items = load_line_items(csv_path)

    assert [item.code for item in items] == ["DRY100", None]
    assert items[0].quantity == pytest.approx(1200.0)
    assert items[0].unit_price == pytest.approx(2.0)
    assert items[0].total_price == pytest.approx(2400.0)
    assert items[1].total_price == pytest.approx(110.0)
    assert items[1].item == "Tape & mud drywall"


def test_load_line_item_frame_has_canonical_columns(tmp_path):
    csv_path = tmp_path / "estimate.csv"
    pd.DataFrame({"Description": ["Paint walls", ""], "Qty": ["3", "4"]}).to_csv(csv_path, index=False)

    frame = load_line_item_frame(csv_path)

    assert list(frame.columns) == [
        "code",
        "item",
        "description",
        "category",
        "unit",
        "quantity",
        "unit_price",
        "total_price",
    ]
    assert len(frame) == 1
    assert np.isnan(frame.loc[0, "unit_price"])


def test_explicit_column_mapping(tmp_path):
    csv_path = tmp_path / "estimate.csv"
    pd.DataFrame({"Scope Text": ["Paint walls"], "Count": ["3"]}).to_csv(csv_path, index=False)

    items = load_line_items(csv_path, ColumnMapping(description="scope text", quantity="Count"))

    assert items[0].description == "Paint walls"
    assert items[0].quantity == 3.0

    with pytest.raises(KeyError):
        load_line_items(csv_path, ColumnMapping(description="Missing"))


def test_load_line_items_from_excel(tmp_path):
    xlsx_path = tmp_path / "estimate.xlsx"
    pd.DataFrame(
        {"Description": ["Replace drywall"], "Quantity": [12], "Unit Price": [2.5]}
    ).to_excel(xlsx_path, index=False)

    items = load_line_items(xlsx_path)

    assert items[0].description == "Replace drywall"
    assert items[0].total_price == pytest.approx(30.0)


def test_load_estimate_from_json(tmp_path):
    path = tmp_path / "estimate.json"
    path.write_text(
        json.dumps(
            {
                "lineItems": [{"item": "Paint walls", "quantity": 10, "unitPrice": 2}],
                "measurements": [{"type": "Area", "description": "Walls", "value": 400, "unit": "SF"}],
                "totalCost": 25,
            }
        ),
        encoding="utf-8",
    )

    estimate = load_estimate(path)

    assert estimate.line_items[0].total_price == pytest.approx(20.0)
    assert estimate.measurements[0].type == "area"
    assert estimate.total_cost == pytest.approx(25.0)


def test_load_measurements_from_csv(tmp_path):
    path = tmp_path / "measurements.csv"
    pd.DataFrame(
        {"Type": ["area"], "Description": ["Kitchen floor"], "Value": ["1,250.5"], "Unit": ["SF"]}
    ).to_csv(path, index=False)

    measurements = load_measurements(path)

    assert measurements[0].value == pytest.approx(1250.5)
    assert measurements[0].description == "Kitchen floor"


def test_coerce_numeric_handles_currency_and_accounting_negatives():
    values = pd.Series(["$1,234.50", "(12.50)", "abc", None, "  7 "])

    result = coerce_numeric(values)

    assert result.iloc[0] == pytest.approx(1234.5)
    assert result.iloc[1] == pytest.approx(-12.5)
    assert np.isnan(result.iloc[2])
    assert np.isnan(result.iloc[3])
    assert result.iloc[4] == pytest.approx(7.0)


def test_load_sample_catalog(sample_dir):
    catalog = load_catalog(sample_dir / "catalog.csv")

    assert len(catalog) == 27
    assert catalog.find_by_code("rfg130").description == "Drip edge"
    assert catalog.get_by_category("WTR")


def test_load_catalog_from_json(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"items": [{"code": "A1", "description": "Item"}, {"bad": True}]}), encoding="utf-8")

    catalog = load_catalog(path)

    assert len(catalog) == 1


def test_load_rules_and_synonyms(sample_dir, tmp_path):
    rules = load_rules(sample_dir / "rules.yaml")
    assert [rule.missing_item for rule in rules] == ["Haul debris"]

    pairs = load_synonym_pairs(sample_dir / "synonyms.yaml")
    assert pairs == [("demo", "tear out"), ("debris", "haul off")]

    mapping_path = tmp_path / "synonyms.yaml"
    mapping_path.write_text("demo:\n  - tear out\n  - rip out\nr&r: remove and replace\n", encoding="utf-8")
    assert load_synonym_pairs(mapping_path) == [
        ("demo", "tear out"),
        ("demo", "rip out"),
        ("r&r", "remove and replace"),
    ]


def test_load_rules_drops_malformed_records(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            [
                {"category": "Broken"},
                {
                    "category": "Doors",
                    "trigger": [["door"], ["install"]],
                    "required": ["lockset"],
                    "missingItem": "Lockset",
                    "reason": "Doors need a lockset",
                },
            ]
        ),
        encoding="utf-8",
    )

    assert [rule.missing_item for rule in load_rules(path)] == ["Lockset"]


def test_missing_files_raise(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_line_items(tmp_path / "missing.csv")
    with pytest.raises(FileNotFoundError):
        load_catalog(tmp_path / "missing.csv")

    unsupported = tmp_path / "estimate.pdf"
    unsupported.write_text("x", encoding="utf-8")
    with pytest.raises(ValueError):
        load_line_items(unsupported)


def test_load_estimate_can_fix_line_totals(tmp_path):
    path = tmp_path / "estimate.json"
    path.write_text(
        json.dumps(
            {
                "lineItems": [
                    {"item": "Paint walls", "quantity": 10, "unitPrice": 2, "totalPrice": 25},
                    {"item": "Haul debris", "quantity": 1, "unitPrice": 150},
                ]
            }
        ),
        encoding="utf-8",
    )

    as_stated = load_estimate(path)
    fixed = load_estimate(path, fix_totals=True)

    assert as_stated.total_cost == pytest.approx(175.0)
    assert [item.total_price for item in fixed.line_items] == [20.0, 150.0]
    assert fixed.total_cost == pytest.approx(170.0)


def test_fix_totals_keeps_a_stated_total_cost(tmp_path):
    path = tmp_path / "estimate.yaml"
    path.write_text(
        "totalCost: 300\nlineItems:\n  - {item: Paint walls, quantity: 10, unitPrice: 2, totalPrice: 25}\n",
        encoding="utf-8",
    )

    estimate = load_estimate(path, fix_totals=True)

    assert estimate.line_items[0].total_price == pytest.approx(20.0)
    assert estimate.total_cost == pytest.approx(300.0)
