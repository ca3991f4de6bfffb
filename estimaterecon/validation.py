"""Consistency checks for parsed line item totals.

Upstream parsers occasionally carry a line total that disagrees with the
quantity and unit price printed next to it (OCR slips, rounded subtotals,
copied rows). These helpers flag such lines and, on request, recompute the
total from quantity × unit price.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, List

import pandas as pd

from .models import LineItem, as_line_item

logger = logging.getLogger(__name__)

FRAME_COLUMNS = [
    "item",
    "description",
    "code",
    "category",
    "quantity",
    "unit",
    "unit_price",
    "total_price",
]


def items_to_frame(line_items: Iterable[Any]) -> pd.DataFrame:
    rows = [as_line_item(entry).to_dict() for entry in line_items or []]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def validate_totals(frame: pd.DataFrame, tolerance: float = 0.005) -> pd.DataFrame:
    """Annotate line items with the total implied by quantity and unit price.

    Adds ``expected_total``, ``total_difference`` and ``total_mismatch``.
    Only rows with a positive quantity and unit price imply a total; the
    others are never flagged. ``tolerance`` is relative to the implied total.
    """

    checked = frame.copy()
    quantity = pd.to_numeric(checked["quantity"], errors="coerce")
    unit_price = pd.to_numeric(checked["unit_price"], errors="coerce")
    stated = pd.to_numeric(checked["total_price"], errors="coerce")

    priced = (quantity > 0) & (unit_price > 0)
    implied = (quantity * unit_price).where(priced)
    checked["expected_total"] = implied
    checked["total_difference"] = stated - implied
    checked["total_mismatch"] = priced & stated.notna() & (
        checked["total_difference"].abs() > tolerance * implied
    )
    return checked


def find_total_mismatches(
    line_items: Iterable[Any], tolerance: float = 0.005
) -> List[LineItem]:
    """Items whose stated total disagrees with their quantity and unit price."""

    items = [as_line_item(entry) for entry in line_items or []]
    if not items:
        return []
    checked = validate_totals(items_to_frame(items), tolerance)
    flags = checked["total_mismatch"]
    return [item for item, mismatch in zip(items, flags) if mismatch]


def correct_totals(
    line_items: Iterable[Any], tolerance: float = 0.005
) -> List[LineItem]:
    """Return the items with mismatching totals recomputed from qty x price."""

    items = [as_line_item(entry) for entry in line_items or []]
    if not items:
        return []
    checked = validate_totals(items_to_frame(items), tolerance)
    corrected: List[LineItem] = []
    fixed = 0
    rows = zip(items, checked["total_mismatch"], checked["expected_total"])
    for item, mismatch, implied in rows:
        if mismatch:
            logger.debug(
                "Correcting total of '%s' from %s to %s",
                item.name,
                item.total_price,
                implied,
            )
            item = replace(item, total_price=float(implied))
            fixed += 1
        corrected.append(item)
    if fixed:
        logger.info(
            "Recomputed %d of %d line totals from qty x price", fixed, len(items)
        )
    return corrected


__all__ = [
    "correct_totals",
    "find_total_mismatches",
    "items_to_frame",
    "validate_totals",
]
