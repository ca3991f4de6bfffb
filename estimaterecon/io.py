"""IO helpers for loading estimates, catalogs, rules and synonyms from files."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import yaml

from .catalog import CatalogIndex, build_catalog_index
from .config import ColumnMapping
from .models import CatalogItem, Estimate, LineItem, Measurement, as_measurement
from .rules import DependencyRule, coerce_rules
from .text import iter_synonym_pairs
from .validation import correct_totals

logger = logging.getLogger(__name__)

LINE_ITEM_COLUMNS: Sequence[str] = (
    "code",
    "item",
    "description",
    "category",
    "unit",
    "quantity",
    "unit_price",
    "total_price",
)
CATALOG_COLUMNS: Sequence[str] = ("code", "description", "category", "unit")
NUMERIC_COLUMNS = {"quantity", "unit_price", "total_price"}

TABULAR_SUFFIXES = {".csv", ".txt", ".xlsx", ".xls"}
STRUCTURED_SUFFIXES = {".json", ".yaml", ".yml"}

HEADER_HINTS: Dict[str, Sequence[str]] = {
    "code": ["code", "item code", "sel", "selector", "cat/sel", "regex:^#$"],
    "item": ["item", "name", "line item", "item name"],
    "description": ["description", "desc", "activity", "scope"],
    "category": ["category", "cat", "trade", "group"],
    "unit": ["unit", "units", "uom", "unit of measure"],
    "quantity": ["quantity", "qty", "regex:^q$"],
    "unit_price": ["unit price", "unitprice", "unit cost", "price", "rate"],
    "total_price": ["total price", "total", "line total", "amount", "rcv", "extended"],
}

_CURRENCY = re.compile(r"(?i)(usd|cad|\$)")
_AUTO_VALUES = {"auto", "autodetect", "automatic"}


def load_line_items(
    path: Path, columns: Optional[ColumnMapping] = None
) -> List[LineItem]:
    """Load the line items of one estimate from CSV, Excel, JSON or YAML."""

    path = _existing(path, "Line item file")
    if path.suffix.lower() in STRUCTURED_SUFFIXES:
        return load_estimate(path).line_items

    frame = load_line_item_frame(path, columns)
    items = [LineItem.from_dict(record) for record in frame.to_dict(orient="records")]
    logger.info("Loaded %d line items from %s", len(items), path)
    return items


def load_line_item_frame(
    path: Path, columns: Optional[ColumnMapping] = None
) -> pd.DataFrame:
    path = _existing(path, "Line item file")
    raw = _read_table(path)
    return _normalise_frame(raw, columns or ColumnMapping(), LINE_ITEM_COLUMNS)


def load_estimate(
    path: Path,
    columns: Optional[ColumnMapping] = None,
    fix_totals: bool = False,
) -> Estimate:
    """Load a whole estimate; tabular files carry line items only.

    With ``fix_totals`` every line total that disagrees with quantity x unit
    price is recomputed (see :func:`correct_totals`). A total cost that was
    derived from the line totals follows the corrected values.
    """

    path = _existing(path, "Estimate file")
    if path.suffix.lower() in TABULAR_SUFFIXES:
        estimate = Estimate(line_items=load_line_items(path, columns))
    else:
        data = _read_structured(path)
        if isinstance(data, list):
            data = {"line_items": data}
        if not isinstance(data, Mapping):
            raise ValueError(
                f"Estimate file '{path}' must contain a mapping or a list of line items"
            )
        estimate = Estimate.from_dict(data)
        logger.info(
            "Loaded estimate from %s (%d items, %d measurements)",
            path,
            len(estimate.line_items),
            len(estimate.measurements),
        )

    if fix_totals:
        stated_sum = sum(item.total_price for item in estimate.line_items)
        derived = estimate.total_cost == stated_sum
        estimate.line_items = correct_totals(estimate.line_items)
        if derived and estimate.total_cost:
            estimate.total_cost = sum(item.total_price for item in estimate.line_items)
    return estimate


def load_catalog(path: Path) -> CatalogIndex:
    """Load catalog entries from a table or a JSON/YAML list and index them."""

    path = _existing(path, "Catalog file")
    if path.suffix.lower() in STRUCTURED_SUFFIXES:
        data = _read_structured(path)
        if isinstance(data, Mapping):
            data = data.get("items") or data.get("catalog") or []
        records: Iterable[Any] = data if isinstance(data, list) else []
    else:
        mapping = ColumnMapping()
        frame = _normalise_frame(_read_table(path), mapping, CATALOG_COLUMNS)
        records = [
            CatalogItem.from_dict(record)
            for record in frame.to_dict(orient="records")
        ]

    catalog = build_catalog_index(records)
    logger.info("Loaded catalog with %d items from %s", len(catalog), path)
    return catalog


def load_measurements(path: Path) -> List[Measurement]:
    path = _existing(path, "Measurement file")
    if path.suffix.lower() in STRUCTURED_SUFFIXES:
        data = _read_structured(path)
        if isinstance(data, Mapping):
            data = data.get("measurements") or []
        return [as_measurement(entry) for entry in data or []]

    frame = _read_table(path)
    frame.columns = [_normalise_header(column) for column in frame.columns]
    if "value" in frame.columns:
        frame["value"] = coerce_numeric(frame["value"])
    return [Measurement.from_dict(record) for record in frame.to_dict(orient="records")]


def load_rules(path: Path) -> List[DependencyRule]:
    """Load caller supplied dependency rules; malformed ones are dropped."""

    path = _existing(path, "Rules file")
    data = _read_structured(path)
    if isinstance(data, Mapping):
        data = data.get("rules") or []
    if not isinstance(data, list):
        raise ValueError(f"Rules file '{path}' must contain a list of rules")
    rules = coerce_rules(data)
    logger.info("Loaded %d of %d dependency rules from %s", len(rules), len(data), path)
    return rules


def load_synonym_pairs(path: Path) -> List[Tuple[str, str]]:
    """Load taught synonym pairs.

    Accepts a list of ``[term_a, term_b]`` pairs or ``{termA, termB}``
    records, optionally under a ``pairs`` key, or a mapping of a term to the
    list of its synonyms.
    """

    path = _existing(path, "Synonym file")
    data = _read_structured(path)
    if isinstance(data, Mapping) and "pairs" in data:
        data = data["pairs"]
    if isinstance(data, Mapping):
        expanded: List[Any] = []
        for term, synonyms in data.items():
            if isinstance(synonyms, str):
                synonyms = [synonyms]
            for synonym in synonyms or []:
                expanded.append((term, synonym))
        data = expanded
    if not isinstance(data, list):
        raise ValueError(
            f"Synonym file '{path}' must contain a list of pairs or a mapping"
        )
    return list(iter_synonym_pairs(data))


def coerce_numeric(values: pd.Series) -> pd.Series:
    """Coerce textual representations of amounts into floats.

    Currency markers and thousands separators are dropped and accounting
    style ``(12.50)`` becomes ``-12.50``. Anything unparseable is NaN.
    """

    if not isinstance(values, pd.Series):
        values = pd.Series(values)
    if values.empty:
        return pd.to_numeric(values, errors="coerce")

    cleaned = values.astype(str)
    cleaned = cleaned.str.replace(r"\s+", "", regex=True)
    cleaned = cleaned.str.replace(_CURRENCY, "", regex=True)
    negative = cleaned.str.match(r"^\(.*\)$")
    cleaned = cleaned.str.replace(r"[()]", "", regex=True)
    cleaned = cleaned.str.replace(",", "", regex=False)
    cleaned = cleaned.str.replace(r"[^0-9.\-+eE]", "", regex=True)

    numbers = pd.to_numeric(cleaned, errors="coerce")
    return numbers.where(~negative, -numbers)


def _existing(path: Path, label: str) -> Path:
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"{label} '{path}' does not exist")
    return path


def _read_table(path: Path) -> pd.DataFrame:
    ext = path.suffix.lower()
    if ext in {".csv", ".txt"}:
        logger.debug("Reading CSV %s", path)
        return pd.read_csv(path, dtype=str)
    if ext in {".xlsx", ".xls"}:
        logger.debug("Reading Excel %s", path)
        return pd.read_excel(path, dtype=str)
    raise ValueError(f"Unsupported file extension '{ext}' for '{path}'")


def _read_structured(path: Path) -> Any:
    ext = path.suffix.lower()
    with path.open("r", encoding="utf-8") as stream:
        if ext == ".json":
            return json.load(stream)
        if ext in {".yaml", ".yml"}:
            return yaml.safe_load(stream)
    raise ValueError(f"Unsupported file extension '{ext}' for '{path}'")


def _normalise_frame(
    frame: pd.DataFrame, columns: ColumnMapping, canonical: Sequence[str]
) -> pd.DataFrame:
    resolved = _resolve_column_mapping(frame, columns, canonical)
    rename_map = {
        source: target for target, source in resolved.items() if source is not None
    }
    normalised = frame.rename(columns=rename_map)

    for column in canonical:
        if column not in normalised:
            normalised[column] = np.nan if column in NUMERIC_COLUMNS else ""

    normalised = normalised.loc[:, list(canonical)].copy()
    for column in canonical:
        if column in NUMERIC_COLUMNS:
            normalised[column] = coerce_numeric(normalised[column])
        else:
            normalised[column] = normalised[column].fillna("").astype(str).str.strip()

    text_columns = [
        column for column in ("item", "description", "code") if column in normalised
    ]
    has_text = (normalised[text_columns] != "").any(axis=1)
    dropped = int((~has_text).sum())
    if dropped:
        logger.debug("Dropped %d rows without code or description", dropped)
    return normalised.loc[has_text].reset_index(drop=True)


def _resolve_column_mapping(
    frame: pd.DataFrame,
    columns: ColumnMapping,
    canonical: Sequence[str],
) -> Dict[str, Optional[str]]:
    """Resolve canonical column names using config overrides and auto-detection."""

    config_map = {
        key: value for key, value in columns.as_dict().items() if key in canonical
    }
    resolved: Dict[str, Optional[str]] = {}
    normalised_lookup = {
        _normalise_header(col): col for col in frame.columns if isinstance(col, str)
    }

    auto_targets: List[str] = []
    for key, source in config_map.items():
        if _is_auto(source):
            resolved[key] = None
            auto_targets.append(key)
            continue

        source_str = str(source)
        if source_str in frame.columns:
            resolved[key] = source_str
            continue

        fallback = normalised_lookup.get(_normalise_header(source_str))
        if fallback is not None:
            resolved[key] = fallback
            continue

        raise KeyError(f"Column '{source}' for '{key}' was not found in dataset")

    if auto_targets:
        taken = {value for value in resolved.values() if value is not None}
        detected = _autodetect_column_mapping(frame, auto_targets, taken)
        for key, value in detected.items():
            if value is not None:
                resolved[key] = value

    if not resolved.get("description") and not resolved.get("item"):
        raise KeyError("Unable to resolve a description or item column")

    return resolved


def _autodetect_column_mapping(
    frame: pd.DataFrame,
    targets: Iterable[str],
    taken: Optional[set] = None,
) -> Dict[str, Optional[str]]:
    """Best-effort inference of canonical columns using header hints."""

    detected: Dict[str, Optional[str]] = {target: None for target in targets}
    taken = set(taken or ())

    # Exact header matches are claimed first so that loose hints cannot steal them.
    for stage in ("exact", "regex", "contains"):
        for target in detected:
            if detected[target] is not None:
                continue
            headers = [
                (col, _normalise_header(col))
                for col in frame.columns
                if col not in taken
            ]
            match = _match_header(headers, _build_hint_patterns(target), stage)
            if match is not None:
                detected[target] = match
                taken.add(match)
                logger.debug("Autodetected column '%s' for '%s'", match, target)

    for target, value in detected.items():
        if value is None:
            logger.debug("Failed to autodetect column for '%s'", target)
    return detected


def _build_hint_patterns(target: str) -> Dict[str, List[str]]:
    patterns: Dict[str, List[str]] = {"exact": [], "regex": [], "contains": []}
    for hint in HEADER_HINTS.get(target, []):
        if not hint:
            continue
        if hint.startswith("regex:"):
            patterns["regex"].append(hint[len("regex:") :])
        else:
            normalised = _normalise_header(hint)
            if normalised:
                patterns["exact"].append(normalised)
                patterns["contains"].append(rf"(?:^|\b){re.escape(normalised)}(?:\b|$)")

    canonical = _normalise_header(target.replace("_", " "))
    patterns["exact"].append(canonical)
    patterns["exact"].append(_normalise_header(target))
    return patterns


def _match_header(
    headers: Sequence[Tuple[Any, str]], patterns: Dict[str, List[str]], stage: str
) -> Optional[str]:
    if stage == "exact":
        for original, normalised in headers:
            if normalised in patterns["exact"]:
                return original
        return None

    for pattern in patterns.get(stage, []):
        try:
            compiled = re.compile(pattern, flags=re.IGNORECASE)
        except re.error:
            continue
        for original, normalised in headers:
            if compiled.search(normalised):
                return original
    return None


def _normalise_header(value: Any) -> str:
    text = "" if value is None else str(value)
    text = text.strip().lower()
    return re.sub(r"\s+", " ", text)


def _is_auto(value: Optional[str]) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip().lower() in _AUTO_VALUES


__all__ = [
    "HEADER_HINTS",
    "coerce_numeric",
    "load_catalog",
    "load_estimate",
    "load_line_item_frame",
    "load_line_items",
    "load_measurements",
    "load_rules",
    "load_synonym_pairs",
]
