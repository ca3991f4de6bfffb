"""Plain data records exchanged with the matching and dependency engines."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

MEASUREMENT_TYPES = ("area", "linear", "volume", "count")
MATCH_REASONS = ("code", "fuzzy", "numeric")
DISCREPANCY_TYPES = ("quantity", "price", "measurement")

_NUMBER_NOISE = re.compile(r"[^0-9eE.\-+]")


def coerce_number(value: Any) -> float:
    """Best-effort float conversion; anything unusable becomes ``0.0``."""

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _NUMBER_NOISE.sub("", str(value).replace(",", ""))
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def _text(value: Any) -> str:
    return _optional_text(value) or ""


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


@dataclass(frozen=True)
class CatalogItem:
    """Canonical catalog entry."""

    code: str
    description: str
    category: Optional[str] = None
    unit: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogItem":
        return cls(
            code=_text(data.get("code")),
            description=_text(data.get("description")),
            category=_optional_text(data.get("category")),
            unit=_optional_text(data.get("unit")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
        }


@dataclass(frozen=True)
class LineItem:
    """A single priced line of an estimate, as produced by upstream parsing."""

    item: str = ""
    description: str = ""
    quantity: float = 0.0
    unit: str = ""
    unit_price: float = 0.0
    total_price: float = 0.0
    category: Optional[str] = None
    code: Optional[str] = None
    item_id: Optional[str] = None

    def __post_init__(self) -> None:
        # Direct construction gets the same coercion as ``from_dict``.
        object.__setattr__(self, "item", _text(self.item))
        object.__setattr__(self, "description", _text(self.description))
        object.__setattr__(self, "unit", _text(self.unit))
        object.__setattr__(self, "quantity", coerce_number(self.quantity))
        object.__setattr__(self, "unit_price", coerce_number(self.unit_price))
        object.__setattr__(self, "total_price", coerce_number(self.total_price))
        object.__setattr__(self, "category", _optional_text(self.category))
        object.__setattr__(self, "code", _optional_text(self.code))
        object.__setattr__(self, "item_id", _optional_text(self.item_id))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        item = _text(_first(data, "item", "name"))
        description = _text(data.get("description"))
        quantity = coerce_number(_first(data, "quantity", "qty"))
        unit_price = coerce_number(_first(data, "unit_price", "unitPrice"))
        total_price = coerce_number(_first(data, "total_price", "totalPrice"))
        if not total_price:
            total_price = quantity * unit_price
        return cls(
            item=item or description,
            description=description or item,
            quantity=quantity,
            unit=_text(data.get("unit")),
            unit_price=unit_price,
            total_price=total_price,
            category=_optional_text(data.get("category")),
            code=_optional_text(data.get("code")),
            item_id=_optional_text(_first(data, "item_id", "itemId", "id")),
        )

    @property
    def name(self) -> str:
        return self.item or self.description

    @property
    def text(self) -> str:
        return self.description or self.item

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "category": self.category,
            "code": self.code,
            "item_id": self.item_id,
        }


@dataclass(frozen=True)
class Measurement:
    type: str
    description: str
    value: float = 0.0
    unit: str = ""
    location: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _text(self.type).lower())
        object.__setattr__(self, "description", _text(self.description))
        object.__setattr__(self, "value", coerce_number(self.value))
        object.__setattr__(self, "unit", _text(self.unit))
        object.__setattr__(self, "location", _optional_text(self.location))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Measurement":
        return cls(
            type=_text(data.get("type")).lower(),
            description=_text(data.get("description")),
            value=coerce_number(data.get("value")),
            unit=_text(data.get("unit")),
            location=_optional_text(data.get("location")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "value": self.value,
            "unit": self.unit,
            "location": self.location,
        }


@dataclass
class Estimate:
    """One parsed estimate document."""

    line_items: List[LineItem] = field(default_factory=list)
    measurements: List[Measurement] = field(default_factory=list)
    total_cost: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Estimate":
        raw_items = _first(data, "line_items", "lineItems") or []
        raw_measurements = data.get("measurements") or []
        line_items = [as_line_item(entry) for entry in raw_items]
        total_cost = coerce_number(_first(data, "total_cost", "totalCost"))
        if not total_cost:
            total_cost = sum(item.total_price for item in line_items)
        return cls(
            line_items=line_items,
            measurements=[as_measurement(entry) for entry in raw_measurements],
            total_cost=total_cost,
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_items": [item.to_dict() for item in self.line_items],
            "measurements": [
                measurement.to_dict() for measurement in self.measurements
            ],
            "total_cost": self.total_cost,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class MatchCandidate:
    """A proposed pairing of one source item with one target item."""

    source: LineItem
    target: LineItem
    confidence: float
    reason: str
    source_index: int = -1
    target_index: int = -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_item": self.source.to_dict(),
            "target_item": self.target.to_dict(),
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Discrepancy:
    item: str
    source_value: float
    target_value: float
    type: str
    difference_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item,
            "source_value": self.source_value,
            "target_value": self.target_value,
            "type": self.type,
            "difference_percent": self.difference_percent,
        }


@dataclass(frozen=True)
class MissingItemFinding:
    """A line item implied by the estimate's scope but not found in it."""

    required_item: str
    reason: str
    priority: str
    confidence: float
    category: str
    related_items_found: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "required_item": self.required_item,
            "reason": self.reason,
            "priority": self.priority,
            "confidence": self.confidence,
            "category": self.category,
            "related_items_found": (
                list(self.related_items_found) if self.related_items_found else None
            ),
        }


def as_line_item(value: Any) -> LineItem:
    if isinstance(value, LineItem):
        return value
    if isinstance(value, Mapping):
        return LineItem.from_dict(value)
    return LineItem(item=_text(value), description=_text(value))


def as_measurement(value: Any) -> Measurement:
    if isinstance(value, Measurement):
        return value
    if isinstance(value, Mapping):
        return Measurement.from_dict(value)
    return Measurement(type="", description=_text(value))


__all__ = [
    "CatalogItem",
    "DISCREPANCY_TYPES",
    "Discrepancy",
    "Estimate",
    "LineItem",
    "MATCH_REASONS",
    "MEASUREMENT_TYPES",
    "MatchCandidate",
    "Measurement",
    "MissingItemFinding",
    "as_line_item",
    "as_measurement",
    "coerce_number",
]
