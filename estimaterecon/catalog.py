"""Read-only lookup over the canonical line item catalog."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from .models import CatalogItem
from .text import normalize_text, word_overlap

logger = logging.getLogger(__name__)

MIN_CONTAINMENT_LENGTH = 10


class CatalogIndex:
    """Code, description and category maps over a static catalog.

    The maps are built once by :meth:`build`; repeated calls are no-ops, so the
    index can be shared between threads after construction.
    """

    def __init__(self, items: Iterable[Any] = ()) -> None:
        self._items: Tuple[CatalogItem, ...] = tuple(_coerce_items(items))
        self._lock = threading.Lock()
        self._built = False
        self._by_code: Dict[str, CatalogItem] = {}
        self._by_description: Dict[str, List[CatalogItem]] = {}
        self._by_normalized: Dict[str, List[CatalogItem]] = {}
        self._by_category: Dict[str, List[CatalogItem]] = {}
        self._normalized_descriptions: Dict[CatalogItem, str] = {}

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> Tuple[CatalogItem, ...]:
        return self._items

    @property
    def is_built(self) -> bool:
        return self._built

    def build(self) -> "CatalogIndex":
        if self._built:
            return self
        with self._lock:
            if self._built:
                return self
            duplicates = 0
            for item in self._items:
                if item.code:
                    key = item.code.upper().strip()
                    if key in self._by_code:
                        duplicates += 1
                    else:
                        self._by_code[key] = item
                if item.description:
                    normalized = normalize_text(item.description)
                    self._normalized_descriptions[item] = normalized
                    self._by_description.setdefault(item.description, []).append(item)
                    self._by_normalized.setdefault(normalized, []).append(item)
                if item.category:
                    category = item.category.upper().strip()
                    self._by_category.setdefault(category, []).append(item)
            if duplicates:
                logger.warning(
                    "Ignored %d catalog entries with duplicate codes", duplicates
                )
            logger.info(
                "Indexed %d catalog items (%d codes)",
                len(self._items),
                len(self._by_code),
            )
            self._built = True
        return self

    def find_by_code(self, code: Optional[str]) -> Optional[CatalogItem]:
        if not code:
            return None
        self.build()
        return self._by_code.get(str(code).upper().strip())

    def canonical_code(self, code: Optional[str]) -> str:
        """Catalog code for ``code`` when recognised, else the raw code upper-cased."""

        if code is None:
            return ""
        raw = str(code).upper().strip()
        found = self.find_by_code(raw)
        return found.code.upper().strip() if found else raw

    def find_by_description(
        self, description: Optional[str], exact_only: bool = False
    ) -> List[CatalogItem]:
        if not description or not str(description).strip():
            return []
        self.build()
        results: List[CatalogItem] = []
        seen = set()

        def _add(items: Iterable[CatalogItem]) -> None:
            for item in items:
                key = (item.code, item.description)
                if key not in seen:
                    seen.add(key)
                    results.append(item)

        _add(self._by_description.get(description, []))
        if exact_only:
            return results

        normalized = normalize_text(description)
        if not normalized:
            return results
        _add(self._by_normalized.get(normalized, []))

        for norm_desc, items in self._by_normalized.items():
            if not norm_desc:
                continue
            if normalized in norm_desc or norm_desc in normalized:
                longest = max(len(norm_desc), len(normalized))
                if longest > MIN_CONTAINMENT_LENGTH:
                    _add(items)
        return results

    def search_by_keyword(
        self, keyword: Optional[str], limit: int = 50
    ) -> List[CatalogItem]:
        normalized = normalize_text(keyword)
        if not normalized or limit <= 0:
            return []
        self.build()
        upper_keyword = normalized.upper()
        results: List[CatalogItem] = []
        for item in self._items:
            description = self._normalized_descriptions.get(item, "")
            code = item.code.upper().strip() if item.code else ""
            if normalized in description or (code and upper_keyword in code):
                results.append(item)
                if len(results) >= limit:
                    break
        return results

    def find_similar(
        self, description: Optional[str], threshold: float = 0.6
    ) -> List[CatalogItem]:
        """Catalog entries sharing at least ``threshold`` of their words."""

        if not description:
            return []
        self.build()
        scored = []
        for item in self._items:
            score = word_overlap(description, item.description)
            if score >= threshold and score > 0:
                scored.append((score, item))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in scored]

    def similarity(self, description: str, item: CatalogItem) -> float:
        return word_overlap(description, item.description)

    def get_by_category(self, category: Optional[str]) -> List[CatalogItem]:
        if not category:
            return []
        self.build()
        return list(self._by_category.get(category.upper().strip(), []))

    def categories(self) -> List[str]:
        self.build()
        return sorted(self._by_category)

    def item_exists(
        self, code: Optional[str] = None, description: Optional[str] = None
    ) -> bool:
        if code and self.find_by_code(code) is not None:
            return True
        if description and self.find_by_description(description, exact_only=True):
            return True
        return False

    def statistics(self) -> Dict[str, Any]:
        self.build()
        by_category: Dict[str, int] = {}
        for item in self._items:
            category = item.category or "UNKNOWN"
            by_category[category] = by_category.get(category, 0) + 1
        return {
            "total": len(self._items),
            "with_code": sum(1 for item in self._items if item.code),
            "with_category": sum(1 for item in self._items if item.category),
            "with_unit": sum(1 for item in self._items if item.unit),
            "by_category": by_category,
        }


def build_catalog_index(source: Optional[Iterable[Any]] = None) -> CatalogIndex:
    """Create and build a :class:`CatalogIndex` from catalog records.

    ``source`` may be an iterable of :class:`CatalogItem` or mappings, or a
    DataFrame with ``code``/``description``/``category``/``unit`` columns.
    """

    if source is None:
        source = ()
    elif isinstance(source, pd.DataFrame):
        source = source.to_dict(orient="records")
    return CatalogIndex(source).build()


def _coerce_items(items: Iterable[Any]) -> Iterable[CatalogItem]:
    skipped = 0
    for entry in items:
        if isinstance(entry, CatalogItem):
            item = entry
        elif isinstance(entry, Mapping):
            item = CatalogItem.from_dict(entry)
        else:
            skipped += 1
            continue
        if not item.code and not item.description:
            skipped += 1
            continue
        yield item
    if skipped:
        logger.warning("Skipped %d malformed catalog records", skipped)


__all__ = ["CatalogIndex", "MIN_CONTAINMENT_LENGTH", "build_catalog_index"]
