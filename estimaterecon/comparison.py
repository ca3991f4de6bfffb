"""Reconciliation engine pairing the line items of two estimates."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pandas as pd

from .catalog import CatalogIndex
from .config import MatchingConfig
from .models import (
    Discrepancy,
    Estimate,
    LineItem,
    MatchCandidate,
    Measurement,
    as_line_item,
    as_measurement,
)
from .search import SearchProvider
from .text import SynonymTable, build_synonym_table, normalize_text, text_similarity

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Structured output from :func:`reconcile_items`."""

    matched_pairs: List[MatchCandidate] = field(default_factory=list)
    source_only_items: List[LineItem] = field(default_factory=list)
    target_only_items: List[LineItem] = field(default_factory=list)
    discrepancies: List[Discrepancy] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched_pairs": [pair.to_dict() for pair in self.matched_pairs],
            "source_only_items": [item.to_dict() for item in self.source_only_items],
            "target_only_items": [item.to_dict() for item in self.target_only_items],
            "discrepancies": [entry.to_dict() for entry in self.discrepancies],
            "summary": dict(self.summary),
            "suggestions": [dict(entry) for entry in self.suggestions],
        }

    def to_frames(self) -> Dict[str, pd.DataFrame]:
        """Tabular view of the result, one frame per section."""

        match_rows = [
            {
                "source_item": pair.source.name,
                "target_item": pair.target.name,
                "source_code": pair.source.code,
                "target_code": pair.target.code,
                "reason": pair.reason,
                "confidence": pair.confidence,
                "source_quantity": pair.source.quantity,
                "target_quantity": pair.target.quantity,
                "source_unit_price": pair.source.unit_price,
                "target_unit_price": pair.target.unit_price,
                "source_total": pair.source.total_price,
                "target_total": pair.target.total_price,
            }
            for pair in self.matched_pairs
        ]
        return {
            "matches": pd.DataFrame(match_rows, columns=_MATCH_COLUMNS),
            "source_only": _items_frame(self.source_only_items),
            "target_only": _items_frame(self.target_only_items),
            "discrepancies": pd.DataFrame(
                [entry.to_dict() for entry in self.discrepancies],
                columns=_DISCREPANCY_COLUMNS,
            ),
            "summary": pd.DataFrame([self.summary]),
        }


_MATCH_COLUMNS = [
    "source_item",
    "target_item",
    "source_code",
    "target_code",
    "reason",
    "confidence",
    "source_quantity",
    "target_quantity",
    "source_unit_price",
    "target_unit_price",
    "source_total",
    "target_total",
]

_ITEM_COLUMNS = [
    "item",
    "description",
    "code",
    "category",
    "quantity",
    "unit",
    "unit_price",
    "total_price",
]

_DISCREPANCY_COLUMNS = [
    "item",
    "type",
    "source_value",
    "target_value",
    "difference_percent",
]


def reconcile_items(
    source_items: Iterable[Any],
    target_items: Iterable[Any],
    catalog: Optional[CatalogIndex] = None,
    synonyms: Optional[SynonymTable] = None,
    config: Optional[MatchingConfig] = None,
    source_measurements: Optional[Iterable[Any]] = None,
    target_measurements: Optional[Iterable[Any]] = None,
    search_provider: Optional[SearchProvider] = None,
    search_top_k: int = 3,
    source_total: Optional[float] = None,
    target_total: Optional[float] = None,
) -> ReconciliationResult:
    """Pair the items of two estimates and report what differs.

    Items are matched by canonical code first, then by canonicalised text
    similarity with a numeric override. Each item is matched at most once.
    Target items left over are reported as potentially missing from the
    source and source items left over as source-only.
    """

    config = config or MatchingConfig()
    synonyms = synonyms if synonyms is not None else build_synonym_table()
    sources = [as_line_item(entry) for entry in source_items or []]
    targets = [as_line_item(entry) for entry in target_items or []]

    matches: List[MatchCandidate] = []
    discrepancies: List[Discrepancy] = []
    matched_sources: Set[int] = set()
    matched_targets: Set[int] = set()

    for source_index, target_index in _pair_by_code(sources, targets, catalog):
        source, target = sources[source_index], targets[target_index]
        item_config = config.for_category(source.category or target.category)
        confidence = _clamp(item_config.code_match_confidence)
        matches.append(
            MatchCandidate(
                source, target, confidence, "code", source_index, target_index
            )
        )
        matched_sources.add(source_index)
        matched_targets.add(target_index)
        discrepancies.extend(compare_line_items(source, target, item_config))
        logger.debug("Code match '%s' <-> '%s'", source.name, target.name)

    source_texts = {
        index: synonyms.canonicalize(match_text(item))
        for index, item in enumerate(sources)
    }
    target_only: List[LineItem] = []
    for target_index, target in enumerate(targets):
        if target_index in matched_targets:
            continue
        item_config = config.for_category(target.category)
        best = _best_candidate(
            target,
            synonyms.canonicalize(match_text(target)),
            sources,
            source_texts,
            matched_sources,
            item_config,
        )
        if best is not None and best[0] >= item_config.fuzzy_match_threshold:
            score, source_index, reason = best
            source = sources[source_index]
            matches.append(
                MatchCandidate(
                    source, target, _clamp(score), reason, source_index, target_index
                )
            )
            matched_sources.add(source_index)
            matched_targets.add(target_index)
            if item_config.compare_fuzzy_matches:
                discrepancies.extend(compare_line_items(source, target, item_config))
            logger.debug(
                "%s match '%s' <-> '%s' (%.3f)",
                reason.title(),
                source.name,
                target.name,
                score,
            )
        else:
            target_only.append(target)
            logger.debug("No counterpart for target item '%s'", target.name)

    source_only = [
        item for index, item in enumerate(sources) if index not in matched_sources
    ]
    discrepancies.extend(
        compare_measurements(source_measurements, target_measurements, config)
    )

    suggestions = _suggest_for_unmatched(
        target_only, catalog, search_provider, search_top_k
    )
    summary = _build_summary(
        sources,
        targets,
        matches,
        source_only,
        target_only,
        discrepancies,
        source_total,
        target_total,
    )

    logger.info(
        "Reconciled %d source and %d target items: %d matched, %d source-only, "
        "%d target-only, %d discrepancies",
        len(sources),
        len(targets),
        len(matches),
        len(source_only),
        len(target_only),
        len(discrepancies),
    )

    metadata = {
        "fuzzy_match_threshold": config.fuzzy_match_threshold,
        "quantity_discrepancy_pct": config.quantity_discrepancy_pct,
        "price_discrepancy_pct": config.price_discrepancy_pct,
        "catalog_items": len(catalog) if catalog is not None else 0,
        "search_provider": (
            search_provider.__class__.__name__ if search_provider else None
        ),
    }

    return ReconciliationResult(
        matched_pairs=matches,
        source_only_items=source_only,
        target_only_items=target_only,
        discrepancies=discrepancies,
        summary=summary,
        suggestions=suggestions,
        metadata=metadata,
    )


def reconcile_estimates(
    source: Any, target: Any, **kwargs: Any
) -> ReconciliationResult:
    """Reconcile two :class:`Estimate` objects (or their dict form)."""

    source_estimate = _as_estimate(source)
    target_estimate = _as_estimate(target)
    kwargs.setdefault("source_measurements", source_estimate.measurements)
    kwargs.setdefault("target_measurements", target_estimate.measurements)
    kwargs.setdefault("source_total", source_estimate.total_cost)
    kwargs.setdefault("target_total", target_estimate.total_cost)
    return reconcile_items(
        source_estimate.line_items, target_estimate.line_items, **kwargs
    )


def _as_estimate(value: Any) -> Estimate:
    return value if isinstance(value, Estimate) else Estimate.from_dict(value)


def match_text(item: LineItem) -> str:
    """Name, description and code joined, repeated parts dropped."""

    parts: List[str] = []
    seen: Set[str] = set()
    for part in (item.item, item.description, item.code):
        normalized = normalize_text(part)
        if normalized and normalized not in seen:
            seen.add(normalized)
            parts.append(normalized)
    return " ".join(parts)


def percent_difference(baseline: float, other: float) -> float:
    """Absolute difference relative to ``baseline``; a zero baseline gives 0."""

    if baseline <= 0:
        return 0.0
    return abs(other - baseline) * 100.0 / baseline


def within_tolerance(value: float, reference: float, tolerance: float) -> bool:
    if reference <= 0:
        return False
    return abs(value - reference) / reference <= tolerance


def compare_line_items(
    source: LineItem, target: LineItem, config: MatchingConfig
) -> List[Discrepancy]:
    found: List[Discrepancy] = []
    quantity_pct = percent_difference(source.quantity, target.quantity)
    if quantity_pct > config.quantity_discrepancy_pct:
        found.append(
            Discrepancy(
                source.name, source.quantity, target.quantity, "quantity", quantity_pct
            )
        )
    price_pct = percent_difference(source.unit_price, target.unit_price)
    if price_pct > config.price_discrepancy_pct:
        found.append(
            Discrepancy(
                source.name, source.unit_price, target.unit_price, "price", price_pct
            )
        )
    return found


def compare_measurements(
    source_measurements: Optional[Iterable[Any]],
    target_measurements: Optional[Iterable[Any]],
    config: Optional[MatchingConfig] = None,
) -> List[Discrepancy]:
    """Pair measurements by type and description and flag large differences."""

    config = config or MatchingConfig()
    sources = [as_measurement(entry) for entry in source_measurements or []]
    targets = [as_measurement(entry) for entry in target_measurements or []]
    used: Set[int] = set()
    found: List[Discrepancy] = []
    for measurement in sources:
        key = _measurement_key(measurement)
        for index, candidate in enumerate(targets):
            if index in used or _measurement_key(candidate) != key:
                continue
            used.add(index)
            pct = percent_difference(measurement.value, candidate.value)
            if pct > config.measurement_discrepancy_pct:
                found.append(
                    Discrepancy(
                        measurement.description,
                        measurement.value,
                        candidate.value,
                        "measurement",
                        pct,
                    )
                )
            break
    return found


def _pair_by_code(
    sources: Sequence[LineItem],
    targets: Sequence[LineItem],
    catalog: Optional[CatalogIndex],
) -> Iterable[Tuple[int, int]]:
    queues: Dict[str, Deque[int]] = {}
    for index, item in enumerate(targets):
        code = _canonical_code(item.code, catalog)
        if code:
            queues.setdefault(code, deque()).append(index)
    for index, item in enumerate(sources):
        code = _canonical_code(item.code, catalog)
        queue = queues.get(code) if code else None
        if queue:
            yield index, queue.popleft()


def _canonical_code(code: Optional[str], catalog: Optional[CatalogIndex]) -> str:
    if not code:
        return ""
    if catalog is not None:
        return catalog.canonical_code(code)
    return str(code).upper().strip()


def _best_candidate(
    target: LineItem,
    target_text: str,
    sources: Sequence[LineItem],
    source_texts: Dict[int, str],
    matched_sources: Set[int],
    config: MatchingConfig,
) -> Optional[Tuple[float, int, str]]:
    best: Optional[Tuple[float, int, str]] = None
    for index, source in enumerate(sources):
        if index in matched_sources:
            continue
        score = text_similarity(
            target_text, source_texts[index], config.containment_similarity
        )
        reason = "fuzzy"
        if (
            score < config.numeric_match_confidence
            and _numerically_equivalent(source, target, config.numeric_tolerance)
        ):
            score, reason = config.numeric_match_confidence, "numeric"
        # strict comparison keeps the earliest source on ties
        if best is None or score > best[0]:
            best = (score, index, reason)
    return best


def _numerically_equivalent(
    source: LineItem, target: LineItem, tolerance: float
) -> bool:
    return within_tolerance(
        source.quantity, target.quantity, tolerance
    ) and within_tolerance(source.unit_price, target.unit_price, tolerance)


def _measurement_key(measurement: Measurement) -> Tuple[str, str]:
    return (
        measurement.type.strip().casefold(),
        measurement.description.strip().casefold(),
    )


def _suggest_for_unmatched(
    items: Sequence[LineItem],
    catalog: Optional[CatalogIndex],
    search_provider: Optional[SearchProvider],
    top_k: int,
) -> List[Dict[str, Any]]:
    if search_provider is None or not items:
        return []
    if not search_provider.is_indexed:
        if catalog is None or not len(catalog):
            logger.warning(
                "Search provider supplied without a catalog; skipping suggestions"
            )
            return []
        try:
            search_provider.index(catalog)
        except Exception:  # pragma: no cover - provider failures
            logger.exception("Failed to index catalog for suggestions")
            return []

    rows: List[Dict[str, Any]] = []
    for item in items:
        query = item.text
        if not query.strip():
            continue
        try:
            results = search_provider.search(query, top_k=top_k)
        except Exception:  # pragma: no cover - provider failures
            logger.exception("Search provider failed when querying '%s'", query)
            results = []
        if not results:
            continue
        rows.append(
            {
                "item": item.name,
                "candidates": [
                    {
                        "score": round(float(result.score), 6),
                        "code": result.metadata.get("code"),
                        "description": result.metadata.get("description"),
                    }
                    for result in results
                ],
            }
        )
    return rows


def _build_summary(
    sources: Sequence[LineItem],
    targets: Sequence[LineItem],
    matches: Sequence[MatchCandidate],
    source_only: Sequence[LineItem],
    target_only: Sequence[LineItem],
    discrepancies: Sequence[Discrepancy],
    source_total: Optional[float],
    target_total: Optional[float],
) -> Dict[str, Any]:
    if not source_total:
        source_total = sum(item.total_price for item in sources)
    if not target_total:
        target_total = sum(item.total_price for item in targets)

    by_reason = {reason: 0 for reason in ("code", "fuzzy", "numeric")}
    for pair in matches:
        by_reason[pair.reason] = by_reason.get(pair.reason, 0) + 1
    by_type = {kind: 0 for kind in ("quantity", "price", "measurement")}
    for entry in discrepancies:
        by_type[entry.type] = by_type.get(entry.type, 0) + 1

    return {
        "source_item_count": len(sources),
        "target_item_count": len(targets),
        "matched_count": len(matches),
        "code_matches": by_reason["code"],
        "fuzzy_matches": by_reason["fuzzy"],
        "numeric_matches": by_reason["numeric"],
        "source_only_count": len(source_only),
        "target_only_count": len(target_only),
        "discrepancy_count": len(discrepancies),
        "quantity_discrepancies": by_type["quantity"],
        "price_discrepancies": by_type["price"],
        "measurement_discrepancies": by_type["measurement"],
        "source_total": float(source_total),
        "target_total": float(target_total),
        "total_cost_difference": float(target_total) - float(source_total),
        "source_only_total": float(sum(item.total_price for item in source_only)),
        "target_only_total": float(sum(item.total_price for item in target_only)),
    }


def _items_frame(items: Sequence[LineItem]) -> pd.DataFrame:
    return pd.DataFrame([item.to_dict() for item in items], columns=_ITEM_COLUMNS)


def _clamp(value: float) -> float:
    return round(min(max(float(value), 0.0), 1.0), 6)


__all__ = [
    "ReconciliationResult",
    "compare_line_items",
    "compare_measurements",
    "match_text",
    "percent_difference",
    "reconcile_estimates",
    "reconcile_items",
    "within_tolerance",
]
