"""Infer line items that an estimate implies but does not contain."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .catalog import CatalogIndex
from .config import ConfidenceWeights, DependencyConfig
from .models import LineItem, MissingItemFinding, as_line_item
from .rules import (
    CARVE_OUTS,
    CATEGORY_CONTEXT_KEYWORDS,
    CATEGORY_EVIDENCE_KEYWORDS,
    DEPENDENCY_RULES,
    GENERIC_EVIDENCE_PHRASES,
    CarveOut,
    DependencyRule,
    KeywordCondition,
    coerce_rules,
)
from .text import SynonymTable, build_synonym_table, normalize_text

logger = logging.getLogger(__name__)

SynonymSource = Union[SynonymTable, Mapping[str, Sequence[str]], None]


@dataclass(frozen=True)
class EstimateContext:
    """Normalised view of one estimate's items, shared by every rule."""

    items: Tuple[LineItem, ...]
    display_texts: Tuple[str, ...]
    normalized_texts: Tuple[str, ...]
    catalog_texts: Tuple[str, ...] = ()

    @classmethod
    def from_items(
        cls, line_items: Iterable[Any], catalog: Optional[CatalogIndex] = None
    ) -> "EstimateContext":
        items = tuple(as_line_item(entry) for entry in line_items or [])
        display = tuple(_display_text(item) for item in items)
        normalized = tuple(normalize_text(text) for text in display)
        catalog_texts: Tuple[str, ...] = ()
        if catalog is not None and len(catalog):
            catalog_texts = tuple(_catalog_descriptions(items, catalog))
        return cls(
            items=items,
            display_texts=display,
            normalized_texts=normalized,
            catalog_texts=catalog_texts,
        )

    @property
    def joined(self) -> str:
        return " ".join(self.normalized_texts)

    def mentions(self, keyword: str) -> bool:
        """True when any item's normalised text contains ``keyword``."""

        needle = normalize_text(keyword)
        if not needle:
            return False
        return any(needle in text for text in self.normalized_texts)

    def group_matched(self, group: Sequence[str]) -> bool:
        return any(self.mentions(keyword) for keyword in group)

    def trigger_fires(self, trigger: KeywordCondition) -> bool:
        return all(self.group_matched(group) for group in trigger.groups)

    def exclusion_holds(self, condition: Optional[KeywordCondition]) -> bool:
        if condition is None:
            return False
        return any(
            all(self.mentions(keyword) for keyword in group)
            for group in condition.groups
        )

    def has_required(self, keywords: Sequence[str], synonyms: SynonymTable) -> bool:
        needles = [normalize_text(keyword) for keyword in keywords]
        needles = [needle for needle in needles if needle]
        for text in self.catalog_texts:
            if any(needle in text for needle in needles):
                return True
        return any(
            synonyms.matches_any(text, keywords) for text in self.normalized_texts
        )


def check_dependencies(
    line_items: Iterable[Any],
    rules: Optional[Iterable[Any]] = None,
    synonyms: SynonymSource = None,
    synonym_pairs: Optional[Iterable[Any]] = None,
    catalog: Optional[CatalogIndex] = None,
    config: Optional[DependencyConfig] = None,
    include_builtin: bool = True,
) -> List[MissingItemFinding]:
    """Evaluate dependency rules against a single estimate.

    Built-in rules run first, followed by ``rules`` supplied by the caller in
    their given order. Malformed caller rules are dropped. ``synonyms`` is the
    full synonym table to use (defaults to the built-in table) and
    ``synonym_pairs`` are taught pairs merged into it.
    """

    config = config or DependencyConfig()
    table = _resolve_synonyms(synonyms, synonym_pairs)
    builtin = DEPENDENCY_RULES if include_builtin else ()
    active_rules = list(builtin) + coerce_rules(rules)
    context = EstimateContext.from_items(line_items, catalog)

    findings: List[MissingItemFinding] = []
    for rule in active_rules:
        finding = evaluate_rule(rule, context, table, config)
        if finding is not None:
            findings.append(finding)

    logger.info(
        "Dependency check over %d items and %d rules produced %d findings",
        len(context.items),
        len(active_rules),
        len(findings),
    )
    return findings


def evaluate_rule(
    rule: DependencyRule,
    context: EstimateContext,
    synonyms: SynonymTable,
    config: DependencyConfig,
) -> Optional[MissingItemFinding]:
    if not context.trigger_fires(rule.trigger):
        return None
    if context.exclusion_holds(rule.exclude_keywords):
        logger.debug("Rule '%s' suppressed by exclusion keywords", rule.missing_item)
        return None
    if context.exclusion_holds(rule.exclude_if):
        logger.debug("Rule '%s' suppressed by context condition", rule.missing_item)
        return None

    required_present = context.has_required(rule.required, synonyms)
    if required_present:
        return None

    carve_out = _matching_carve_out(rule, context)
    if carve_out is not None:
        logger.debug("Rule '%s' skipped: %s", rule.missing_item, carve_out.description)
        return None

    confidence = score_missing_item(rule, context, required_present, config.weights)
    threshold = config.min_confidence_for(rule.category)
    if confidence < threshold:
        logger.debug(
            "Rule '%s' below confidence floor (%.2f < %.2f)",
            rule.missing_item,
            confidence,
            threshold,
        )
        return None

    related = related_items(rule.category, context, config.max_related_items)
    return MissingItemFinding(
        required_item=rule.missing_item,
        reason=rule.reason,
        priority=rule.priority,
        confidence=confidence,
        category=rule.category,
        related_items_found=related or None,
    )


def score_missing_item(
    rule: DependencyRule,
    context: EstimateContext,
    required_present: bool,
    weights: ConfidenceWeights,
) -> float:
    confidence = weights.base
    groups = rule.trigger.groups
    matched_groups = sum(1 for group in groups if context.group_matched(group))
    if matched_groups >= len(groups):
        confidence += weights.trigger_match
    if not required_present:
        confidence += weights.required_absent
    context_keywords = _for_category(CATEGORY_CONTEXT_KEYWORDS, rule.category)
    if any(context.mentions(keyword) for keyword in context_keywords):
        confidence += weights.category_context
    return round(min(max(confidence, 0.0), 1.0), 6)


def related_items(category: str, context: EstimateContext, limit: int = 3) -> List[str]:
    """Item texts quoted as evidence for ``category``, generic lines excluded."""

    evidence = _for_category(CATEGORY_EVIDENCE_KEYWORDS, category)
    keywords = [normalize_text(keyword) for keyword in evidence]
    generic = [normalize_text(phrase) for phrase in GENERIC_EVIDENCE_PHRASES]
    related: List[str] = []
    for display, normalized in zip(context.display_texts, context.normalized_texts):
        if len(related) >= limit:
            break
        if not any(keyword and keyword in normalized for keyword in keywords):
            continue
        if any(phrase in normalized for phrase in generic):
            continue
        related.append(display)
    return related


def _matching_carve_out(
    rule: DependencyRule, context: EstimateContext
) -> Optional[CarveOut]:
    joined = context.joined
    for carve_out in CARVE_OUTS:
        if not carve_out.applies_to(rule.missing_item):
            continue
        if any(normalize_text(term) in joined for term in carve_out.context_terms):
            return carve_out
    return None


def _resolve_synonyms(
    synonyms: SynonymSource, pairs: Optional[Iterable[Any]]
) -> SynonymTable:
    if isinstance(synonyms, SynonymTable):
        table = synonyms
    else:
        table = build_synonym_table(base=synonyms)
    return table.merged(pairs) if pairs else table


def _for_category(mapping: Mapping[str, Sequence[str]], category: str) -> Sequence[str]:
    if category in mapping:
        return mapping[category]
    wanted = category.strip().lower()
    for key, values in mapping.items():
        if key.lower() == wanted:
            return values
    return ()


def _display_text(item: LineItem) -> str:
    text = item.text
    return f"{text} ({item.code})".strip() if item.code else text.strip()


def _catalog_descriptions(
    items: Sequence[LineItem], catalog: CatalogIndex
) -> Iterable[str]:
    seen = set()
    for item in items:
        matches = []
        found = catalog.find_by_code(item.code) if item.code else None
        if found is not None:
            matches.append(found)
        if item.text:
            matches.extend(catalog.find_by_description(item.text))
        for match in matches:
            normalized = normalize_text(match.description)
            if normalized and normalized not in seen:
                seen.add(normalized)
                yield normalized


__all__ = [
    "EstimateContext",
    "check_dependencies",
    "evaluate_rule",
    "related_items",
    "score_missing_item",
]
