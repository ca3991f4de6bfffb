"""Derive candidate dependency patterns from the catalog.

Patterns are suggestions for rule authors. They never run during
:func:`estimaterecon.dependencies.check_dependencies`; a pattern only takes
part in evaluation once it has been promoted with :func:`pattern_to_rule`
and passed in as a caller rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .catalog import CatalogIndex
from .models import as_line_item
from .rules import PRIORITY_CRITICAL, PRIORITY_MINOR, DependencyRule, KeywordCondition
from .text import normalize_text, significant_words

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ("high", "medium", "low")

# Words that carry no trade meaning in catalog descriptions.
STOP_TERMS = frozenset(
    {
        "and", "the", "for", "with", "per", "inch", "feet", "foot", "each",
        "only", "includes", "incl", "over", "under", "from", "into",
    }
)


@dataclass(frozen=True)
class DependencyPattern:
    """A loose trigger/required relationship observed for a trade."""

    trigger: Tuple[str, ...]
    required: Tuple[str, ...]
    category: str
    reason: str
    confidence: str = "medium"
    conditions: Tuple[str, ...] = ()
    origin: str = "seed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": list(self.trigger),
            "required": list(self.required),
            "category": self.category,
            "reason": self.reason,
            "confidence": self.confidence,
            "conditions": list(self.conditions),
            "origin": self.origin,
        }


@dataclass(frozen=True)
class _Seed:
    lookup: str
    lookup_limit: int
    lookup_category: Optional[str]
    pattern: DependencyPattern


def _seed(
    lookup: str,
    trigger: Sequence[str],
    required: Sequence[str],
    category: str,
    reason: str,
    confidence: str,
    conditions: Sequence[str] = (),
    lookup_limit: int = 50,
    lookup_category: Optional[str] = None,
) -> _Seed:
    return _Seed(
        lookup=lookup,
        lookup_limit=lookup_limit,
        lookup_category=lookup_category,
        pattern=DependencyPattern(
            trigger=tuple(trigger),
            required=tuple(required),
            category=category,
            reason=reason,
            confidence=confidence,
            conditions=tuple(conditions),
        ),
    )


# A seed is kept when its lookup keyword finds catalog items (or, for seeds
# with a lookup category, when that category has items).
_SEEDS: Tuple[_Seed, ...] = (
    _seed(
        "drywall",
        ["drywall", "sheetrock", "gypsum"],
        ["tape", "mud", "joint compound", "texture"],
        "DRY",
        "Drywall installation requires taping, mudding, and texturing",
        "high",
    ),
    _seed(
        "drywall",
        ["drywall", "sheetrock"],
        ["paint", "primer", "seal"],
        "DRY",
        "Finished drywall requires primer and paint",
        "high",
    ),
    _seed(
        "water",
        ["water", "flood", "moisture"],
        ["dry", "dehumidifier", "air mover", "antimicrobial"],
        "WTR",
        "Water damage requires drying equipment and antimicrobial treatment",
        "high",
        conditions=["water damage"],
    ),
    _seed(
        "water",
        ["water", "drywall", "remove"],
        ["antimicrobial", "clean", "seal"],
        "WTR",
        "Water-damaged drywall removal requires antimicrobial treatment",
        "high",
        conditions=["water damage"],
    ),
    _seed(
        "floor",
        ["floor", "replace", "install"],
        ["baseboard", "trim", "molding", "detach", "reset"],
        "FLR",
        "Flooring replacement typically requires baseboard/trim removal and reset",
        "medium",
    ),
    _seed(
        "floor",
        ["tile", "install"],
        ["grout", "underlayment", "subfloor"],
        "FLR",
        "Tile installation requires grout and proper subfloor preparation",
        "high",
    ),
    _seed(
        "paint",
        ["paint", "wall", "ceiling"],
        ["primer", "prep", "mask", "tape"],
        "PNT",
        "Painting requires primer and proper surface preparation",
        "medium",
    ),
    _seed(
        "roof",
        ["roof", "shingle", "replace"],
        ["underlayment", "felt", "flashing", "drip edge"],
        "ROF",
        "Roofing replacement requires underlayment, flashing, and drip edge",
        "high",
        lookup_limit=30,
    ),
    _seed(
        "plumb",
        ["fixture", "toilet", "sink", "shower"],
        ["supply", "drain", "waste", "p-trap"],
        "PLB",
        "Plumbing fixtures require supply lines, drains, and P-traps",
        "high",
        lookup_limit=30,
    ),
    _seed(
        "electrical",
        ["wire", "wiring", "circuit"],
        ["junction box", "breaker", "ground"],
        "ELE",
        "Electrical work requires junction boxes, breakers, and grounding",
        "high",
        lookup_limit=30,
    ),
    _seed(
        "appliance",
        [
            "appliance",
            "refrigerator",
            "stove",
            "oven",
            "dishwasher",
            "washer",
            "dryer",
            "microwave",
        ],
        ["detach", "reset", "disconnect", "reconnect", "install"],
        "APP",
        "Appliance replacement typically requires detach/reset of existing and "
        "installation of new",
        "medium",
        lookup_limit=30,
        lookup_category="APP",
    ),
    _seed(
        "appliance",
        ["appliance", "water heater", "furnace", "hvac"],
        ["electrical", "gas", "plumbing", "vent", "duct"],
        "APP",
        "Appliances require proper connections (electrical/gas/plumbing) and venting",
        "high",
        lookup_limit=30,
        lookup_category="APP",
    ),
)


def build_dependency_patterns(
    catalog: CatalogIndex,
    include_category_patterns: bool = True,
    min_category_items: int = 3,
    max_required_terms: int = 3,
) -> List[DependencyPattern]:
    """Return seed patterns for trades present in ``catalog``.

    When ``include_category_patterns`` is set, one low-confidence pattern is
    added per catalog category with at least ``min_category_items`` entries,
    pairing the category's most common term with the terms that follow it.
    """

    patterns: List[DependencyPattern] = []
    for seed in _SEEDS:
        present = bool(catalog.search_by_keyword(seed.lookup, seed.lookup_limit))
        if not present and seed.lookup_category:
            present = bool(catalog.get_by_category(seed.lookup_category))
        if present:
            patterns.append(seed.pattern)

    if include_category_patterns:
        summary = summarize_categories(catalog)
        for row in summary.itertuples(index=False):
            terms = list(row.top_terms)
            if row.item_count < min_category_items or len(terms) < 2:
                continue
            anchor, required = terms[0], tuple(terms[1 : 1 + max_required_terms])
            patterns.append(
                DependencyPattern(
                    trigger=(anchor,),
                    required=required,
                    category=row.category,
                    reason=(
                        f"Catalog items in {row.category} that mention '{anchor}' "
                        f"usually also cover {', '.join(required)}"
                    ),
                    confidence="low",
                    origin="catalog",
                )
            )

    logger.info(
        "Built %d dependency patterns from %d catalog items",
        len(patterns),
        len(catalog),
    )
    return patterns


def summarize_categories(catalog: CatalogIndex, top_terms: int = 5) -> pd.DataFrame:
    """Per-category item counts and most frequent description terms."""

    columns = ["category", "item_count", "unit_count", "top_terms"]
    if not len(catalog):
        return pd.DataFrame(columns=columns)

    frame = pd.DataFrame([item.to_dict() for item in catalog.items])
    frame["category"] = (
        frame["category"].fillna("UNKNOWN").astype(str).str.strip().str.upper()
    )
    frame["terms"] = frame["description"].map(_description_terms)

    rows = []
    for category, group in frame.groupby("category", sort=True):
        counts = group["terms"].explode().dropna().value_counts(sort=False)
        ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
        rows.append(
            {
                "category": category,
                "item_count": int(group.shape[0]),
                "unit_count": int(group["unit"].dropna().nunique()),
                "top_terms": [term for term, _ in ranked[:top_terms]],
            }
        )
    return pd.DataFrame(rows, columns=columns)


def get_patterns_for_category(
    patterns: Iterable[DependencyPattern], category: str
) -> List[DependencyPattern]:
    wanted = (category or "").strip().upper()
    return [pattern for pattern in patterns if pattern.category.upper() == wanted]


def find_matching_patterns(
    line_items: Iterable[Any],
    patterns: Iterable[DependencyPattern],
) -> List[DependencyPattern]:
    """Patterns with at least one trigger keyword in the items' text."""

    texts = [normalize_text(as_line_item(entry).text) for entry in line_items or []]
    texts = [text for text in texts if text]
    matching = []
    for pattern in patterns:
        keywords = [normalize_text(keyword) for keyword in pattern.trigger]
        if any(keyword and keyword in text for keyword in keywords for text in texts):
            matching.append(pattern)
    return matching


def pattern_to_rule(
    pattern: DependencyPattern,
    missing_item: Optional[str] = None,
    priority: Optional[str] = None,
    trigger_groups: Optional[Sequence[Sequence[str]]] = None,
) -> DependencyRule:
    """Promote ``pattern`` to a :class:`DependencyRule` for review.

    The pattern's triggers become a single OR group unless ``trigger_groups``
    narrows them. High-confidence patterns default to critical priority.
    """

    groups = trigger_groups or [pattern.trigger]
    if priority is None:
        priority = PRIORITY_CRITICAL if pattern.confidence == "high" else PRIORITY_MINOR
    return DependencyRule(
        category=pattern.category,
        trigger=KeywordCondition.from_value(groups),
        required=tuple(pattern.required),
        missing_item=(
            missing_item or " / ".join(term.title() for term in pattern.required[:2])
        ),
        reason=pattern.reason,
        priority=priority,
        required_description=", ".join(pattern.required),
    )


def _description_terms(description: Any) -> List[str]:
    words = significant_words(description or "")
    terms = [word for word in words if word not in STOP_TERMS and not word.isdigit()]
    return sorted(set(terms))


__all__ = [
    "CONFIDENCE_LEVELS",
    "DependencyPattern",
    "build_dependency_patterns",
    "find_matching_patterns",
    "get_patterns_for_category",
    "pattern_to_rule",
    "summarize_categories",
]
