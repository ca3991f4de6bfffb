"""Text normalisation and synonym handling shared by matching and rule checks."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

MIN_WORD_LENGTH = 3

# Canonical term -> surface forms that mean the same thing on an estimate.
KEYWORD_SYNONYMS: Dict[str, List[str]] = {
    "tape": ["taping", "joint tape", "drywall tape", "paper tape"],
    "mud": ["joint compound", "compound", "spackle", "drywall mud"],
    "texture": ["texturing", "orange peel", "knockdown", "skip trowel", "stomp"],
    "prime": ["primer", "prime coat", "sealer", "seal"],
    "paint": ["painting", "paint coat", "finish coat", "top coat"],
    "flashing": ["flash", "metal flashing", "valley flashing", "step flashing"],
    "underlayment": ["felt", "tar paper", "roofing felt", "synthetic underlayment"],
    "shutoff valve": ["ball valve", "stop valve", "isolation valve", "shut-off valve"],
    "junction box": ["j-box", "electrical box", "outlet box", "switch box"],
    "circuit breaker": ["breaker", "panel breaker", "circuit breaker in panel"],
    "ground": ["grounding", "ground wire", "earth ground", "ground rod"],
    "duct": ["ductwork", "supply duct", "return duct", "air duct"],
    "grout": ["tile grout", "grouting"],
    "carpet pad": ["padding", "carpet padding", "underlayment"],
    "caulk": ["caulking", "sealant", "window seal", "weather seal"],
    "hardware": ["door hardware", "cabinet hardware"],
    # unit and wording abbreviations seen on estimates
    "square feet": ["sq ft", "sq. ft.", "sqft"],
    "linear feet": ["lf", "ln ft", "ln. ft.", "lin ft"],
    "each": ["ea", "ea."],
    "remove and replace": ["r&r", "r & r"],
}


def normalize_text(value: Any) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""

    if value is None:
        return ""
    text = str(value).lower()
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def significant_words(text: str) -> List[str]:
    """Return the words of ``text`` long enough to carry meaning."""

    words = normalize_text(text).split(" ")
    return [word for word in words if len(word) >= MIN_WORD_LENGTH]


def word_overlap(first: str, second: str) -> float:
    """Share of significant words in common, relative to the longer text."""

    words_first = significant_words(first)
    words_second = significant_words(second)
    longest = max(len(words_first), len(words_second))
    if not longest:
        return 0.0
    common = [word for word in words_first if word in words_second]
    return len(common) / longest


def jaccard_similarity(first: str, second: str) -> float:
    set_first = set(significant_words(first))
    set_second = set(significant_words(second))
    union = set_first | set_second
    if not union:
        return 0.0
    return len(set_first & set_second) / len(union)


def text_similarity(first: str, second: str, containment_score: float = 0.9) -> float:
    """Score two already canonicalised texts.

    Equal texts score 1.0, a text contained in the other scores
    ``containment_score`` and anything else falls back to the Jaccard index
    over significant words.
    """

    norm_first = normalize_text(first)
    norm_second = normalize_text(second)
    if not norm_first or not norm_second:
        return 0.0
    if norm_first == norm_second:
        return 1.0
    if norm_first in norm_second or norm_second in norm_first:
        return containment_score
    return jaccard_similarity(norm_first, norm_second)


def contains_phrase(text: str, phrase: str) -> bool:
    """Word-boundary containment on normalised text."""

    norm_text = normalize_text(text)
    norm_phrase = normalize_text(phrase)
    if not norm_text or not norm_phrase:
        return False
    return f" {norm_phrase} " in f" {norm_text} "


class SynonymTable:
    """Immutable mapping of canonical terms to their interchangeable forms."""

    def __init__(self, entries: Optional[Mapping[str, Sequence[str]]] = None) -> None:
        self._entries: Dict[str, Tuple[str, ...]] = {}
        for key, values in (entries or {}).items():
            self._entries[str(key)] = tuple(str(value) for value in values)
        self._by_normalized = self._build_normalized_index()
        self._canonical = self._build_canonical_lookup()
        self._pattern = self._build_pattern()

    def __contains__(self, term: object) -> bool:
        return term in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, term: str) -> Tuple[str, ...]:
        if term in self._entries:
            return self._entries[term]
        return self._by_normalized.get(normalize_text(term), ())

    def keys(self) -> List[str]:
        return list(self._entries)

    def as_dict(self) -> Dict[str, List[str]]:
        return {key: list(values) for key, values in self._entries.items()}

    def merged(self, pairs: Iterable[Any]) -> "SynonymTable":
        """Return a new table with taught pairs appended in both directions."""

        merged = self.as_dict()
        for term_a, term_b in iter_synonym_pairs(pairs):
            _append_unique(merged, term_a, term_b)
            _append_unique(merged, term_b, term_a)
        return SynonymTable(merged)

    def matches(self, text: str, keyword: str) -> bool:
        """True when ``text`` contains ``keyword`` or one of its synonyms."""

        if contains_phrase(text, keyword):
            return True
        return any(contains_phrase(text, synonym) for synonym in self.get(keyword))

    def matches_any(self, text: str, keywords: Iterable[str]) -> bool:
        return any(self.matches(text, keyword) for keyword in keywords)

    def canonical(self, term: str) -> str:
        normalised = normalize_text(term)
        return self._canonical.get(normalised, normalised)

    def canonicalize(self, text: str) -> str:
        """Normalise ``text`` and replace every known surface form by its key."""

        normalised = normalize_text(text)
        if not normalised or self._pattern is None:
            return normalised
        replaced = self._pattern.sub(
            lambda match: self._canonical[match.group(1)], normalised
        )
        return _WHITESPACE.sub(" ", replaced).strip()

    def _build_normalized_index(self) -> Dict[str, Tuple[str, ...]]:
        index: Dict[str, List[str]] = {}
        for key, values in self._entries.items():
            bucket = index.setdefault(normalize_text(key), [])
            for value in values:
                if value not in bucket:
                    bucket.append(value)
        return {key: tuple(values) for key, values in index.items()}

    def _build_canonical_lookup(self) -> Dict[str, str]:
        # First key in table order wins when a surface form is shared.
        lookup: Dict[str, str] = {}
        for key, values in self._entries.items():
            norm_key = normalize_text(key)
            if not norm_key:
                continue
            target = lookup.setdefault(norm_key, norm_key)
            for value in values:
                norm_value = normalize_text(value)
                if norm_value and norm_value not in lookup:
                    lookup[norm_value] = target
        return lookup

    def _build_pattern(self) -> Optional[re.Pattern]:
        surfaces = [term for term, target in self._canonical.items() if term != target]
        if not surfaces:
            return None
        surfaces.sort(key=lambda term: (-len(term), term))
        alternation = "|".join(re.escape(term) for term in surfaces)
        return re.compile(rf"(?<![a-z0-9])({alternation})(?![a-z0-9])")


def iter_synonym_pairs(pairs: Optional[Iterable[Any]]) -> Iterable[Tuple[str, str]]:
    """Yield clean ``(term_a, term_b)`` tuples, skipping malformed records."""

    for record in pairs or []:
        if isinstance(record, Mapping):
            term_a = record.get("termA", record.get("term_a"))
            term_b = record.get("termB", record.get("term_b"))
        elif isinstance(record, (list, tuple)) and len(record) == 2:
            term_a, term_b = record
        else:
            logger.warning("Ignoring malformed synonym record %r", record)
            continue
        term_a = str(term_a).strip() if term_a is not None else ""
        term_b = str(term_b).strip() if term_b is not None else ""
        if not term_a or not term_b:
            logger.warning("Ignoring synonym record with an empty term: %r", record)
            continue
        yield term_a, term_b


def build_synonym_table(
    pairs: Optional[Iterable[Any]] = None,
    base: Optional[Mapping[str, Sequence[str]]] = None,
) -> SynonymTable:
    """Merge user taught pairs into the built-in table (or ``base``)."""

    table = SynonymTable(KEYWORD_SYNONYMS if base is None else base)
    if pairs:
        table = table.merged(pairs)
    return table


def _append_unique(entries: Dict[str, List[str]], key: str, value: str) -> None:
    existing = entries.setdefault(key, [])
    if value not in existing:
        existing.append(value)


__all__ = [
    "KEYWORD_SYNONYMS",
    "SynonymTable",
    "build_synonym_table",
    "contains_phrase",
    "iter_synonym_pairs",
    "jaccard_similarity",
    "normalize_text",
    "significant_words",
    "text_similarity",
    "word_overlap",
]
