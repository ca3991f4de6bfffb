"""Configuration loading utilities for the reconciliation engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


@dataclass
class ColumnMapping:
    """Source column for each canonical field; ``None`` means autodetect."""

    code: Optional[str] = None
    item: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    quantity: Optional[str] = None
    unit_price: Optional[str] = None
    total_price: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "code": self.code,
            "item": self.item,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
        }


@dataclass(frozen=True)
class MatchingConfig:
    """Thresholds used when pairing items across two estimates.

    Percent thresholds are exclusive: a difference must be strictly greater
    to produce a discrepancy.
    """

    code_match_confidence: float = 0.95
    numeric_match_confidence: float = 0.95
    fuzzy_match_threshold: float = 0.7
    containment_similarity: float = 0.9
    numeric_tolerance: float = 0.10
    quantity_discrepancy_pct: float = 25.0
    price_discrepancy_pct: float = 15.0
    measurement_discrepancy_pct: float = 25.0
    compare_fuzzy_matches: bool = False
    category_overrides: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def for_category(self, category: Optional[str]) -> "MatchingConfig":
        """Return a copy with the overrides configured for ``category`` applied."""

        overrides = _lookup_override(self.category_overrides, category)
        if not overrides:
            return self
        allowed = {item.name for item in fields(self)} - {"category_overrides"}
        changes = {
            key: float(value) for key, value in overrides.items() if key in allowed
        }
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class ConfidenceWeights:
    """Additive weights used to score a missing item finding."""

    base: float = 0.5
    trigger_match: float = 0.3
    required_absent: float = 0.2
    category_context: float = 0.1


@dataclass(frozen=True)
class DependencyConfig:
    weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    min_confidence: float = 0.6
    max_related_items: int = 3
    category_min_confidence: Mapping[str, float] = field(default_factory=dict)

    def min_confidence_for(self, category: Optional[str]) -> float:
        override = _lookup_override(self.category_min_confidence, category)
        if override is None:
            return self.min_confidence
        return float(override)


@dataclass
class SearchConfig:
    """Settings for catalog suggestions attached to unmatched items."""

    provider: str = "catalog"
    top_k: int = 3
    threshold: float = 0.5


@dataclass
class AppConfig:
    """Container for everything the command line front end needs."""

    catalog: Optional[Path] = None
    rules: Optional[Path] = None
    synonyms: Optional[Path] = None
    columns: ColumnMapping = field(default_factory=ColumnMapping)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    dependencies: DependencyConfig = field(default_factory=DependencyConfig)
    search: SearchConfig = field(default_factory=SearchConfig)

    def resolved(self, base_path: Path) -> "AppConfig":
        return AppConfig(
            catalog=_resolve_optional(self.catalog, base_path),
            rules=_resolve_optional(self.rules, base_path),
            synonyms=_resolve_optional(self.synonyms, base_path),
            columns=self.columns,
            matching=self.matching,
            dependencies=self.dependencies,
            search=self.search,
        )


def load_config(path: Path) -> AppConfig:
    """Load :class:`AppConfig` from a YAML file."""

    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file '{config_path}' does not exist")

    with config_path.open("r", encoding="utf-8") as stream:
        raw_config: Mapping[str, Any] = yaml.safe_load(stream) or {}

    if not isinstance(raw_config, Mapping):
        raise ValueError("Configuration root must be a mapping")

    return parse_config(raw_config).resolved(config_path.parent)


def parse_config(raw_config: Mapping[str, Any]) -> AppConfig:
    paths_section = raw_config.get("paths") or {}
    if not isinstance(paths_section, Mapping):
        raise ValueError("The 'paths' section must be a mapping")

    return AppConfig(
        catalog=_optional_path(paths_section.get("catalog")),
        rules=_optional_path(paths_section.get("rules")),
        synonyms=_optional_path(paths_section.get("synonyms")),
        columns=ColumnMapping(
            **_known_keys(ColumnMapping, raw_config.get("columns") or {})
        ),
        matching=_parse_matching(raw_config.get("matching") or {}),
        dependencies=_parse_dependencies(raw_config.get("dependencies") or {}),
        search=SearchConfig(
            **_known_keys(SearchConfig, raw_config.get("search") or {})
        ),
    )


def _parse_matching(section: Mapping[str, Any]) -> MatchingConfig:
    parsed = _known_keys(MatchingConfig, section)
    overrides = parsed.pop("category_overrides", None) or {}
    if not isinstance(overrides, Mapping):
        raise ValueError("matching.category_overrides must be a mapping")
    return MatchingConfig(
        **parsed,
        category_overrides={
            str(key): dict(value or {}) for key, value in overrides.items()
        },
    )


def _parse_dependencies(section: Mapping[str, Any]) -> DependencyConfig:
    parsed = _known_keys(DependencyConfig, section)
    weights = ConfidenceWeights(
        **_known_keys(ConfidenceWeights, parsed.pop("weights", None) or {})
    )
    per_category = parsed.pop("category_min_confidence", None) or {}
    if not isinstance(per_category, Mapping):
        raise ValueError("dependencies.category_min_confidence must be a mapping")
    return DependencyConfig(
        weights=weights,
        category_min_confidence={
            str(key): float(value) for key, value in per_category.items()
        },
        **parsed,
    )


def _known_keys(cls: type, section: Any) -> Dict[str, Any]:
    if not isinstance(section, Mapping):
        raise ValueError(f"Section for {cls.__name__} must be a mapping")
    names = {item.name for item in fields(cls)}
    unknown = sorted(set(section) - names)
    if unknown:
        raise ValueError(
            f"Unknown {cls.__name__} options: {', '.join(map(str, unknown))}"
        )
    return dict(section)


def _lookup_override(overrides: Mapping[str, Any], category: Optional[str]) -> Any:
    if not overrides or not category:
        return None
    if category in overrides:
        return overrides[category]
    wanted = category.strip().lower()
    for key, value in overrides.items():
        if str(key).strip().lower() == wanted:
            return value
    return None


def _optional_path(value: Any) -> Optional[Path]:
    if value is None:
        return None
    text = str(value).strip()
    return Path(text) if text else None


def _resolve_optional(path: Optional[Path], base_path: Path) -> Optional[Path]:
    if path is None:
        return None
    expanded = Path(path).expanduser()
    if expanded.is_absolute():
        return expanded
    return (base_path / expanded).resolve()


__all__ = [
    "AppConfig",
    "ColumnMapping",
    "ConfidenceWeights",
    "DependencyConfig",
    "MatchingConfig",
    "SearchConfig",
    "load_config",
    "parse_config",
]
