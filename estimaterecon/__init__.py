"""Estimate reconciliation core package.

This package provides the building blocks for comparing two construction
estimates line by line and for flagging line items that an estimate's scope
implies but does not contain. It powers the ``estimate-recon`` command line
interface and can be embedded by any service that already holds parsed
estimates and a line item catalog.
"""

from .catalog import CatalogIndex, build_catalog_index
from .comparison import ReconciliationResult, reconcile_estimates, reconcile_items
from .config import (
    AppConfig,
    ColumnMapping,
    ConfidenceWeights,
    DependencyConfig,
    MatchingConfig,
    SearchConfig,
    load_config,
)
from .dependencies import check_dependencies
from .io import (
    load_catalog,
    load_estimate,
    load_line_items,
    load_rules,
    load_synonym_pairs,
)
from .models import (
    CatalogItem,
    Discrepancy,
    Estimate,
    LineItem,
    MatchCandidate,
    Measurement,
    MissingItemFinding,
)
from .patterns import DependencyPattern, build_dependency_patterns, pattern_to_rule
from .rules import (
    DEPENDENCY_RULES,
    DependencyRule,
    KeywordCondition,
    RuleValidationError,
)
from .search import CatalogSearchProvider, SearchProvider, TfidfSearchProvider
from .text import KEYWORD_SYNONYMS, SynonymTable, build_synonym_table
from .validation import correct_totals, find_total_mismatches, validate_totals

__all__ = [
    "AppConfig",
    "CatalogIndex",
    "CatalogItem",
    "CatalogSearchProvider",
    "ColumnMapping",
    "ConfidenceWeights",
    "DEPENDENCY_RULES",
    "DependencyConfig",
    "DependencyPattern",
    "DependencyRule",
    "Discrepancy",
    "Estimate",
    "KEYWORD_SYNONYMS",
    "KeywordCondition",
    "LineItem",
    "MatchCandidate",
    "MatchingConfig",
    "Measurement",
    "MissingItemFinding",
    "ReconciliationResult",
    "RuleValidationError",
    "SearchConfig",
    "SearchProvider",
    "SynonymTable",
    "TfidfSearchProvider",
    "build_catalog_index",
    "build_dependency_patterns",
    "build_synonym_table",
    "check_dependencies",
    "correct_totals",
    "find_total_mismatches",
    "load_catalog",
    "load_config",
    "load_estimate",
    "load_line_items",
    "load_rules",
    "load_synonym_pairs",
    "pattern_to_rule",
    "reconcile_estimates",
    "reconcile_items",
    "validate_totals",
]
