"""Command line interface for estimate reconciliation and dependency checks."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from tabulate import tabulate

from .catalog import CatalogIndex
from .comparison import ReconciliationResult, reconcile_estimates
from .config import AppConfig, load_config
from .dependencies import check_dependencies
from .io import load_catalog, load_estimate, load_rules, load_synonym_pairs
from .models import MissingItemFinding
from .patterns import (
    build_dependency_patterns,
    get_patterns_for_category,
    summarize_categories,
)
from .search import create_search_provider
from .text import build_synonym_table

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="estimate-recon",
        description=(
            "Reconcile construction estimates and flag implied missing line items"
        ),
    )
    parser.add_argument("--config", type=Path, help="Path to YAML configuration")
    parser.add_argument(
        "--catalog", type=Path, help="Override path to the line item catalog"
    )
    parser.add_argument(
        "--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING)"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print results as JSON instead of tables"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    compare = subparsers.add_parser("compare", help="Match the items of two estimates")
    compare.add_argument(
        "source", type=Path, help="Source estimate (CSV, Excel, JSON or YAML)"
    )
    compare.add_argument(
        "target", type=Path, help="Target estimate to reconcile against the source"
    )
    compare.add_argument("--synonyms", type=Path, help="Additional synonym pairs")
    compare.add_argument(
        "--search-provider",
        help="Suggestion provider for unmatched items (catalog, tfidf, none)",
    )
    compare.add_argument(
        "--top-k", type=int, help="Number of catalog suggestions to keep"
    )
    compare.add_argument(
        "--fuzzy-threshold", type=float, help="Minimum similarity for a text match"
    )
    compare.add_argument(
        "--fix-totals",
        action="store_true",
        help="Recompute line totals that disagree with quantity x unit price",
    )

    check = subparsers.add_parser(
        "check", help="Flag line items implied by the estimate but missing"
    )
    check.add_argument("estimate", type=Path, help="Estimate to check")
    check.add_argument(
        "--rules", type=Path, help="Additional dependency rules (YAML or JSON)"
    )
    check.add_argument("--synonyms", type=Path, help="Additional synonym pairs")
    check.add_argument(
        "--min-confidence",
        type=float,
        help="Minimum confidence for reported findings",
    )
    check.add_argument(
        "--no-builtin",
        action="store_true",
        help="Evaluate only the rules from --rules",
    )

    patterns = subparsers.add_parser(
        "patterns", help="Suggest dependency patterns from the catalog"
    )
    patterns.add_argument(
        "--category", help="Only show patterns for this catalog category"
    )
    patterns.add_argument(
        "--summary",
        action="store_true",
        help="Show per-category catalog statistics",
    )

    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        config = _load_app_config(args.config)
        if args.catalog:
            config.catalog = _resolve_override_path(args.catalog)
        if getattr(args, "rules", None):
            config.rules = _resolve_override_path(args.rules)
        if getattr(args, "synonyms", None):
            config.synonyms = _resolve_override_path(args.synonyms)
    except Exception as exc:  # pragma: no cover - CLI validation
        logger.error("Failed to load configuration: %s", exc)
        return 1

    try:
        catalog = load_catalog(config.catalog) if config.catalog else None
    except Exception as exc:
        logger.exception("Failed to load catalog: %s", exc)
        return 1

    handlers = {"compare": _run_compare, "check": _run_check, "patterns": _run_patterns}
    try:
        return handlers[args.command](args, config, catalog)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


def _run_compare(
    args: argparse.Namespace, config: AppConfig, catalog: Optional[CatalogIndex]
) -> int:
    source = load_estimate(args.source, config.columns, fix_totals=args.fix_totals)
    target = load_estimate(args.target, config.columns, fix_totals=args.fix_totals)
    pairs = load_synonym_pairs(config.synonyms) if config.synonyms else None
    synonyms = build_synonym_table(pairs)

    matching = config.matching
    if args.fuzzy_threshold is not None:
        matching = replace(matching, fuzzy_match_threshold=args.fuzzy_threshold)

    provider_name = args.search_provider or config.search.provider
    search_provider = None
    if catalog:
        search_provider = create_search_provider(
            provider_name, config.search.threshold
        )

    result = reconcile_estimates(
        source,
        target,
        catalog=catalog,
        synonyms=synonyms,
        config=matching,
        search_provider=search_provider,
        search_top_k=args.top_k or config.search.top_k,
    )

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_reconciliation(result)
    return 0


def _run_check(
    args: argparse.Namespace, config: AppConfig, catalog: Optional[CatalogIndex]
) -> int:
    estimate = load_estimate(args.estimate, config.columns)
    rules = load_rules(config.rules) if config.rules else []
    pairs = load_synonym_pairs(config.synonyms) if config.synonyms else None

    dependencies = config.dependencies
    if args.min_confidence is not None:
        dependencies = replace(dependencies, min_confidence=args.min_confidence)

    findings = check_dependencies(
        estimate.line_items,
        rules=rules,
        synonym_pairs=pairs,
        catalog=catalog,
        config=dependencies,
        include_builtin=not args.no_builtin,
    )

    if args.json:
        payload = [finding.to_dict() for finding in findings]
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        _print_findings(findings)
    return 0


def _run_patterns(
    args: argparse.Namespace, config: AppConfig, catalog: Optional[CatalogIndex]
) -> int:
    if catalog is None:
        logger.error(
            "The patterns command needs a catalog (--catalog or paths.catalog)"
        )
        return 1

    patterns = build_dependency_patterns(catalog)
    if args.category:
        patterns = get_patterns_for_category(patterns, args.category)

    if args.json:
        payload: Dict[str, Any] = {
            "patterns": [pattern.to_dict() for pattern in patterns]
        }
        if args.summary:
            categories = summarize_categories(catalog)
            payload["categories"] = categories.to_dict(orient="records")
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0

    if args.summary:
        summary = summarize_categories(catalog)
        summary["top_terms"] = summary["top_terms"].map(", ".join)
        print("Catalog categories:")
        print(tabulate(summary, headers="keys", tablefmt="github", showindex=False))
    rows = [
        {
            "category": pattern.category,
            "confidence": pattern.confidence,
            "trigger": ", ".join(pattern.trigger),
            "required": ", ".join(pattern.required),
            "origin": pattern.origin,
        }
        for pattern in patterns
    ]
    if not rows:
        print("No dependency patterns found.")
        return 0
    print("Dependency patterns:")
    print(tabulate(rows, headers="keys", tablefmt="github"))
    return 0


def _print_reconciliation(result: ReconciliationResult) -> None:
    frames = result.to_frames()
    summary = result.summary

    print("Reconciliation summary:")
    summary_rows = [
        ["Matched", summary["matched_count"], ""],
        [
            "Source only",
            summary["source_only_count"],
            _format_float(summary["source_only_total"]),
        ],
        [
            "Target only",
            summary["target_only_count"],
            _format_float(summary["target_only_total"]),
        ],
        ["Discrepancies", summary["discrepancy_count"], ""],
        ["Source total", "", _format_float(summary["source_total"])],
        ["Target total", "", _format_float(summary["target_total"])],
        ["Difference", "", _format_float(summary["total_cost_difference"])],
    ]
    print(tabulate(summary_rows, headers=["", "items", "amount"], tablefmt="github"))

    matches = frames["matches"]
    if not matches.empty:
        print()
        print("Matched items:")
        columns = ["source_item", "target_item", "reason", "confidence"]
        print(_frame_table(matches[columns], ".3f"))

    discrepancies = frames["discrepancies"]
    if not discrepancies.empty:
        print()
        print("Discrepancies:")
        print(_frame_table(discrepancies, ".2f"))

    target_only = frames["target_only"]
    if not target_only.empty:
        print()
        print("Potentially missing from the source:")
        columns = ["item", "code", "quantity", "unit", "unit_price", "total_price"]
        print(_frame_table(target_only[columns], ".2f"))

    if result.suggestions:
        print()
        print("Catalog suggestions:")
        rows: List[List[Any]] = []
        for entry in result.suggestions:
            for candidate in entry["candidates"]:
                rows.append(
                    [
                        entry["item"],
                        candidate.get("code"),
                        candidate.get("description"),
                        candidate["score"],
                    ]
                )
        headers = ["item", "code", "description", "score"]
        print(tabulate(rows, headers=headers, tablefmt="github", floatfmt=".3f"))


def _print_findings(findings: List[MissingItemFinding]) -> None:
    if not findings:
        print("No missing items detected.")
        return
    frame = pd.DataFrame([finding.to_dict() for finding in findings])
    frame["related_items_found"] = frame["related_items_found"].map(
        lambda value: "; ".join(value or [])
    )
    columns = [
        "priority",
        "category",
        "required_item",
        "confidence",
        "related_items_found",
    ]
    print(f"Missing items ({len(findings)}):")
    print(_frame_table(frame[columns], ".2f"))


def _load_app_config(path: Optional[Path]) -> AppConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    logger.debug("No configuration file found; using defaults")
    return AppConfig()


def _resolve_override_path(path: Path) -> Path:
    path = Path(path).expanduser()
    if path.is_absolute():
        return path
    return (Path.cwd() / path).resolve()


def _frame_table(frame: pd.DataFrame, floatfmt: str) -> str:
    return tabulate(
        frame, headers="keys", tablefmt="github", floatfmt=floatfmt, showindex=False
    )


def _format_float(value: float) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return "-"
    return f"{float(value):,.2f}"


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())
