from estimaterecon.catalog import build_catalog_index
from estimaterecon.dependencies import check_dependencies
from estimaterecon.patterns import (
    build_dependency_patterns,
    find_matching_patterns,
    get_patterns_for_category,
    pattern_to_rule,
    summarize_categories,
)
from estimaterecon.rules import PRIORITY_CRITICAL, PRIORITY_MINOR


def test_seed_patterns_follow_catalog_contents(catalog):
    patterns = build_dependency_patterns(catalog, include_category_patterns=False)
    categories = {pattern.category for pattern in patterns}

    assert {"DRY", "PNT", "ELE", "APP"} <= categories
    assert "ROF" not in categories
    assert "WTR" not in categories
    assert all(pattern.origin == "seed" for pattern in patterns)


def test_empty_catalog_has_no_patterns():
    empty = build_catalog_index([])

    assert build_dependency_patterns(empty) == []
    assert summarize_categories(empty).empty


def test_summarize_categories_ranks_terms(catalog):
    summary = summarize_categories(catalog).set_index("category")

    assert summary.loc["DRY", "item_count"] == 3
    assert summary.loc["DRY", "unit_count"] == 1
    assert summary.loc["DRY", "top_terms"][0] == "drywall"
    assert "and" not in summary.loc["DRY", "top_terms"]


def test_category_patterns_need_enough_items(catalog):
    patterns = build_dependency_patterns(catalog)
    derived = [pattern for pattern in patterns if pattern.origin == "catalog"]

    assert [pattern.category for pattern in derived] == ["DRY"]
    assert derived[0].trigger == ("drywall",)
    assert derived[0].required == ("compound", "install", "joint")
    assert derived[0].confidence == "low"


def test_get_patterns_for_category_is_case_insensitive(catalog):
    patterns = build_dependency_patterns(catalog)

    drywall = get_patterns_for_category(patterns, "dry")

    assert drywall
    assert all(pattern.category == "DRY" for pattern in drywall)


def test_find_matching_patterns_uses_any_trigger(catalog):
    patterns = build_dependency_patterns(catalog, include_category_patterns=False)

    matching = find_matching_patterns([{"description": "Hang sheetrock"}], patterns)

    assert [pattern.category for pattern in matching] == ["DRY", "DRY"]
    assert find_matching_patterns([], patterns) == []


def test_promoted_pattern_runs_as_caller_rule(catalog):
    patterns = build_dependency_patterns(catalog, include_category_patterns=False)
    seed = patterns[0]

    rule = pattern_to_rule(seed)
    findings = check_dependencies([{"description": "Hang sheetrock"}], rules=[rule], include_builtin=False)

    assert rule.priority == PRIORITY_CRITICAL
    assert rule.trigger.groups == (("drywall", "sheetrock", "gypsum"),)
    assert rule.missing_item == "Tape / Mud"
    assert [finding.required_item for finding in findings] == ["Tape / Mud"]


def test_pattern_to_rule_overrides(catalog):
    medium = next(
        pattern for pattern in build_dependency_patterns(catalog) if pattern.confidence == "medium"
    )

    rule = pattern_to_rule(medium, missing_item="Surface prep", trigger_groups=[["paint"], ["wall"]])

    assert rule.priority == PRIORITY_MINOR
    assert rule.missing_item == "Surface prep"
    assert rule.trigger.groups == (("paint",), ("wall",))
