from pathlib import Path

import pytest

from estimaterecon.config import (
    AppConfig,
    DependencyConfig,
    MatchingConfig,
    load_config,
    parse_config,
)


def test_load_sample_config_resolves_paths(root):
    config = load_config(root / "config" / "config.yaml")

    assert config.catalog == root / "sample_data" / "catalog.csv"
    assert config.rules == root / "sample_data" / "rules.yaml"
    assert config.matching.fuzzy_match_threshold == pytest.approx(0.7)
    assert config.dependencies.weights.trigger_match == pytest.approx(0.3)
    assert config.search.provider == "catalog"
    assert config.columns.description == "auto"


def test_category_overrides_apply_case_insensitively(root):
    config = load_config(root / "config" / "config.yaml")

    roofing = config.matching.for_category("rfg")

    assert roofing.quantity_discrepancy_pct == pytest.approx(10.0)
    assert roofing.price_discrepancy_pct == pytest.approx(15.0)
    assert config.matching.for_category("DRY") is config.matching
    assert config.matching.for_category(None) is config.matching


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_unknown_options_are_rejected():
    with pytest.raises(ValueError):
        parse_config({"matching": {"fuzzy_threshold": 0.5}})
    with pytest.raises(ValueError):
        parse_config({"dependencies": {"weights": {"bonus": 0.1}}})
    with pytest.raises(ValueError):
        parse_config({"paths": ["catalog.csv"]})


def test_empty_config_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")

    config = load_config(path)

    assert config.catalog is None
    assert config.matching == MatchingConfig()
    assert config.dependencies == DependencyConfig()


def test_relative_paths_resolve_against_config_directory(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    path.parent.mkdir()
    path.write_text("paths:\n  catalog: data/catalog.csv\n  rules: /abs/rules.yaml\n", encoding="utf-8")

    config = load_config(path)

    assert config.catalog == (tmp_path / "nested" / "data" / "catalog.csv").resolve()
    assert config.rules == Path("/abs/rules.yaml")


def test_dependency_floor_per_category():
    config = parse_config({"dependencies": {"category_min_confidence": {"Roofing": 0.9}}})

    assert config.dependencies.min_confidence_for("roofing") == pytest.approx(0.9)
    assert config.dependencies.min_confidence_for("Drywall") == pytest.approx(0.6)
    assert isinstance(AppConfig().dependencies, DependencyConfig)
