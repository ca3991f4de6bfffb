import pandas as pd

from estimaterecon.catalog import CatalogIndex, build_catalog_index


def test_find_by_code_is_case_insensitive_and_keeps_first_duplicate(caplog):
    catalog = build_catalog_index(
        [
            {"code": "DRY100", "description": "Install drywall 1/2 inch"},
            {"code": "dry100", "description": "Duplicate entry"},
        ]
    )

    assert catalog.find_by_code(" dry100 ").description == "Install drywall 1/2 inch"
    assert catalog.find_by_code("missing") is None
    assert "duplicate codes" in caplog.text


def test_canonical_code_falls_back_to_upper_trim(catalog):
    assert catalog.canonical_code(" dry100 ") == "DRY100"
    assert catalog.canonical_code("xyz9 ") == "XYZ9"
    assert catalog.canonical_code(None) == ""


def test_find_by_description_exact_normalized_and_containment(catalog):
    exact = catalog.find_by_description("Paint walls - two coats")
    assert [item.code for item in exact] == ["PNT110"]

    normalized = catalog.find_by_description("paint walls two coats")
    assert [item.code for item in normalized] == ["PNT110"]

    contained = catalog.find_by_description("paint walls")
    assert [item.code for item in contained] == ["PNT110"]

    assert catalog.find_by_description("paint walls", exact_only=True) == []
    assert catalog.find_by_description("   ") == []


def test_find_by_description_skips_short_containment():
    catalog = build_catalog_index([{"code": "A1", "description": "Paint"}])

    assert catalog.find_by_description("wall paint") == []


def test_search_by_keyword_matches_description_or_code(catalog):
    drywall = catalog.search_by_keyword("drywall")
    assert [item.code for item in drywall] == ["DRY100", "DRY110", "DRY120"]
    assert len(catalog.search_by_keyword("drywall", limit=1)) == 1
    assert [item.code for item in catalog.search_by_keyword("pnt")] == ["PNT110"]
    assert catalog.search_by_keyword("") == []


def test_find_similar_sorts_by_overlap(catalog):
    similar = catalog.find_similar("install drywall", threshold=0.6)

    assert [item.code for item in similar] == ["DRY100"]
    assert catalog.find_similar("", threshold=0.1) == []


def test_category_lookup_and_statistics(catalog):
    assert [item.code for item in catalog.get_by_category("dry")] == ["DRY100", "DRY110", "DRY120"]
    assert "PNT" in catalog.categories()
    assert catalog.item_exists(code="ele100")
    assert catalog.item_exists(description="Paint walls - two coats")
    assert not catalog.item_exists(description="paint walls")

    stats = catalog.statistics()
    assert stats["total"] == len(catalog)
    assert stats["by_category"]["DRY"] == 3


def test_empty_and_malformed_catalogs_yield_empty_results(caplog):
    catalog = CatalogIndex([{"category": "X"}, 42])

    assert len(catalog) == 0
    assert catalog.find_by_code("DRY100") is None
    assert catalog.search_by_keyword("drywall") == []
    assert catalog.find_similar("drywall") == []
    assert "malformed catalog records" in caplog.text


def test_build_is_idempotent(catalog):
    assert catalog.is_built
    assert catalog.build() is catalog


def test_build_index_from_dataframe():
    frame = pd.DataFrame(
        {
            "code": ["DRY100", "PNT110", None],
            "description": ["Install drywall 1/2 inch", "Paint walls - two coats", None],
            "category": ["DRY", "PNT", None],
            "unit": ["SF", None, None],
        }
    )

    index = build_catalog_index(frame)

    assert len(index) == 2
    assert index.find_by_code("pnt110").unit is None
    assert build_catalog_index(frame.iloc[0:0]).categories() == []
