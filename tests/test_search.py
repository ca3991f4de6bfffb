import pytest

from estimaterecon.catalog import build_catalog_index
from estimaterecon.search import (
    CatalogSearchProvider,
    TfidfSearchProvider,
    create_search_provider,
)


def test_tfidf_search_returns_relevant_result(catalog):
    provider = TfidfSearchProvider()
    provider.index(catalog)
    results = provider.search("wiring", top_k=1)

    assert results
    assert results[0].metadata["code"] == "ELE100"


def test_tfidf_search_ignores_blank_queries(catalog):
    provider = TfidfSearchProvider()
    provider.index(catalog)

    assert provider.search("   ") == []


def test_tfidf_search_on_empty_catalog():
    provider = TfidfSearchProvider()
    provider.index(build_catalog_index([]))

    assert provider.is_indexed
    assert provider.search("drywall") == []


def test_catalog_search_uses_word_overlap(catalog):
    provider = CatalogSearchProvider(threshold=0.5)
    provider.index(catalog)

    results = provider.search("replace cabinet hardware", top_k=2)

    assert [result.metadata["code"] for result in results] == ["FNC100"]
    assert results[0].score == pytest.approx(1.0)


def test_search_requires_index():
    with pytest.raises(RuntimeError):
        CatalogSearchProvider().search("drywall")
    with pytest.raises(RuntimeError):
        TfidfSearchProvider().search("drywall")


def test_create_search_provider_by_name():
    assert create_search_provider("none") is None
    assert isinstance(create_search_provider("TFIDF"), TfidfSearchProvider)
    assert isinstance(create_search_provider(None), CatalogSearchProvider)
    assert isinstance(create_search_provider("semantic"), CatalogSearchProvider)
