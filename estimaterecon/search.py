"""Catalog search providers used to suggest codes for unmatched items."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import linear_kernel

from .catalog import CatalogIndex

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """A single hit returned by a :class:`SearchProvider`."""

    text: str
    score: float
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "score": self.score, **self.metadata}


class SearchProvider(ABC):
    """Abstract base class that all search providers must implement."""

    def __init__(self) -> None:
        self._is_indexed = False

    @property
    def is_indexed(self) -> bool:
        return self._is_indexed

    @abstractmethod
    def index(self, catalog: CatalogIndex) -> None:
        """Build the internal index from the catalog."""

    @abstractmethod
    def search(self, query: str, top_k: int = 5) -> List[SearchResult]:
        """Return the most relevant catalog entries for ``query``."""


class CatalogSearchProvider(SearchProvider):
    """Word-overlap search backed directly by :meth:`CatalogIndex.find_similar`."""

    def __init__(self, threshold: float = 0.5) -> None:
        super().__init__()
        self.threshold = threshold
        self._catalog: Optional[CatalogIndex] = None

    def index(self, catalog: CatalogIndex) -> None:
        self._catalog = catalog.build()
        self._is_indexed = True

    def search(self, query: str, top_k: int = 5) -> List[SearchResult]:
        if not self.is_indexed or self._catalog is None:
            raise RuntimeError("Search provider has not been indexed yet")
        if not query.strip():
            return []
        results = []
        for item in self._catalog.find_similar(query, self.threshold)[:top_k]:
            results.append(
                SearchResult(
                    text=item.description,
                    score=self._catalog.similarity(query, item),
                    metadata={"code": item.code, "description": item.description},
                )
            )
        return results


class TfidfSearchProvider(SearchProvider):
    """TF-IDF search over catalog descriptions."""

    def __init__(self) -> None:
        super().__init__()
        self._vectorizer = TfidfVectorizer(stop_words="english")
        self._matrix = None
        self._documents: List[str] = []
        self._metadata: List[Dict[str, Any]] = []

    def index(self, catalog: CatalogIndex) -> None:
        items = catalog.build().items
        corpus = [
            " ".join(filter(None, [item.code, item.description])) for item in items
        ]
        if not any(text.strip() for text in corpus):
            logger.warning("Catalog is empty; TF-IDF search will return no results")
            self._matrix = None
            self._documents = []
            self._metadata = []
            self._is_indexed = True
            return

        logger.info("Indexing %d catalog items using TF-IDF", len(corpus))
        try:
            self._matrix = self._vectorizer.fit_transform(corpus)
        except ValueError:
            # Raised when every document consists of stop words only.
            logger.warning(
                "Catalog vocabulary is empty; TF-IDF search will return no results"
            )
            self._matrix = None
        self._documents = corpus
        self._metadata = [
            {"code": item.code, "description": item.description} for item in items
        ]
        self._is_indexed = True

    def search(self, query: str, top_k: int = 5) -> List[SearchResult]:
        if not self.is_indexed:
            raise RuntimeError("Search provider has not been indexed yet")
        if not query.strip() or self._matrix is None:
            return []

        query_vector = self._vectorizer.transform([query])
        scores = linear_kernel(query_vector, self._matrix).flatten()
        best_indices = np.argsort(scores, kind="stable")[::-1]

        results: List[SearchResult] = []
        for index in best_indices[:top_k]:
            score = float(scores[index])
            if score <= 0:
                continue
            results.append(
                SearchResult(
                    text=self._documents[index],
                    score=score,
                    metadata=self._metadata[index],
                )
            )
        return results


def create_search_provider(
    provider_name: Optional[str], threshold: float = 0.5
) -> Optional[SearchProvider]:
    """Instantiate a search provider by name; ``none`` disables suggestions."""

    provider_name = (provider_name or "catalog").lower()
    if provider_name in {"none", "off", "disabled"}:
        return None
    if provider_name in {"catalog", "overlap", "local"}:
        return CatalogSearchProvider(threshold=threshold)
    if provider_name == "tfidf":
        return TfidfSearchProvider()

    logger.warning(
        "Unknown search provider '%s'; falling back to catalog word overlap",
        provider_name,
    )
    return CatalogSearchProvider(threshold=threshold)


__all__ = [
    "CatalogSearchProvider",
    "SearchProvider",
    "SearchResult",
    "TfidfSearchProvider",
    "create_search_provider",
]
