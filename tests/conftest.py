from __future__ import annotations

from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path for absolute imports
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from estimaterecon.catalog import CatalogIndex, build_catalog_index


CATALOG_RECORDS = [
    {"code": "DRY100", "description": "Install drywall 1/2 inch", "category": "DRY", "unit": "SF"},
    {"code": "DRY110", "description": "Drywall tape and joint compound", "category": "DRY", "unit": "SF"},
    {"code": "DRY120", "description": "Texture drywall - orange peel", "category": "DRY", "unit": "SF"},
    {"code": "PNT110", "description": "Paint walls - two coats", "category": "PNT", "unit": "SF"},
    {"code": "ELE100", "description": "Electrical wiring installation", "category": "ELE", "unit": "LF"},
    {"code": "FNC100", "description": "Cabinet hardware - replace", "category": "FNC", "unit": "EA"},
    {"code": "APP100", "description": "Refrigerator - detach and reset", "category": "APP", "unit": "EA"},
]


@pytest.fixture(scope="session")
def root() -> Path:
    return ROOT


@pytest.fixture(scope="session")
def sample_dir() -> Path:
    return ROOT / "sample_data"


@pytest.fixture
def catalog() -> CatalogIndex:
    return build_catalog_index(CATALOG_RECORDS)
