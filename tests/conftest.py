import os
import sys
from typing import Dict, List, Optional

import pytest

# Test environment configuration
os.environ.setdefault("TEST_MODE", "1")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

# Ensure the project root is importable when pytest changes CWD
from pathlib import Path

PROJECT_ROOT = str(Path(__file__).resolve().parents[1])
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from booklog.errors import ProviderUnavailable  # noqa: E402
from booklog.models import CoverImage, Edition, ProviderDoc, WorkDetail  # noqa: E402
from booklog.services.memory_store import MemoryDocumentStore  # noqa: E402
from booklog.services.metadata_provider import MetadataProvider  # noqa: E402


class FakeProvider(MetadataProvider):
    """In-memory provider; anything not configured behaves as a provider failure."""

    def __init__(self) -> None:
        self.search_results: Dict[str, List[ProviderDoc]] = {}
        self.works: Dict[str, WorkDetail] = {}
        self.editions: Dict[str, Optional[Edition]] = {}
        self.covers: Dict[int, CoverImage] = {}
        self.calls: List[tuple] = []

    async def search_by_term(self, term: str, limit: int) -> List[ProviderDoc]:
        self.calls.append(("search", term, limit))
        if term not in self.search_results:
            raise ProviderUnavailable(f"no canned search for {term}")
        return self.search_results[term][:limit]

    async def get_work_detail(self, work_key: str) -> WorkDetail:
        self.calls.append(("work", work_key))
        if work_key not in self.works:
            raise ProviderUnavailable(f"no canned work {work_key}")
        return self.works[work_key]

    async def get_first_edition(self, work_key: str) -> Optional[Edition]:
        self.calls.append(("edition", work_key))
        if work_key not in self.editions:
            raise ProviderUnavailable(f"no canned edition {work_key}")
        return self.editions[work_key]

    async def fetch_cover_image(self, cover_id: int, size: str = "L") -> CoverImage:
        self.calls.append(("cover", cover_id, size))
        if cover_id not in self.covers:
            raise ProviderUnavailable(f"no canned cover {cover_id}")
        return self.covers[cover_id]


@pytest.fixture()
def provider():
    return FakeProvider()


@pytest.fixture()
def books_store():
    return MemoryDocumentStore("books")


@pytest.fixture()
def client(provider, monkeypatch):
    from booklog import app as app_module

    # Fresh in-memory collections for every test
    app_module._stores.clear()
    monkeypatch.setattr(app_module, "make_provider", lambda: provider)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client
    app_module._stores.clear()
