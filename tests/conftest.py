"""
Shared fixtures for guide engine tests.
"""
import pytest

from guide_engine.services.blob_store import MemoryBlobStore
from tests.helpers import GUIDE_URL, SAMPLE_XMLTV, FakeFetcher


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher({GUIDE_URL: SAMPLE_XMLTV})


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore()
