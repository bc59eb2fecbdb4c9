"""
Tests for the blob store backends.
"""
import pytest

from guide_engine.config import CustomSettings
from guide_engine.database import Database
from guide_engine.services.blob_store import (
    DatabaseBlobStore,
    FileBlobStore,
    MemoryBlobStore,
    create_blob_store,
)


KEY = "playcast_epg:0123456789abcdef"


async def _exercise(store) -> None:
    assert await store.get(KEY) is None

    await store.set(KEY, b'{"channels": []}')
    assert await store.get(KEY) == b'{"channels": []}'

    await store.set(KEY, b"replaced")
    assert await store.get(KEY) == b"replaced"

    await store.remove(KEY)
    assert await store.get(KEY) is None

    # Removing a missing key is a no-op
    await store.remove(KEY)


class TestBlobStores:
    """Test get/set/remove on each backend."""

    @pytest.mark.asyncio
    async def test_memory_store(self):
        await _exercise(MemoryBlobStore())

    @pytest.mark.asyncio
    async def test_file_store(self, tmp_path):
        store = FileBlobStore(tmp_path / "blobs")
        await _exercise(store)

    @pytest.mark.asyncio
    async def test_file_store_keeps_keys_apart(self, tmp_path):
        store = FileBlobStore(tmp_path)
        await store.set("a:1", b"one")
        await store.set("a/1", b"two")

        assert await store.get("a:1") == b"one"
        assert await store.get("a/1") == b"two"
        assert not list(tmp_path.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_database_store(self, tmp_path):
        database = Database(str(tmp_path / "data" / "guide.db"))
        await database.init()
        try:
            await _exercise(DatabaseBlobStore(database))
        finally:
            await database.close()

    @pytest.mark.asyncio
    async def test_database_store_survives_reopen(self, tmp_path):
        path = str(tmp_path / "guide.db")

        database = Database(path)
        await database.init()
        await DatabaseBlobStore(database).set(KEY, b"persisted")
        await database.close()

        reopened = Database(path)
        await reopened.init()
        try:
            assert await DatabaseBlobStore(reopened).get(KEY) == b"persisted"
        finally:
            await reopened.close()

    def test_uninitialized_database_raises(self, tmp_path):
        with pytest.raises(RuntimeError):
            Database(str(tmp_path / "guide.db")).get_session_factory()


class TestCreateBlobStore:
    """Test backend selection from settings."""

    def test_memory_backend(self):
        store = create_blob_store(CustomSettings(blob_store_backend="memory"))
        assert isinstance(store, MemoryBlobStore)

    def test_file_backend(self, tmp_path):
        config = CustomSettings(blob_store_backend="file", blob_directory=str(tmp_path))
        assert isinstance(create_blob_store(config), FileBlobStore)

    def test_database_backend_needs_database(self, tmp_path):
        config = CustomSettings(blob_store_backend="database", database_path=str(tmp_path / "guide.db"))
        with pytest.raises(ValueError):
            create_blob_store(config)
        assert isinstance(create_blob_store(config, Database(config.database_path)), DatabaseBlobStore)
