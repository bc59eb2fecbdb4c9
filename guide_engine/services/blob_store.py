"""
Blob Store

Key-value persistence for schedule snapshots. Backends share the async
get/set/remove interface of BlobStore.
"""
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import aiofiles
import aiofiles.os
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert

from guide_engine.config import CustomSettings
from guide_engine.database import Database
from guide_engine.models import Blob


logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Key-value store of opaque byte blobs"""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryBlobStore:
    """Process-local store, used for tests and when persistence is disabled"""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._blobs[key] = bytes(value)

    async def remove(self, key: str) -> None:
        self._blobs.pop(key, None)


class FileBlobStore:
    """One file per key inside a directory"""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.blob"

    async def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except FileNotFoundError:
            return None

    async def set(self, key: str, value: bytes) -> None:
        await aiofiles.os.makedirs(self.directory, exist_ok=True)
        path = self._path_for(key)
        temp_path = path.with_suffix(".tmp")

        async with aiofiles.open(temp_path, 'wb') as f:
            await f.write(value)

        # Readers never see a half-written blob
        await aiofiles.os.replace(temp_path, path)
        logger.debug(f"Stored blob {key} ({len(value)} bytes) at {path}")

    async def remove(self, key: str) -> None:
        try:
            await aiofiles.os.remove(self._path_for(key))
        except FileNotFoundError:
            pass


class DatabaseBlobStore:
    """Blobs stored in the SQLite 'blobs' table"""

    def __init__(self, database: Database):
        self.database = database

    async def get(self, key: str) -> bytes | None:
        async with self.database.session_scope() as session:
            result = await session.execute(select(Blob.value).where(Blob.key == key))
            return result.scalar_one_or_none()

    async def set(self, key: str, value: bytes) -> None:
        stmt = insert(Blob).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Blob.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        async with self.database.session_scope() as session:
            await session.execute(stmt)
        logger.debug(f"Stored blob {key} ({len(value)} bytes)")

    async def remove(self, key: str) -> None:
        async with self.database.session_scope() as session:
            await session.execute(delete(Blob).where(Blob.key == key))


def create_blob_store(config: CustomSettings, database: Database | None = None) -> BlobStore:
    """
    Build the blob store selected by configuration

    Args:
        config: Engine settings
        database: Initialized database, required for the 'database' backend

    Returns:
        BlobStore implementation
    """
    backend = config.blob_store_backend
    if backend == "database":
        if database is None:
            raise ValueError("The database blob store needs an initialized Database")
        return DatabaseBlobStore(database)
    if backend == "file":
        return FileBlobStore(config.blob_directory)
    return MemoryBlobStore()
