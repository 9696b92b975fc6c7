import json
import traceback
from abc import ABC, abstractmethod

import logging
LOGGER = logging.getLogger(__name__)

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.sql import func

from errors import CacheIOError
from models import KeyValueEntry

DEVICE_SONGS_KEY = "deviceSongs"
CACHE_TIMESTAMP_KEY = "songsCacheTimestamp"
PLAYLISTS_KEY = "playlists"
RECENT_SONGS_KEY = "recentSongs"
USER_DATA_KEY = "userData"
SPOTIFY_TOKEN_KEY = "spotifyToken"


class KeyValueStore(ABC):
    """String values in, string values out. No multi-key transactions.
       Backend failures surface as CacheIOError."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    async def get_many(self, keys: list[str]) -> dict[str, str | None]:
        return {key: await self.get(key) for key in keys}


class MemoryStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self.data = dict(initial or {})
        self.fail_reads = False
        self.fail_writes = False
        self.writes: list[str] = []  # Keys in write order.

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise CacheIOError(f"Read of '{key}' failed.")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise CacheIOError(f"Write of '{key}' failed.")
        if not isinstance(value, str):
            raise TypeError(f"Store values must be strings, got {type(value).__name__} for '{key}'.")
        self.data[key] = value
        self.writes.append(key)


class SqlStore(KeyValueStore):
    """Key-value rows in the `kv_entries` table."""

    def __init__(self, session_factory=None):
        if session_factory is None:
            from db import get_session
            session_factory = get_session
        self.session_factory = session_factory

    async def get(self, key: str) -> str | None:
        try:
            async with self.session_factory() as s:
                result = await s.execute(select(KeyValueEntry.value).where(KeyValueEntry.key == key))
                return result.scalar_one_or_none()
        except Exception as e:
            LOGGER.warning(f"Reading '{key}' from DB failed: {traceback.format_exc()}")
            raise CacheIOError(f"Read of '{key}' failed: {e}") from e

    async def get_many(self, keys: list[str]) -> dict[str, str | None]:
        if not keys:
            return {}

        try:
            async with self.session_factory() as s:
                result = await s.execute(select(KeyValueEntry).where(KeyValueEntry.key.in_(keys)))
                found = {entry.key: entry.value for entry in result.scalars().all()}
        except Exception as e:
            LOGGER.warning(f"Reading {len(keys)} keys from DB failed: {traceback.format_exc()}")
            raise CacheIOError(f"Read of {keys} failed: {e}") from e

        return {key: found.get(key) for key in keys}

    async def set(self, key: str, value: str) -> None:
        try:
            async with self.session_factory() as s:
                stmt = insert(KeyValueEntry).values(key=key, value=value)
                stmt = stmt.on_conflict_do_update(index_elements=[KeyValueEntry.key],
                                                  set_={"value": value, "updated_at": func.now()})
                await s.execute(stmt)
                await s.commit()
        except Exception as e:
            LOGGER.warning(f"Writing '{key}' to DB failed: {traceback.format_exc()}")
            raise CacheIOError(f"Write of '{key}' failed: {e}") from e

        LOGGER.debug(f"Stored '{key}' ({len(value)} chars).")


async def read_json(store: KeyValueStore, key: str, default=None):
    """Parsed JSON under `key`, or `default` when the key is absent.
       Corrupt JSON raises CacheIOError like any other read failure."""
    raw = await store.get(key)
    if raw is None:
        return default

    try:
        return json.loads(raw)
    except ValueError as e:
        raise CacheIOError(f"Value under '{key}' is not valid JSON: {e}") from e


async def write_json(store: KeyValueStore, key: str, value) -> None:
    await store.set(key, json.dumps(value))
