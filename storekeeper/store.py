"""
Parking lot store: the single authoritative record of metadata and state.

Two independent maps, metadata-by-id and state-by-id, each supporting a full
snapshot read and a partial upsert. Two interchangeable backends:

- MemoryStore: dicts behind an asyncio.Lock. Lost on restart; for tests,
  development and single-instance deployments.
- RedisStore: one JSON value per lot under a namespaced key, e.g.
  "parking-lot:state:lot-1". Several storekeeper instances can share it.

Both return snapshots sorted by ID and built from the same model serialization,
so the API responses they produce are byte-for-byte identical.

The backend is chosen once at startup by create_store(); request handlers only
ever see the Store interface.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Mapping
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.exceptions import RedisError

from storekeeper.config import ConfigError
from storekeeper.models import (
    MetadataMap,
    ParkingLotMetadata,
    ParkingLotState,
    StateMap,
    WireModel,
)

logger = logging.getLogger("storekeeper.store")


class StoreError(Exception):
    """Raised when the backing store cannot be reached or returns garbage."""


class Store(ABC):
    """
    Capability-agnostic access to the two maps.

    Every update is a per-ID upsert: IDs missing from the update are untouched
    and each written ID is replaced atomically, never half-written.
    """

    @abstractmethod
    async def get_metadatas(self) -> MetadataMap: ...

    @abstractmethod
    async def get_states(self) -> StateMap: ...

    @abstractmethod
    async def update_metadatas(self, updates: Mapping[str, ParkingLotMetadata]) -> None: ...

    @abstractmethod
    async def update_states(self, updates: Mapping[str, ParkingLotState]) -> None: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryStore(Store):
    def __init__(self) -> None:
        self._metadatas: MetadataMap = {}
        self._states: StateMap = {}
        self._lock = asyncio.Lock()

    async def get_metadatas(self) -> MetadataMap:
        async with self._lock:
            return dict(sorted(self._metadatas.items()))

    async def get_states(self) -> StateMap:
        async with self._lock:
            return dict(sorted(self._states.items()))

    async def update_metadatas(self, updates: Mapping[str, ParkingLotMetadata]) -> None:
        # Entries are frozen models, so storing the reference is a safe snapshot.
        async with self._lock:
            self._metadatas.update(updates)

    async def update_states(self, updates: Mapping[str, ParkingLotState]) -> None:
        async with self._lock:
            self._states.update(updates)


class RedisStore(Store):
    """
    Store backed by Redis via redis.asyncio.

    Writes go out as a single MSET, so every key is set atomically and no
    cross-key transaction is needed. Reads SCAN the namespace and MGET the
    values found.
    """

    METADATA = "metadata"
    STATE = "state"

    def __init__(self, client: redis.Redis, namespace: str = "parking-lot") -> None:
        self._redis = client
        self._namespace = namespace

    def _prefix(self, kind: str) -> str:
        return f"{self._namespace}:{kind}:"

    async def _collect(self, kind: str, model: type[WireModel]) -> dict:
        prefix = self._prefix(kind)
        try:
            keys = [key async for key in self._redis.scan_iter(match=f"{prefix}*")]
            values = await self._redis.mget(keys) if keys else []
        except RedisError as e:
            logger.error("Redis read failed for %s: %s", kind, e)
            raise StoreError(f"failed to read {kind} from redis: {e}") from e

        entries = {}
        for key, value in zip(keys, values):
            if value is None:
                continue
            if isinstance(key, bytes):
                key = key.decode()
            try:
                entries[key[len(prefix):]] = model.model_validate_json(value)
            except ValueError as e:
                raise StoreError(f"corrupt {kind} entry under {key!r}") from e
        return dict(sorted(entries.items()))

    async def _write(self, kind: str, updates: Mapping[str, WireModel]) -> None:
        if not updates:
            return
        prefix = self._prefix(kind)
        mapping = {
            f"{prefix}{lot_id}": entry.model_dump_json(by_alias=True, exclude_unset=True)
            for lot_id, entry in updates.items()
        }
        try:
            await self._redis.mset(mapping)
        except RedisError as e:
            logger.error("Redis write failed for %s: %s", kind, e)
            raise StoreError(f"failed to write {kind} to redis: {e}") from e

    async def get_metadatas(self) -> MetadataMap:
        return await self._collect(self.METADATA, ParkingLotMetadata)

    async def get_states(self) -> StateMap:
        return await self._collect(self.STATE, ParkingLotState)

    async def update_metadatas(self, updates: Mapping[str, ParkingLotMetadata]) -> None:
        await self._write(self.METADATA, updates)

    async def update_states(self, updates: Mapping[str, ParkingLotState]) -> None:
        await self._write(self.STATE, updates)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self._redis.aclose()


def create_store(uri: str) -> Store:
    """
    Build the store selected by a URI.

    "memory:" (any path) selects MemoryStore; "redis://" or "rediss://" selects
    RedisStore with the URI passed to redis.from_url. Anything else is a
    ConfigError.
    """
    parsed = urlparse(uri)
    if parsed.scheme == "memory":
        logger.info("Using in-memory store")
        return MemoryStore()
    if parsed.scheme in ("redis", "rediss"):
        logger.info("Using redis store at %s", parsed.hostname or "localhost")
        return RedisStore(redis.from_url(uri, decode_responses=True))
    raise ConfigError(f"Unknown store scheme: {parsed.scheme or uri!r}")
