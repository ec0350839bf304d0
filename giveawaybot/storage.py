"""Key-value persistence helpers and the per-tenant giveaway store."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import StoreUnavailable
from .models import Giveaway

LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "tenant:"
KEY_SUFFIX = ":giveaways"


def collection_key(tenant_id: str) -> str:
    return f"{KEY_PREFIX}{tenant_id}{KEY_SUFFIX}"


def tenant_from_key(key: str) -> Optional[str]:
    if not key.startswith(KEY_PREFIX) or not key.endswith(KEY_SUFFIX):
        return None
    tenant_id = key[len(KEY_PREFIX):-len(KEY_SUFFIX)]
    return tenant_id or None


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def list_keys(self, prefix: str) -> List[str]: ...


class MemoryBackend:
    """In-process backend. Values are stored as JSON text so callers never share objects."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def list_keys(self, prefix: str) -> List[str]:
        return sorted(key for key in self._data if key.startswith(prefix))


class SQLiteBackend:
    """Async wrapper around a single SQLite key-value table."""

    def __init__(self, path: Path) -> None:
        self.path = path

    async def get(self, key: str) -> Any:
        raw = await self._run(self._get, key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        await self._run(self._set, key, json.dumps(value))

    async def delete(self, key: str) -> bool:
        return await self._run(self._delete, key)

    async def list_keys(self, prefix: str) -> List[str]:
        return await self._run(self._list_keys, prefix)

    # --- Internal helpers -------------------------------------------------

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailable(f"SQLite backend at {self.path} failed: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        self._ensure_schema(conn)
        return conn

    def _get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO kv(key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _delete(self, key: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _list_keys(self, prefix: str) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            )
            return [row[0] for row in rows]
        finally:
            conn.close()

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )


class GiveawayStore:
    """Typed access to each tenant's giveaway collection.

    A tenant's giveaways live under one key as a mapping of giveaway id to
    payload. Every write re-reads the collection and replaces a single
    record, so callers must hold :meth:`lock` around their own
    read-modify-write to avoid overwriting a concurrent change.
    """

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    async def list_tenants(self) -> List[str]:
        keys = await self._call(self.backend.list_keys, KEY_PREFIX)
        tenants = []
        for key in keys:
            tenant_id = tenant_from_key(key)
            if tenant_id is not None:
                tenants.append(tenant_id)
        return tenants

    async def list_all(self, tenant_id: str) -> List[Giveaway]:
        collection = await self._load(tenant_id)
        return list(self._decode(tenant_id, collection).values())

    async def get(self, tenant_id: str, giveaway_id: str) -> Optional[Giveaway]:
        collection = await self._load(tenant_id)
        return self._decode(tenant_id, collection).get(str(giveaway_id))

    async def upsert(self, tenant_id: str, giveaway: Giveaway) -> None:
        if not giveaway.id:
            raise ValueError("giveaway id must be set before it is stored")
        collection = await self._load(tenant_id)
        collection[giveaway.id] = giveaway.to_payload()
        await self._call(self.backend.set, collection_key(tenant_id), collection)
        LOGGER.debug("Saved giveaway %s for tenant %s", giveaway.id, tenant_id)

    async def remove(self, tenant_id: str, giveaway_id: str) -> bool:
        collection = await self._load(tenant_id)
        if collection.pop(str(giveaway_id), None) is None:
            LOGGER.debug("Giveaway %s not found for tenant %s", giveaway_id, tenant_id)
            return False
        key = collection_key(tenant_id)
        if collection:
            await self._call(self.backend.set, key, collection)
        else:
            await self._call(self.backend.delete, key)
        LOGGER.debug("Deleted giveaway %s for tenant %s", giveaway_id, tenant_id)
        return True

    # --- Internal helpers -------------------------------------------------

    async def _call(self, func, *args):
        try:
            return await func(*args)
        except StoreUnavailable:
            raise
        except (OSError, ValueError, ConnectionError) as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def _load(self, tenant_id: str) -> Dict[str, dict]:
        raw = await self._call(self.backend.get, collection_key(tenant_id))
        return self._unwrap(raw, tenant_id)

    @staticmethod
    def _unwrap(raw: Any, tenant_id: str) -> Dict[str, dict]:
        # Some key-value services answer with {"ok": ..., "value": ...}.
        while isinstance(raw, dict) and "ok" in raw and "value" in raw:
            raw = raw["value"]
        if raw is None:
            return {}
        if isinstance(raw, list):
            collection: Dict[str, dict] = {}
            for item in raw:
                if isinstance(item, dict) and item.get("id"):
                    collection[str(item["id"])] = item
                else:
                    LOGGER.warning("Dropping malformed giveaway entry for tenant %s", tenant_id)
            return collection
        if isinstance(raw, dict):
            return {str(key): value for key, value in raw.items()}
        LOGGER.warning(
            "Unexpected giveaway collection type %s for tenant %s; treating as empty.",
            type(raw).__name__,
            tenant_id,
        )
        return {}

    @staticmethod
    def _decode(tenant_id: str, collection: Dict[str, dict]) -> Dict[str, Giveaway]:
        giveaways: Dict[str, Giveaway] = {}
        for giveaway_id, payload in collection.items():
            if not isinstance(payload, dict):
                LOGGER.warning("Invalid giveaway object %s for tenant %s", giveaway_id, tenant_id)
                continue
            try:
                giveaway = Giveaway.from_payload(payload, tenant_id=tenant_id)
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning(
                    "Skipping unreadable giveaway %s for tenant %s: %s", giveaway_id, tenant_id, exc
                )
                continue
            giveaways[giveaway.id] = giveaway
        return giveaways
