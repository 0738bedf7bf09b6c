"""Local persistent store for binary objects.

Large image data that is kept locally (receipts, photos not yet sent to a
remote service) lives here instead of in memory. Objects are keyed by a
generated id; callers own deletion, nothing is collected implicitly.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from image_staging.errors import StoreError
from image_staging.logger import get_logger
from image_staging.metrics import metrics
from image_staging.preview import PreviewHandle, PreviewRegistry, default_registry
from image_staging.validation import OCTET_STREAM, ImageAsset, sniff_mime

from .db_operator import DbOperator
from .migrations import apply_migrations

_logger = get_logger("object_store")


@dataclass(frozen=True, slots=True)
class StoredBinaryObject:
    id: str
    blob: bytes = field(repr=False)
    mime_type: str | None
    created_at: str


@dataclass(frozen=True, slots=True)
class StoredObjectRef:
    """Display reference materialized from a stored object.

    The caller owns ``handle`` and releases it when the reference is no longer shown.
    """

    url: str
    mime_type: str
    handle: PreviewHandle = field(repr=False, compare=False)

    def release(self) -> None:
        self.handle.release()


def new_object_id() -> str:
    return f"img-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def effective_mime(record: StoredBinaryObject) -> str:
    """Stored type, or for legacy rows the type sniffed from the bytes."""
    return record.mime_type or sniff_mime(record.blob) or OCTET_STREAM


class BinaryObjectStore:
    def __init__(self, db_path: Path | str, registry: PreviewRegistry | None = None) -> None:
        self._db_path = Path(db_path)
        self._registry = registry if registry is not None else default_registry()
        self._operator = DbOperator(self._db_path)
        self._ready: Future = self._operator.schedule_write(apply_migrations)
        self._closed = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def registry(self) -> PreviewRegistry:
        return self._registry

    async def _call(self, action: str, schedule: Callable[..., Future], fn: Callable[..., Any], *args) -> Any:
        try:
            await asyncio.wrap_future(self._ready)
            return await asyncio.wrap_future(schedule(fn, *args))
        except StoreError:
            metrics.inc("object_store.failures")
            raise
        except (sqlite3.Error, OSError) as exc:
            metrics.inc("object_store.failures")
            _logger.error("store %s failed (%s): %s", action, self._db_path, exc)
            raise StoreError(f"Failed to {action}: {exc}") from exc

    async def put(self, asset: ImageAsset) -> str:
        """Persist ``asset`` under a fresh id and return the id."""
        object_id = new_object_id()
        created_at = datetime.now(timezone.utc).isoformat()

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO objects (id, blob, mime_type, created_at) VALUES (?, ?, ?, ?)",
                (object_id, sqlite3.Binary(asset.data), asset.mime_type, created_at),
            )

        await self._call("store object", self._operator.schedule_write, _insert)
        metrics.inc("object_store.put")
        _logger.debug("stored %s (%s, %d bytes)", object_id, asset.mime_type, asset.size)
        return object_id

    async def get_object(self, object_id: str) -> StoredBinaryObject | None:
        def _select(conn: sqlite3.Connection) -> StoredBinaryObject | None:
            row = conn.execute(
                "SELECT id, blob, mime_type, created_at FROM objects WHERE id = ?",
                (object_id,),
            ).fetchone()
            if row is None or row[1] is None:
                return None
            return StoredBinaryObject(str(row[0]), bytes(row[1]), row[2] or None, str(row[3]))

        return await self._call("retrieve object", self._operator.schedule_read, _select)

    async def get(self, object_id: str) -> StoredObjectRef | None:
        """Materialize a display reference for ``object_id``; None if absent."""
        record = await self.get_object(object_id)
        if record is None:
            return None
        mime = effective_mime(record)
        handle = self._registry.create(ImageAsset(name=record.id, data=record.blob, mime_type=mime))
        return StoredObjectRef(url=handle.url, mime_type=mime, handle=handle)

    async def get_bytes(self, object_id: str) -> bytes | None:
        record = await self.get_object(object_id)
        return record.blob if record is not None else None

    async def get_asset(self, object_id: str) -> ImageAsset | None:
        record = await self.get_object(object_id)
        if record is None:
            return None
        return ImageAsset(name=record.id, data=record.blob, mime_type=effective_mime(record))

    async def delete(self, object_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM objects WHERE id = ?", (object_id,))

        await self._call("delete object", self._operator.schedule_write, _delete)
        metrics.inc("object_store.delete")

    async def list(self) -> list[str]:
        def _ids(conn: sqlite3.Connection) -> list[str]:
            return [str(r[0]) for r in conn.execute("SELECT id FROM objects ORDER BY id").fetchall()]

        return await self._call("list objects", self._operator.schedule_read, _ids)

    async def clear(self) -> None:
        def _clear(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM objects")

        await self._call("clear objects", self._operator.schedule_write, _clear)
        _logger.info("cleared object store %s", self._db_path)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._operator.shutdown()
        except Exception:
            _logger.debug("failed to shutdown operator", exc_info=True)


_stores: dict[Path, BinaryObjectStore] = {}
_stores_lock = threading.Lock()


def open_store(db_path: Path | str, registry: PreviewRegistry | None = None) -> BinaryObjectStore:
    """Return the process-wide store for ``db_path``, opening it on first use."""
    key = Path(db_path).expanduser().resolve()
    with _stores_lock:
        store = _stores.get(key)
        if store is None:
            store = BinaryObjectStore(key, registry)
            _stores[key] = store
        return store


def close_all() -> None:
    with _stores_lock:
        stores = list(_stores.values())
        _stores.clear()
    for store in stores:
        store.close()
