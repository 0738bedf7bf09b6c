"""Stable references to stored objects.

A reference string (``store:<id>``) can be persisted next to other records in
place of the image data itself. ``ReferenceResolver`` turns references back
into displayable urls and caches them until released.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from urllib.parse import urlparse

from image_staging.logger import get_logger

from .object_store import BinaryObjectStore, StoredObjectRef

_logger = get_logger("references")

STORE_SCHEME = "store:"


@dataclass(frozen=True, slots=True)
class ResolvedData:
    url: str
    mime_type: str


def make_reference(object_id: str) -> str:
    return f"{STORE_SCHEME}{object_id}"


def is_store_reference(value: str | None) -> bool:
    return bool(value) and value.startswith(STORE_SCHEME)  # type: ignore[union-attr]


def parse_reference(value: str) -> str:
    if not is_store_reference(value):
        raise ValueError(f"not a store reference: {value!r}")
    object_id = value[len(STORE_SCHEME):]
    if not object_id:
        raise ValueError(f"empty store reference: {value!r}")
    return object_id


def guess_remote_mime(url: str) -> str:
    path = urlparse(url).path.lower()
    return "application/pdf" if path.endswith(".pdf") else "image/jpeg"


class ReferenceResolver:
    """Resolves references to display urls, one live url per stored object."""

    def __init__(self, store: BinaryObjectStore) -> None:
        self._store = store
        self._cache: dict[str, StoredObjectRef] = {}

    async def resolve(self, value: str) -> str | None:
        """Display url for ``value``; plain urls pass through unchanged.

        Returns None when the referenced object no longer exists.
        """
        data = await self.resolve_data(value)
        return data.url if data is not None else None

    async def resolve_data(self, value: str) -> ResolvedData | None:
        if not is_store_reference(value):
            return ResolvedData(url=value, mime_type=guess_remote_mime(value))

        object_id = parse_reference(value)
        ref = self._cache.get(object_id)
        if ref is not None and ref.handle.released:
            self._cache.pop(object_id, None)
            ref = None
        if ref is None:
            ref = await self._store.get(object_id)
            if ref is None:
                _logger.debug("reference %s points at a missing object", value)
                return None
            # Another resolve may have filled the slot while we awaited.
            existing = self._cache.get(object_id)
            if existing is not None and not existing.handle.released:
                ref.release()
                ref = existing
            else:
                self._cache[object_id] = ref
        return ResolvedData(url=ref.url, mime_type=ref.mime_type)

    async def resolve_many(self, values: list[str]) -> list[str | None]:
        return list(await asyncio.gather(*(self.resolve(v) for v in values)))

    def forget(self, value: str) -> None:
        """Release the cached url for one reference."""
        object_id = parse_reference(value) if is_store_reference(value) else value
        ref = self._cache.pop(object_id, None)
        if ref is not None:
            ref.release()

    def release_all(self) -> None:
        refs = list(self._cache.values())
        self._cache.clear()
        for ref in refs:
            ref.release()

    def __len__(self) -> int:
        return len(self._cache)
