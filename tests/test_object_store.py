from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest
from conftest import make_image_bytes

from image_staging.errors import StoreError
from image_staging.preview import PreviewRegistry
from image_staging.store import (
    BinaryObjectStore,
    ReferenceResolver,
    is_store_reference,
    make_reference,
    open_store,
    parse_reference,
)
from image_staging.store.migrations import get_latest_version
from image_staging.validation import ImageAsset


def _asset(fmt: str = "PNG") -> ImageAsset:
    return ImageAsset.from_bytes(f"a.{fmt.lower()}", make_image_bytes(16, 8, fmt))


@pytest.fixture
def store(tmp_path: Path, registry: PreviewRegistry):
    s = BinaryObjectStore(tmp_path / "objects.db", registry)
    yield s
    s.close()


def test_put_get_round_trip(store: BinaryObjectStore, registry: PreviewRegistry):
    asset = _asset("JPEG")

    async def scenario():
        object_id = await store.put(asset)
        ref = await store.get(object_id)
        data = await store.get_asset(object_id)
        return object_id, ref, data

    object_id, ref, data = asyncio.run(scenario())
    assert object_id.startswith("img-")
    assert ref.mime_type == "image/jpeg"
    assert registry.resolve(ref.url) == asset.data
    assert data.data == asset.data
    ref.release()
    assert not registry.is_live(ref.url)


def test_get_missing_returns_none(store: BinaryObjectStore):
    assert asyncio.run(store.get("img-0-nothing")) is None
    assert asyncio.run(store.get_bytes("img-0-nothing")) is None


def test_get_bytes_returns_stored_payload(store: BinaryObjectStore):
    asset = _asset()

    async def scenario():
        return await store.get_bytes(await store.put(asset))

    assert asyncio.run(scenario()) == asset.data


def test_delete_list_and_clear(store: BinaryObjectStore):
    async def scenario():
        a = await store.put(_asset())
        b = await store.put(_asset())
        listed = await store.list()
        await store.delete(a)
        after_delete = await store.list()
        gone = await store.get(a)
        await store.clear()
        return a, b, listed, after_delete, gone, await store.list()

    a, b, listed, after_delete, gone, final = asyncio.run(scenario())
    assert sorted([a, b]) == listed
    assert after_delete == [b]
    assert gone is None
    assert final == []


def test_schema_is_migrated_on_open(store: BinaryObjectStore):
    asyncio.run(store.list())
    conn = sqlite3.connect(str(store.db_path))
    try:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == get_latest_version()
        cols = [c[1] for c in conn.execute("PRAGMA table_info(objects)").fetchall()]
    finally:
        conn.close()
    assert {"id", "blob", "mime_type", "created_at"} <= set(cols)


def test_legacy_rows_fall_back_to_sniffed_type(tmp_path: Path, registry: PreviewRegistry):
    db_path = tmp_path / "legacy.db"
    conn = sqlite3.connect(str(db_path))
    conn.execute("CREATE TABLE objects (id TEXT PRIMARY KEY, blob BLOB NOT NULL, created_at TEXT NOT NULL)")
    conn.execute("PRAGMA user_version = 1")
    conn.execute(
        "INSERT INTO objects (id, blob, created_at) VALUES (?, ?, ?)",
        ("img-1-legacy", make_image_bytes(4, 4, "PNG"), "2020-01-01T00:00:00+00:00"),
    )
    conn.execute(
        "INSERT INTO objects (id, blob, created_at) VALUES (?, ?, ?)",
        ("img-2-legacy", b"opaque", "2020-01-01T00:00:00+00:00"),
    )
    conn.commit()
    conn.close()

    store = BinaryObjectStore(db_path, registry)
    try:
        png = asyncio.run(store.get("img-1-legacy"))
        blob = asyncio.run(store.get("img-2-legacy"))
    finally:
        store.close()
    assert png.mime_type == "image/png"
    assert blob.mime_type == "application/octet-stream"


def test_unusable_path_raises_store_error(tmp_path: Path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    store = BinaryObjectStore(blocker / "objects.db")
    try:
        with pytest.raises(StoreError):
            asyncio.run(store.put(_asset()))
    finally:
        store.close()


def test_closed_store_raises_store_error(tmp_path: Path):
    store = BinaryObjectStore(tmp_path / "closed.db")
    asyncio.run(store.list())
    store.close()
    with pytest.raises(StoreError):
        asyncio.run(store.list())


def test_open_store_shares_one_instance(tmp_path: Path):
    a = open_store(tmp_path / "shared.db")
    b = open_store(str(tmp_path / "." / "shared.db"))
    assert a is b
    assert open_store(tmp_path / "other.db") is not a


def test_reference_helpers():
    ref = make_reference("img-1-abc")
    assert ref == "store:img-1-abc"
    assert is_store_reference(ref)
    assert not is_store_reference("https://example.com/x.jpg")
    assert not is_store_reference("")
    assert parse_reference(ref) == "img-1-abc"
    with pytest.raises(ValueError):
        parse_reference("store:")


def test_resolver_caches_and_releases(store: BinaryObjectStore, registry: PreviewRegistry):
    resolver = ReferenceResolver(store)

    async def scenario():
        object_id = await store.put(_asset())
        ref = make_reference(object_id)
        first = await resolver.resolve(ref)
        second = await resolver.resolve(ref)
        many = await resolver.resolve_many([ref, "https://cdn.example.com/doc.PDF", make_reference("img-0-gone")])
        remote = await resolver.resolve_data("https://cdn.example.com/photo")
        return ref, first, second, many, remote

    ref, first, second, many, remote = asyncio.run(scenario())
    assert first == second
    assert many == [first, "https://cdn.example.com/doc.PDF", None]
    assert remote.mime_type == "image/jpeg"
    assert len(resolver) == 1
    assert registry.is_live(first)

    resolver.forget(ref)
    assert not registry.is_live(first)
    assert len(resolver) == 0


def test_resolver_release_all(store: BinaryObjectStore, registry: PreviewRegistry):
    resolver = ReferenceResolver(store)

    async def scenario():
        ids = [await store.put(_asset()) for _ in range(2)]
        return await resolver.resolve_many([make_reference(i) for i in ids])

    urls = asyncio.run(scenario())
    resolver.release_all()
    assert not any(registry.is_live(u) for u in urls)
