"""Tests for the in-memory and Supabase blob stores.

The Supabase store is exercised against a fake client implementing the
small part of the storage API it uses, so no network access is needed.
"""

from __future__ import annotations

from typing import Any

import pytest

from geoassets.core import config, errors
from geoassets.db import blob_store

PREFIX = "https://h/storage/v1/object/public/assets/"


class StorageApiError(Exception):
    """Mimics the storage client's error carrying an HTTP status."""

    def __init__(self, message: str, status: int | str) -> None:
        super().__init__(message)
        self.status = status


class FakeBucket:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.options: dict[str, dict[str, str]] = {}
        self.fail_with: Exception | None = None

    def upload(self, path: str, data: bytes, options: dict[str, str]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.objects[path] = data
        self.options[path] = options

    def download(self, path: str) -> bytes:
        if self.fail_with is not None:
            raise self.fail_with
        if path not in self.objects:
            raise StorageApiError("Object not found", 404)
        return self.objects[path]

    def list(self, folder: str, options: dict[str, str]) -> list[dict[str, Any]]:
        if self.fail_with is not None:
            raise self.fail_with
        entries = []
        for path, options_used in self.options.items():
            parent, _, name = path.rpartition("/")
            if parent == folder and options["search"] in name:
                entries.append(
                    {
                        "name": name,
                        "metadata": {"mimetype": options_used["content-type"]},
                    }
                )
        return entries

    def remove(self, paths: list[str]) -> list[dict[str, Any]]:
        if self.fail_with is not None:
            raise self.fail_with
        return [{"name": p} for p in paths if self.objects.pop(p, None)]


class FakeClient:
    def __init__(self) -> None:
        self.bucket = FakeBucket()
        self.storage = self
        self.bucket_names: list[str] = []

    def from_(self, name: str) -> FakeBucket:
        self.bucket_names.append(name)
        return self.bucket


def _supabase_store() -> tuple[blob_store.SupabaseBlobStore, FakeClient]:
    settings = config.Settings(supabase_url="https://h", storage_bucket="assets")
    client = FakeClient()
    return blob_store.SupabaseBlobStore(settings, client=client), client


def test_in_memory_put_get_remove() -> None:
    store = blob_store.InMemoryBlobStore(PREFIX)
    url = store.put("restaurants/r1/logo/a.png", b"png", "image/png")
    assert url == PREFIX + "restaurants/r1/logo/a.png"
    assert store.get("restaurants/r1/logo/a.png") == b"png"
    assert store.content_type("restaurants/r1/logo/a.png") == "image/png"
    store.remove("restaurants/r1/logo/a.png")
    assert store.objects == {}


def test_in_memory_missing_objects() -> None:
    store = blob_store.InMemoryBlobStore(PREFIX)
    with pytest.raises(errors.NotFoundError):
        store.get("restaurants/r1/logo/none.png")
    with pytest.raises(errors.NotFoundError):
        store.remove("restaurants/r1/logo/none.png")


def test_in_memory_refuses_overwrite() -> None:
    store = blob_store.InMemoryBlobStore(PREFIX)
    store.put("restaurants/r1/logo/a.png", b"v1", "image/png")
    with pytest.raises(errors.TransientIOError):
        store.put("restaurants/r1/logo/a.png", b"v2", "image/png")
    assert store.get("restaurants/r1/logo/a.png") == b"v1"


def test_supabase_put_uses_content_type_without_upsert() -> None:
    store, client = _supabase_store()
    url = store.put("restaurants/r1/menu/a.pdf", b"%PDF", "application/pdf")
    assert url == PREFIX + "restaurants/r1/menu/a.pdf"
    assert client.bucket_names == ["assets"]
    assert client.bucket.options["restaurants/r1/menu/a.pdf"] == {
        "content-type": "application/pdf",
        "upsert": "false",
    }


def test_supabase_get_and_remove() -> None:
    store, client = _supabase_store()
    client.bucket.objects["restaurants/r1/logo/a.png"] = b"png"
    assert store.get("restaurants/r1/logo/a.png") == b"png"
    store.remove("restaurants/r1/logo/a.png")
    assert client.bucket.objects == {}


def test_supabase_missing_object() -> None:
    store, _ = _supabase_store()
    with pytest.raises(errors.NotFoundError):
        store.get("restaurants/r1/logo/missing.png")
    with pytest.raises(errors.NotFoundError):
        store.remove("restaurants/r1/logo/missing.png")


def test_supabase_transport_errors_are_transient() -> None:
    store, client = _supabase_store()
    client.bucket.fail_with = StorageApiError("Service unavailable", 503)
    with pytest.raises(errors.TransientIOError):
        store.put("restaurants/r1/logo/a.png", b"png", "image/png")
    with pytest.raises(errors.TransientIOError):
        store.get("restaurants/r1/logo/a.png")
    with pytest.raises(errors.TransientIOError):
        store.remove("restaurants/r1/logo/a.png")


def test_supabase_content_type_from_listing() -> None:
    store, client = _supabase_store()
    store.put("restaurants/r1/photo/scan", b"jpeg", "image/jpeg")
    assert store.content_type("restaurants/r1/photo/scan") == "image/jpeg"
    with pytest.raises(errors.NotFoundError):
        store.content_type("restaurants/r1/photo/other")
    client.bucket.fail_with = StorageApiError("Service unavailable", 503)
    with pytest.raises(errors.TransientIOError):
        store.content_type("restaurants/r1/photo/scan")
