"""Blob store backends holding tenant asset bytes.

The services only rely on path-addressed content plus a rule for deriving
public URLs, expressed by ``BlobStoreProtocol``. Two implementations are
provided: an in-memory store for tests and local development, and a
Supabase Storage store for production.

Example:
    Use the in-memory store:
        >>> store = InMemoryBlobStore("https://h/storage/v1/object/public/b/")
        >>> store.put("restaurants/r1/logo/a.png", b"png", "image/png")
        'https://h/storage/v1/object/public/b/restaurants/r1/logo/a.png'
        >>> store.get("restaurants/r1/logo/a.png")
        b'png'
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import supabase

from geoassets.core import errors
from geoassets.services import asset_paths

if TYPE_CHECKING:
    from geoassets.core import config

logger = logging.getLogger(__name__)


class BlobStoreProtocol(Protocol):
    """Protocol interface for path-addressed binary storage."""

    def put(self, path: str, data: bytes, content_type: str) -> str: ...

    def get(self, path: str) -> bytes: ...

    def remove(self, path: str) -> None: ...

    def content_type(self, path: str) -> str | None: ...

    def public_url(self, path: str) -> str: ...


class InMemoryBlobStore(BlobStoreProtocol):
    """Dictionary-backed store for tests and local development.

    Objects are lost when the process exits. Writing to an existing path
    fails, matching the production store with upsert disabled.
    """

    def __init__(self, public_prefix: str) -> None:
        """Initialize an empty store.

        Args:
            public_prefix: Prefix public URLs are built from.
        """
        self.objects: dict[str, tuple[bytes, str]] = {}
        self._urls = asset_paths.AssetUrlResolver(public_prefix)

    def put(self, path: str, data: bytes, content_type: str) -> str:
        if path in self.objects:
            raise errors.TransientIOError(f"Object already exists: {path}")
        self.objects[path] = (bytes(data), content_type)
        return self.public_url(path)

    def get(self, path: str) -> bytes:
        try:
            return self.objects[path][0]
        except KeyError:
            raise errors.NotFoundError(f"Object not found: {path}") from None

    def content_type(self, path: str) -> str | None:
        try:
            return self.objects[path][1]
        except KeyError:
            raise errors.NotFoundError(f"Object not found: {path}") from None

    def remove(self, path: str) -> None:
        if self.objects.pop(path, None) is None:
            raise errors.NotFoundError(f"Object not found: {path}")

    def public_url(self, path: str) -> str:
        return self._urls.public_url(path)


def _is_not_found(exc: Exception) -> bool:
    """Tell a missing-object response apart from other storage failures."""
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if str(status) == "404":
        return True
    return "not found" in str(exc).lower()


class SupabaseBlobStore(BlobStoreProtocol):
    """Supabase Storage bucket used as the production blob store.

    Each call is bounded by ``Settings.storage_timeout_seconds``. Storage
    client errors are translated into ``NotFoundError`` or
    ``TransientIOError``; nothing is retried here.
    """

    def __init__(
        self,
        settings: config.Settings,
        client: Any | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            settings: Application settings naming the project and bucket.
            client: Pre-built Supabase client. Created from settings when
                omitted.
        """
        self.settings = settings
        if client is None:
            client = supabase.create_client(
                settings.storage_origin,
                settings.supabase_service_key,
                options=supabase.ClientOptions(
                    storage_client_timeout=int(settings.storage_timeout_seconds),
                ),
            )
        self._client = client
        self._urls = asset_paths.AssetUrlResolver(settings.public_object_prefix)

    def _bucket(self) -> Any:
        return self._client.storage.from_(self.settings.storage_bucket)

    def put(self, path: str, data: bytes, content_type: str) -> str:
        try:
            self._bucket().upload(
                path,
                data,
                {"content-type": content_type, "upsert": "false"},
            )
        except Exception as exc:
            logger.error("Storage upload of %s failed: %s", path, exc)
            raise errors.TransientIOError(
                f"Failed to upload {path}: {exc}"
            ) from exc
        return self.public_url(path)

    def get(self, path: str) -> bytes:
        try:
            return bytes(self._bucket().download(path))
        except Exception as exc:
            if _is_not_found(exc):
                raise errors.NotFoundError(f"Object not found: {path}") from exc
            logger.error("Storage download of %s failed: %s", path, exc)
            raise errors.TransientIOError(
                f"Failed to download {path}: {exc}"
            ) from exc

    def remove(self, path: str) -> None:
        try:
            removed = self._bucket().remove([path])
        except Exception as exc:
            logger.error("Storage removal of %s failed: %s", path, exc)
            raise errors.TransientIOError(
                f"Failed to remove {path}: {exc}"
            ) from exc
        if not removed:
            raise errors.NotFoundError(f"Object not found: {path}")

    def content_type(self, path: str) -> str | None:
        """Return the MIME type the object was uploaded with.

        Looks the object up in a listing of its folder; the storage service
        reports the type as ``metadata.mimetype``.

        Returns:
            The stored MIME type, or None if the listing carries none.

        Raises:
            NotFoundError: If the folder has no object with that name.
            TransientIOError: If the listing failed.
        """
        folder, _, name = path.rpartition("/")
        try:
            entries = self._bucket().list(folder, {"search": name})
        except Exception as exc:
            logger.error("Storage listing of %s failed: %s", folder, exc)
            raise errors.TransientIOError(
                f"Failed to read metadata of {path}: {exc}"
            ) from exc

        for entry in entries or []:
            if entry.get("name") == name:
                metadata = entry.get("metadata") or {}
                return metadata.get("mimetype")
        raise errors.NotFoundError(f"Object not found: {path}")

    def public_url(self, path: str) -> str:
        return self._urls.public_url(path)


def get_blob_store(settings: config.Settings) -> BlobStoreProtocol:
    """Factory function to create the blob store.

    Args:
        settings: Application settings for the storage project.

    Returns:
        SupabaseBlobStore instance for production use.
    """
    return SupabaseBlobStore(settings)
