"""Tenant-scoped asset lifecycle on top of a blob store.

``AssetStore`` validates file batches against the category policy, writes
them under the tenant's prefix, deletes only objects inside the managed
bucket, replaces files by deleting the old object and storing a new one,
and copies objects from one tenant's namespace into another's.

None of these operations is transactional:

- a batch that fails midway keeps the files already written and reports
  them through ``PartialBatchFailure``;
- ``replace`` deletes first, so a failed upload leaves nothing behind and
  raises ``ReplaceInterruptedError``;
- two concurrent replaces of one slot both succeed against the store and
  the entity keeps whichever URL was written last, orphaning the other
  object.

Example:
    Upload a gallery batch with the in-memory store:
        >>> from geoassets.core import config
        >>> from geoassets.db import blob_store, models
        >>> settings = config.Settings()
        >>> store = AssetStore(
        ...     blob_store.InMemoryBlobStore(settings.public_object_prefix),
        ...     settings,
        ... )
        >>> refs = store.upload(
        ...     "r1",
        ...     [models.UploadedFile("a.jpg", b"...", "image/jpeg")],
        ...     "gallery",
        ... )
        >>> refs[0].path.startswith("restaurants/r1/gallery/")
        True
"""

from __future__ import annotations

import logging
import mimetypes
from typing import TYPE_CHECKING

from geoassets.core import errors
from geoassets.db import models as db_models
from geoassets.services import asset_paths

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geoassets.core import config
    from geoassets.db import blob_store

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_COPY_CATEGORY = "photo"


def guess_content_type(path: str) -> str:
    """Guess a MIME type from a path's extension."""
    content_type, _ = mimetypes.guess_type(path)
    return content_type or DEFAULT_CONTENT_TYPE


class AssetStore:
    """Upload, delete, replace and copy tenant assets.

    Attributes:
        categories: Policy per category name.
        urls: Resolver bound to the managed bucket.
    """

    def __init__(
        self,
        blobs: blob_store.BlobStoreProtocol,
        settings: config.Settings,
        path_builder: asset_paths.AssetPathBuilder | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            blobs: Backend holding the bytes.
            settings: Size ceilings, collection limit and bucket prefix.
            path_builder: Key generator; a uuid4-based one by default.
        """
        self._blobs = blobs
        self._settings = settings
        self._paths = path_builder or asset_paths.AssetPathBuilder()
        self.categories = db_models.build_categories(
            settings.max_collection_files
        )
        self.urls = asset_paths.AssetUrlResolver(settings.public_object_prefix)

    def category(self, name: str) -> db_models.AssetCategory:
        """Look up a category policy.

        Raises:
            ValidationError: If the category is unknown.
        """
        try:
            return self.categories[name]
        except KeyError:
            raise errors.ValidationError(
                f"Unknown asset category: {name}"
            ) from None

    def validate_batch(
        self,
        files: Sequence[db_models.UploadedFile],
        category: str,
    ) -> db_models.AssetCategory:
        """Check a whole batch against the category policy.

        Args:
            files: Files submitted together.
            category: Target category name.

        Returns:
            The category policy.

        Raises:
            ValidationError: On an empty batch, too many files, an image
                above the image ceiling, a document above the document
                ceiling, or a document sent to an image-only category.
        """
        policy = self.category(category)
        if not files:
            raise errors.ValidationError("No files submitted")
        if len(files) > policy.max_files:
            raise errors.ValidationError(
                f"Maximum {policy.max_files} files allowed for {category}, "
                f"got {len(files)}"
            )

        for file in files:
            if file.is_image:
                if file.size_bytes > self._settings.max_image_size_bytes:
                    raise errors.ValidationError(
                        f"{file.filename} exceeds the image size limit of "
                        f"{self._settings.max_image_size_bytes} bytes"
                    )
                continue

            if not policy.accepts_documents:
                raise errors.ValidationError(
                    f"{file.filename} is not an image ({file.content_type}); "
                    f"{category} only accepts images"
                )
            ceiling = self._settings.max_document_size_bytes
            if ceiling is not None and file.size_bytes > ceiling:
                raise errors.ValidationError(
                    f"{file.filename} exceeds the document size limit of "
                    f"{ceiling} bytes"
                )
        return policy

    def _store(
        self,
        tenant_id: str,
        category: str,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> db_models.AssetReference:
        path = self._paths.build_path(tenant_id, category, filename)
        public_url = self._blobs.put(path, data, content_type)
        logger.info("Stored %s (%d bytes, %s)", path, len(data), content_type)
        return db_models.AssetReference(
            tenant_id=tenant_id,
            category=category,
            path=path,
            public_url=public_url,
            content_type=content_type,
            size_bytes=len(data),
        )

    def upload(
        self,
        tenant_id: str,
        files: Sequence[db_models.UploadedFile],
        category: str,
    ) -> list[db_models.AssetReference]:
        """Validate a batch, then write each file under the tenant prefix.

        Args:
            tenant_id: Owning restaurant id, already validated.
            files: Files submitted together.
            category: Target category name.

        Returns:
            References in submission order.

        Raises:
            ValidationError: If the batch breaks the policy. Nothing is
                written in that case.
            PartialBatchFailure: If some writes failed after others
                succeeded. Written files stay in the store.
            TransientIOError: If every write failed.
        """
        self.validate_batch(files, category)

        items: list[db_models.BatchItemResult] = []
        first_error: errors.TransientIOError | None = None
        for file in files:
            try:
                reference = self._store(
                    tenant_id,
                    category,
                    file.filename,
                    file.content,
                    file.content_type,
                )
            except errors.TransientIOError as exc:
                logger.warning("Upload of %s failed: %s", file.filename, exc)
                first_error = first_error or exc
                items.append(
                    db_models.BatchItemResult(
                        filename=file.filename,
                        status="failed",
                        error=str(exc),
                    )
                )
            else:
                items.append(
                    db_models.BatchItemResult(
                        filename=file.filename,
                        status="stored",
                        reference=reference,
                    )
                )

        if first_error is not None:
            if any(item.status == "stored" for item in items):
                raise errors.PartialBatchFailure(items)
            raise first_error
        return [item.reference for item in items if item.reference is not None]

    def get(self, public_url: str) -> bytes:
        """Download the bytes behind a public URL of the bucket.

        Raises:
            InvalidReferenceError: If the URL is outside the bucket.
            NotFoundError: If the object does not exist.
        """
        return self._blobs.get(self.urls.to_path(public_url))

    def delete(self, public_url: str) -> None:
        """Remove the object behind a public URL of the bucket.

        Args:
            public_url: URL previously returned by an upload.

        Raises:
            InvalidReferenceError: If the URL is outside the bucket; no
                removal is attempted.
            NotFoundError: If the object does not exist.
        """
        path = self.urls.to_path(public_url)
        self._blobs.remove(path)
        logger.info("Deleted %s", path)

    def replace(
        self,
        old_url: str,
        new_file: db_models.UploadedFile,
        tenant_id: str,
        category: str,
    ) -> db_models.AssetReference:
        """Delete an asset, then upload its replacement.

        The new file is validated before the old one is deleted, so a
        policy violation leaves the slot untouched.

        Args:
            old_url: Public URL currently held by the slot.
            new_file: Replacement file.
            tenant_id: Owning restaurant id.
            category: Category of the slot.

        Returns:
            Reference to the new asset.

        Raises:
            ValidationError: If the new file breaks the policy.
            InvalidReferenceError: If ``old_url`` is outside the bucket.
            NotFoundError: If the old object does not exist.
            ReplaceInterruptedError: If the delete succeeded but the upload
                failed; the slot has to be treated as empty.
        """
        self.validate_batch([new_file], category)
        self.delete(old_url)
        try:
            [reference] = self.upload(tenant_id, [new_file], category)
        except errors.TransientIOError as exc:
            logger.warning(
                "Replacement of %s failed after delete: %s",
                old_url,
                exc,
            )
            raise errors.ReplaceInterruptedError(
                f"{old_url} was deleted but {new_file.filename} "
                f"could not be stored: {exc}",
                deleted_url=old_url,
            ) from exc
        return reference

    def _source_content_type(self, path: str) -> str:
        """Return the stored type of an object, else a guess from its path."""
        try:
            content_type = self._blobs.content_type(path)
        except errors.AssetError as exc:
            logger.warning("No stored content type for %s: %s", path, exc)
            content_type = None
        return content_type or guess_content_type(path)

    def copy_across_tenant(
        self,
        source_url: str,
        target_tenant_id: str,
        category: str | None = None,
    ) -> db_models.AssetReference | None:
        """Copy an asset into another tenant's namespace.

        Failures return None instead of raising so that duplicating a
        catalog item only loses the asset, not the whole record. The
        source object is never modified.

        Args:
            source_url: Public URL of the asset to copy.
            target_tenant_id: Tenant receiving the copy.
            category: Category for the new path. Defaults to the source
                path's category, or ``photo`` for paths without one.

        Returns:
            Reference to the copy, or None if the source URL is not in the
            bucket, the download failed, or the upload failed.
        """
        try:
            source_path = self.urls.to_path(source_url)
        except errors.InvalidReferenceError as exc:
            logger.warning("Cannot copy foreign asset: %s", exc)
            return None

        try:
            data = self._blobs.get(source_path)
        except (errors.NotFoundError, errors.TransientIOError) as exc:
            logger.warning("Failed to download %s for copy: %s", source_path, exc)
            return None

        target_category = (
            category or asset_paths.path_category(source_path)
            or DEFAULT_COPY_CATEGORY
        )
        try:
            reference = self._store(
                target_tenant_id,
                target_category,
                source_path.rsplit("/", 1)[-1],
                data,
                self._source_content_type(source_path),
            )
        except errors.TransientIOError as exc:
            logger.warning(
                "Failed to upload copy of %s for %s: %s",
                source_path,
                target_tenant_id,
                exc,
            )
            return None

        logger.info("Copied %s to %s", source_path, reference.path)
        return reference
