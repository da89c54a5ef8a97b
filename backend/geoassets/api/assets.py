"""Asset upload, removal and copy endpoints for restaurant entity fields.

This module exposes the upload orchestrator and the cross-tenant copier
over HTTP. Every route is scoped to one restaurant, which is also the
tenant whose storage prefix the files are written under. Service errors
are mapped to status codes by the handlers registered in
``geoassets.main``.

Example:
    Append two photos to the gallery:
        >>> response = client.post(
        ...     "/api/restaurants/r1/assets/gallery",
        ...     files=[
        ...         ("files", ("a.jpg", open("a.jpg", "rb"), "image/jpeg")),
        ...         ("files", ("b.jpg", open("b.jpg", "rb"), "image/jpeg")),
        ...     ],
        ... )
        >>> response.json()["value"]
        >>> # Returns: ["https://.../restaurants/r1/gallery/<uuid>.jpg", ...]

    Remove one gallery member:
        >>> client.delete(
        ...     "/api/restaurants/r1/assets/gallery",
        ...     params={"url": url},
        ... )

    Copy an image owned by another restaurant:
        >>> client.post(
        ...     "/api/restaurants/r2/assets/copy",
        ...     json={"source_url": url, "category": "photo"},
        ... )
"""

from __future__ import annotations

import re
from typing import Any

import fastapi
import pydantic

from geoassets.core import config, errors
from geoassets.core import logging as core_logging
from geoassets.db import blob_store, database
from geoassets.db import models as db_models
from geoassets.services import asset_store, tenant_copier, upload_orchestrator

router = fastapi.APIRouter(prefix="/api/restaurants", tags=["assets"])

_TENANT_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
UPLOAD_CHUNK_SIZE = 1024 * 1024


class CopyRequest(pydantic.BaseModel):
    source_url: str
    category: str | None = None


async def _validate_tenant_id(restaurant_id: str) -> str:
    """Validate a restaurant id before it becomes a storage path segment.

    Only letters, digits, underscores and hyphens are allowed, so the id
    cannot add path segments or escape the tenant prefix. The id is also
    recorded for log records; the dependency is a coroutine so that the
    context variable is set in the task that runs the route.

    Args:
        restaurant_id: Path parameter naming the restaurant.

    Returns:
        Validated restaurant id.

    Raises:
        HTTPException: If the id contains invalid characters.
    """
    if not _TENANT_ID.match(restaurant_id):
        raise fastapi.HTTPException(
            status_code=400,
            detail="Invalid restaurant id",
        )

    core_logging.tenant_id_var.set(restaurant_id)
    return restaurant_id


def _get_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.RestaurantRepositoryProtocol:
    """Resolve the restaurant repository dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        RestaurantRepositoryProtocol implementation
            (PostgresRestaurantRepository in production).
    """
    return database.get_restaurant_repository(settings)


def _get_blob_store(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> blob_store.BlobStoreProtocol:
    """Resolve the blob store dependency (Supabase Storage in production)."""
    return blob_store.get_blob_store(settings)


def _get_asset_store(
    blobs: blob_store.BlobStoreProtocol = fastapi.Depends(_get_blob_store),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> asset_store.AssetStore:
    return asset_store.AssetStore(blobs, settings)


def _get_orchestrator(
    assets: asset_store.AssetStore = fastapi.Depends(_get_asset_store),  # noqa: B008
    repo: database.RestaurantRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> upload_orchestrator.UploadOrchestrator:
    return upload_orchestrator.UploadOrchestrator(assets, repo)


async def _read_upload(
    file: fastapi.UploadFile,
    settings: config.Settings,
) -> db_models.UploadedFile:
    """Read an uploaded file in chunks, stopping at its size ceiling.

    Images are bounded by the image ceiling and other files by the
    document ceiling, which may be disabled.

    Args:
        file: FastAPI UploadFile object containing the file data.
        settings: Application settings holding the ceilings.

    Returns:
        The file held in memory.

    Raises:
        ValidationError: As soon as the bytes read exceed the ceiling.
    """
    filename = file.filename or ""
    content_type = file.content_type or asset_store.DEFAULT_CONTENT_TYPE
    if content_type.lower().startswith("image/"):
        max_size: int | None = settings.max_image_size_bytes
    else:
        max_size = settings.max_document_size_bytes

    chunks: list[bytes] = []
    size = 0
    while chunk := await file.read(UPLOAD_CHUNK_SIZE):
        size += len(chunk)
        if max_size is not None and size > max_size:
            raise errors.ValidationError(
                f"{filename} exceeds the size limit of {max_size} bytes"
            )

        chunks.append(chunk)

    return db_models.UploadedFile(
        filename=filename,
        content=b"".join(chunks),
        content_type=content_type,
    )


def _field_update_body(
    update: upload_orchestrator.FieldUpdate,
) -> dict[str, Any]:
    return {
        "field": update.field_name,
        "state": str(update.state),
        "value": update.value,
    }


@router.post("/{restaurant_id}/assets/copy")
async def copy_asset(
    request: CopyRequest,
    restaurant_id: str = fastapi.Depends(_validate_tenant_id),  # noqa: B008
    assets: asset_store.AssetStore = fastapi.Depends(_get_asset_store),  # noqa: B008
) -> dict[str, str | None]:
    """Copy an asset of any restaurant into this restaurant's namespace.

    A failed copy is not an error: the response carries a null URL so the
    client can keep the rest of the record it is duplicating.

    Args:
        request: Source URL and optional target category.
        restaurant_id: Restaurant receiving the copy.
        assets: Asset store (injected via FastAPI Depends).

    Returns:
        Dictionary with the new ``url`` and ``path``, both None when the
        copy failed.
    """
    copier = tenant_copier.CrossTenantCopier(assets)
    url = copier.copy_url(request.source_url, restaurant_id, request.category)
    path = assets.urls.to_path(url) if url is not None else None
    return {"url": url, "path": path}


@router.post("/{restaurant_id}/assets/{category}")
async def upload_assets(
    category: str,
    files: list[fastapi.UploadFile] = fastapi.File(...),  # noqa: B008
    restaurant_id: str = fastapi.Depends(_validate_tenant_id),  # noqa: B008
    orchestrator: upload_orchestrator.UploadOrchestrator = fastapi.Depends(  # noqa: B008
        _get_orchestrator
    ),
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Upload files into a restaurant field.

    Single-slot categories (logo, cover, photo) take one file and replace
    the current one. Collection categories (gallery, menu, certificates)
    append the files in the order they were sent.

    Args:
        category: Asset category selecting the field.
        files: Multipart files under the ``files`` key.
        restaurant_id: Restaurant owning the field.
        orchestrator: Upload orchestrator (injected via FastAPI Depends).
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        Dictionary with the written ``field``, its terminal ``state`` and
        its new ``value``.

    Raises:
        ValidationError: If a file exceeds its size ceiling while being
            read (mapped to 400).
    """
    submitted = [await _read_upload(file, settings) for file in files]
    update = orchestrator.submit(restaurant_id, restaurant_id, category, submitted)
    return _field_update_body(update)


@router.delete("/{restaurant_id}/assets/{category}")
async def delete_asset(
    category: str,
    url: str | None = None,
    restaurant_id: str = fastapi.Depends(_validate_tenant_id),  # noqa: B008
    orchestrator: upload_orchestrator.UploadOrchestrator = fastapi.Depends(  # noqa: B008
        _get_orchestrator
    ),
) -> dict[str, Any]:
    """Delete a single-slot file, or one member of a collection.

    Args:
        category: Asset category selecting the field.
        url: Collection member to remove; ignored for single slots.
        restaurant_id: Restaurant owning the field.
        orchestrator: Upload orchestrator (injected via FastAPI Depends).

    Returns:
        Dictionary with the written ``field``, its terminal ``state`` and
        its new ``value``.

    Raises:
        HTTPException: If ``url`` is missing for a collection.
    """
    if orchestrator.is_single_slot(category):
        update = orchestrator.clear_slot(restaurant_id, category)
    elif url is None:
        raise fastapi.HTTPException(
            status_code=400,
            detail="url required for collection fields",
        )
    else:
        update = orchestrator.remove_from_collection(
            restaurant_id, category, url
        )
    return _field_update_body(update)


@router.delete("/{restaurant_id}/assets")
async def purge_assets(
    restaurant_id: str = fastapi.Depends(_validate_tenant_id),  # noqa: B008
    orchestrator: upload_orchestrator.UploadOrchestrator = fastapi.Depends(  # noqa: B008
        _get_orchestrator
    ),
) -> dict[str, list[str]]:
    """Delete every stored file a restaurant references.

    Called before the restaurant row itself is removed. The row is left
    unchanged.

    Returns:
        Dictionary with the URLs that could not be deleted.
    """
    return {"failed": orchestrator.purge_entity_assets(restaurant_id)}
