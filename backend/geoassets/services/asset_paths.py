"""Storage keys and public URLs for tenant assets.

Every asset lives at ``restaurants/{tenant_id}/{category}/{uuid}.{ext}``
inside one shared public bucket. The tenant segment is the only thing
partitioning tenants: the bucket does not stop a caller from writing outside
its own prefix, so tenant ids must be validated before they reach this
module (see ``geoassets.api.assets._validate_tenant_id``).

Public URLs are only ever parsed here, by ``AssetUrlResolver``, which also
enforces that a URL belongs to the managed bucket before anything
destructive is done with it.

Example:
    Build a path and its URL:
        >>> builder = AssetPathBuilder()
        >>> path = builder.build_path("r1", "gallery", "Patio.JPG")
        >>> path.startswith("restaurants/r1/gallery/") and path.endswith(".jpg")
        True
        >>> resolver = AssetUrlResolver(
        ...     "https://x.supabase.co/storage/v1/object/public/assets/"
        ... )
        >>> resolver.to_path(resolver.public_url(path)) == path
        True
"""

from __future__ import annotations

import pathlib
import urllib.parse
import uuid
from collections.abc import Callable

from geoassets.core import errors

ROOT_SEGMENT = "restaurants"
DEFAULT_EXTENSION = "bin"


def file_extension(filename: str) -> str:
    """Return the lower-cased suffix of a filename without its dot.

    Args:
        filename: Client-side or storage filename.

    Returns:
        The extension, or ``bin`` when the name has none.
    """
    suffix = pathlib.PurePosixPath(filename).suffix
    return suffix[1:].lower() if len(suffix) > 1 else DEFAULT_EXTENSION


class AssetPathBuilder:
    """Generate collision-free, tenant-prefixed storage keys."""

    def __init__(
        self,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ) -> None:
        """Initialize the builder.

        Args:
            id_factory: Source of random ids; uuid4 draws from os.urandom.
        """
        self._id_factory = id_factory

    def build_path(
        self,
        tenant_id: str,
        category: str,
        original_filename: str,
    ) -> str:
        """Build a fresh storage key for a file.

        The tenant id is inserted verbatim, never decoded or normalized.

        Args:
            tenant_id: Owning restaurant id, already validated.
            category: Asset category, e.g. ``gallery``.
            original_filename: Name the extension is taken from.

        Returns:
            ``restaurants/{tenant_id}/{category}/{uuid}.{ext}``
        """
        extension = file_extension(original_filename)
        return (
            f"{ROOT_SEGMENT}/{tenant_id}/{category}/"
            f"{self._id_factory()}.{extension}"
        )


def path_category(path: str) -> str | None:
    """Return the category segment of a managed path, if it has one.

    Paths written before categories were introduced look like
    ``restaurants/{tenant}/{file}`` and have no category segment.
    """
    parts = path.split("/")
    if len(parts) == 4 and parts[0] == ROOT_SEGMENT:
        return parts[2]
    return None


class AssetUrlResolver:
    """Map storage paths to public URLs and back for one bucket."""

    def __init__(self, public_prefix: str) -> None:
        """Initialize the resolver.

        Args:
            public_prefix: ``<origin>/storage/v1/object/public/<bucket>/``.
        """
        self.public_prefix = (
            public_prefix if public_prefix.endswith("/") else public_prefix + "/"
        )

    def public_url(self, path: str) -> str:
        return self.public_prefix + urllib.parse.quote(path, safe="/")

    def to_path(self, public_url: str) -> str:
        """Extract the storage path from a public URL of the bucket.

        Args:
            public_url: URL previously produced by :meth:`public_url` or by
                the storage service.

        Returns:
            The percent-decoded storage path.

        Raises:
            InvalidReferenceError: If the URL is outside the bucket prefix,
                names no object, or climbs out of it with ``..``.
        """
        if not public_url.startswith(self.public_prefix):
            raise errors.InvalidReferenceError(
                f"URL is not inside the managed bucket: {public_url}"
            )

        remainder = urllib.parse.urlsplit(
            public_url[len(self.public_prefix):]
        ).path
        path = urllib.parse.unquote(remainder)
        segments = path.split("/")
        if not path or any(segment in ("", ".", "..") for segment in segments):
            raise errors.InvalidReferenceError(
                f"URL does not name a stored object: {public_url}"
            )
        return path

    def is_managed(self, public_url: str) -> bool:
        try:
            self.to_path(public_url)
        except errors.InvalidReferenceError:
            return False
        return True
