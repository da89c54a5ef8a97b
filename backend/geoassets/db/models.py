"""Data models for locations and tenant assets.

This module defines the value types shared by the codec, the asset store
and the orchestrator: the validated ``LocationPoint``, the
``AssetReference`` describing one stored file, the ``AssetCategory`` policy
attached to each entity field, and the per-file ``BatchItemResult``.

Example:
    Build a point through its validated factory:
        >>> from geoassets.db.models import LocationPoint
        >>> LocationPoint.from_coordinates(15.4909, 73.8278)
        LocationPoint(lat=15.4909, lng=73.8278)
        >>> LocationPoint.from_coordinates(91, 0) is None
        True

    Look up the policy for a field:
        >>> from geoassets.db.models import build_categories
        >>> categories = build_categories(max_collection_files=5)
        >>> categories["gallery"].field_name
        'gallery'
"""

from __future__ import annotations

import dataclasses
import math
import numbers
from typing import Literal

CategoryKind = Literal["single", "collection"]
ItemStatus = Literal["stored", "failed"]

SINGLE_SLOT_FIELDS: dict[str, str] = {
    "logo": "logoImage",
    "cover": "coverImage",
    "photo": "photo",
}
COLLECTION_FIELDS: dict[str, str] = {
    "gallery": "gallery",
    "menu": "foodMenuPics",
    "certificates": "certificates",
}
DOCUMENT_CATEGORIES = frozenset({"menu", "certificates"})


def _is_coordinate(value: object) -> bool:
    """Return True for finite real numbers that are not booleans."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


@dataclasses.dataclass(frozen=True)
class LocationPoint:
    """A WGS84 coordinate pair.

    Instances should be created with :meth:`from_coordinates`, which
    returns None instead of a half-valid point.

    Attributes:
        lat: Latitude in degrees, within [-90, 90].
        lng: Longitude in degrees, within [-180, 180].
    """

    lat: float
    lng: float

    @classmethod
    def from_coordinates(cls, lat: object, lng: object) -> LocationPoint | None:
        """Validate a coordinate pair and build a point from it.

        Args:
            lat: Candidate latitude.
            lng: Candidate longitude.

        Returns:
            A LocationPoint, or None if either value is not a finite
            number or lies outside its valid range.
        """
        if not (_is_coordinate(lat) and _is_coordinate(lng)):
            return None
        lat_value = float(lat)  # type: ignore[arg-type]
        lng_value = float(lng)  # type: ignore[arg-type]
        if not -90.0 <= lat_value <= 90.0:
            return None
        if not -180.0 <= lng_value <= 180.0:
            return None
        return cls(lat=lat_value, lng=lng_value)

    def as_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclasses.dataclass(frozen=True)
class UploadedFile:
    """A file submitted by a client, held in memory.

    Attributes:
        filename: Original client-side filename, used for the extension.
        content: Raw bytes.
        content_type: Declared MIME type.
    """

    filename: str
    content: bytes
    content_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")


@dataclasses.dataclass(frozen=True)
class AssetReference:
    """A stored file and where it can be reached.

    Attributes:
        tenant_id: Owning restaurant id, first path segment after the root.
        category: Asset category the file was uploaded for.
        path: Storage key, ``restaurants/{tenant}/{category}/{uuid}.{ext}``.
        public_url: URL derived from ``path`` and the bucket prefix.
        content_type: MIME type the bytes were written with.
        size_bytes: Number of bytes stored.
    """

    tenant_id: str
    category: str
    path: str
    public_url: str
    content_type: str
    size_bytes: int


@dataclasses.dataclass(frozen=True)
class AssetCategory:
    """Upload policy for one entity field.

    Attributes:
        name: Category name used in storage paths and API routes.
        field_name: Column on the owning entity holding the URL(s).
        kind: ``single`` for one-file slots, ``collection`` for ordered
            lists that uploads append to.
        max_files: Largest batch accepted in one upload.
        accepts_documents: Whether non-image files (PDFs) are allowed.
    """

    name: str
    field_name: str
    kind: CategoryKind
    max_files: int
    accepts_documents: bool = False

    @property
    def is_single(self) -> bool:
        return self.kind == "single"


@dataclasses.dataclass(frozen=True)
class BatchItemResult:
    """Outcome of writing one file of a batch."""

    filename: str
    status: ItemStatus
    reference: AssetReference | None = None
    error: str | None = None


def build_categories(max_collection_files: int) -> dict[str, AssetCategory]:
    """Build the category registry for every asset-bearing entity field.

    Args:
        max_collection_files: Batch ceiling for collection fields.

    Returns:
        Mapping from category name to its policy.
    """
    categories = {
        name: AssetCategory(
            name=name,
            field_name=field_name,
            kind="single",
            max_files=1,
        )
        for name, field_name in SINGLE_SLOT_FIELDS.items()
    }
    for name, field_name in COLLECTION_FIELDS.items():
        categories[name] = AssetCategory(
            name=name,
            field_name=field_name,
            kind="collection",
            max_files=max_collection_files,
            accepts_documents=name in DOCUMENT_CATEGORIES,
        )
    return categories
