"""Restaurant location endpoints.

Coordinates arrive from the map picker as ``{"lat", "lng"}`` and are
written to the geography column as an EWKT literal. Reads decode whatever
the column holds (hex EWKB, or legacy JSON) back into coordinates; a value
that cannot be decoded is returned as null rather than failing the page.

Example:
    Set and read a location:
        >>> client.put(
        ...     "/api/restaurants/r1/location",
        ...     json={"lat": 15.4909, "lng": 73.8278},
        ... )
        >>> client.get("/api/restaurants/r1/location").json()
        >>> # Returns: {"location": {"lat": 15.4909, "lng": 73.8278}}
"""

from __future__ import annotations

import logging
from typing import Any

import fastapi

from geoassets.api import assets as api_assets
from geoassets.core import errors
from geoassets.db import database
from geoassets.services import location_codec

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/restaurants", tags=["locations"])


def _location_body(value: object) -> dict[str, dict[str, float] | None]:
    point = location_codec.decode(value)
    if point is None and value is not None:
        logger.warning("Stored location could not be decoded: %r", value)
    return {"location": point.as_dict() if point is not None else None}


@router.put("/{restaurant_id}/location")
async def set_location(
    payload: dict[str, Any] = fastapi.Body(...),  # noqa: B008
    restaurant_id: str = fastapi.Depends(api_assets._validate_tenant_id),  # noqa: B008
    repo: database.RestaurantRepositoryProtocol = fastapi.Depends(  # noqa: B008
        api_assets._get_repo
    ),
) -> dict[str, dict[str, float] | None]:
    """Write a restaurant's coordinates to its geography column.

    Args:
        payload: JSON object with numeric ``lat`` and ``lng``.
        restaurant_id: Restaurant to update.
        repo: Restaurant repository (injected via FastAPI Depends).

    Returns:
        The stored location, decoded back from the column.

    Raises:
        ValidationError: If the coordinates are missing, not numbers, or
            out of range (mapped to 400).
    """
    literal = location_codec.encode(payload)
    if literal is None:
        raise errors.ValidationError("lat and lng must be valid coordinates")

    entity = repo.update_entity(
        restaurant_id,
        {database.LOCATION_FIELD: literal},
    )
    return _location_body(entity.get(database.LOCATION_FIELD))


@router.get("/{restaurant_id}/location")
async def get_location(
    restaurant_id: str = fastapi.Depends(api_assets._validate_tenant_id),  # noqa: B008
    repo: database.RestaurantRepositoryProtocol = fastapi.Depends(  # noqa: B008
        api_assets._get_repo
    ),
) -> dict[str, dict[str, float] | None]:
    """Return a restaurant's coordinates.

    Raises:
        HTTPException: If the restaurant is not found (404 status code).
    """
    entity = repo.get(restaurant_id)
    if entity is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Restaurant not found",
        )

    return _location_body(entity.get(database.LOCATION_FIELD))
