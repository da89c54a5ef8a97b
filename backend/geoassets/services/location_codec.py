"""Conversion between coordinate pairs and PostGIS geography values.

Writes go to the relational store as an EWKT literal,
``SRID=4326;POINT(<lng> <lat>)``, longitude first. Reads come back as the
hex-encoded extended WKB of a Point with SRID 4326, or, for older rows and
client payloads, as a JSON object or a plain ``{"lat", "lng"}`` mapping.

Raw values are classified once into a ``GeographyInput`` variant and each
variant is decoded by its own branch. Decoding never raises: anything that
cannot be read yields None.

Example:
    Encode a point for an update:
        >>> from geoassets.services import location_codec
        >>> location_codec.encode({"lat": 12.9, "lng": 77.6})
        'SRID=4326;POINT(77.6 12.9)'

    Decode what PostGIS returns:
        >>> location_codec.decode(
        ...     "0101000020E61000009A99999999595340CDCCCCCCCCCC2940"
        ... )
        LocationPoint(lat=12.9, lng=77.4)
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
import re
import string
import struct
from collections.abc import Mapping
from typing import TypeAlias

from geoassets.db import models as db_models

logger = logging.getLogger(__name__)

SRID = 4326
# byte order (01), wkbPoint with the SRID flag (01000020), SRID 4326 (E6100000)
EWKB_POINT_HEADER = "0101000020E6100000"
HEADER_HEX_LENGTH = len(EWKB_POINT_HEADER)
COORDINATE_HEX_LENGTH = 16

_HEX_DIGITS = frozenset(string.hexdigits)
_WRITE_LITERAL = re.compile(
    r"^\s*SRID=4326;\s*POINT\s*\(\s*(?P<lng>\S+)\s+(?P<lat>\S+)\s*\)\s*$",
    re.IGNORECASE,
)


@dataclasses.dataclass(frozen=True)
class LatLngObject:
    """A value that already carries ``lat`` and ``lng`` members."""

    lat: object
    lng: object
    source: object = None


@dataclasses.dataclass(frozen=True)
class JsonText:
    """Text that may hold a JSON object with ``lat`` and ``lng``."""

    text: str


@dataclasses.dataclass(frozen=True)
class WkbHexText:
    """Text made only of hex digits, read as EWKB."""

    text: str


GeographyInput: TypeAlias = LatLngObject | JsonText | WkbHexText


def _format_coordinate(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def encode(point: object) -> str | None:
    """Build the EWKT literal written to a geography column.

    Args:
        point: A LocationPoint or a mapping with ``lat`` and ``lng``.

    Returns:
        ``SRID=4326;POINT(<lng> <lat>)``, or None unless both coordinates
        are finite numbers within range.
    """
    if isinstance(point, db_models.LocationPoint):
        validated: db_models.LocationPoint | None = point
    elif isinstance(point, Mapping):
        validated = db_models.LocationPoint.from_coordinates(
            point.get("lat"),
            point.get("lng"),
        )
    else:
        validated = None

    if validated is None:
        return None

    lng = _format_coordinate(validated.lng)
    lat = _format_coordinate(validated.lat)
    return f"SRID={SRID};POINT({lng} {lat})"


def classify(raw: object) -> GeographyInput | None:
    """Match a raw value to the geography variant it represents.

    Args:
        raw: Whatever was read from the store or received from a client.

    Returns:
        The matching GeographyInput variant, or None for values that
        cannot hold a location (None, numbers, lists, empty text).
    """
    if isinstance(raw, db_models.LocationPoint):
        return LatLngObject(lat=raw.lat, lng=raw.lng, source=raw)
    if isinstance(raw, Mapping):
        return LatLngObject(lat=raw.get("lat"), lng=raw.get("lng"), source=raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if _HEX_DIGITS.issuperset(text):
            return WkbHexText(text=text)
        return JsonText(text=text)
    return None


def _from_object(value: LatLngObject) -> db_models.LocationPoint | None:
    if isinstance(value.source, db_models.LocationPoint):
        return value.source
    return db_models.LocationPoint.from_coordinates(value.lat, value.lng)


def _from_json(value: JsonText) -> db_models.LocationPoint | None:
    try:
        parsed = json.loads(value.text)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    return db_models.LocationPoint.from_coordinates(
        parsed.get("lat"),
        parsed.get("lng"),
    )


def _from_wkb_hex(text: str) -> db_models.LocationPoint | None:
    coordinates = text[HEADER_HEX_LENGTH:]
    if len(coordinates) < 2 * COORDINATE_HEX_LENGTH:
        return None
    try:
        raw = bytes.fromhex(coordinates[: 2 * COORDINATE_HEX_LENGTH])
    except ValueError:
        return None

    lng, lat = struct.unpack("<dd", raw)
    if math.isnan(lng) or math.isnan(lat):
        return None
    return db_models.LocationPoint.from_coordinates(lat, lng)


def decode(raw: object) -> db_models.LocationPoint | None:
    """Read a location from any of its stored or submitted forms.

    Representations are tried in a fixed order, stopping at the first
    success: an object with numeric ``lat``/``lng``, JSON text, then EWKB
    hex. The header is always skipped as 18 hex characters and both
    doubles are read little-endian; the byte-order flag is not inspected.

    Args:
        raw: A LocationPoint, a mapping, a JSON string or an EWKB hex
            string. Already-classified GeographyInput values are accepted
            too.

    Returns:
        The decoded LocationPoint, or None when nothing matches. A
        LocationPoint argument is returned unchanged.
    """
    if isinstance(raw, LatLngObject | JsonText | WkbHexText):
        value: GeographyInput | None = raw
    else:
        value = classify(raw)

    match value:
        case LatLngObject():
            return _from_object(value)
        case JsonText(text=text):
            point = _from_json(value)
            if point is not None:
                return point
            return _from_wkb_hex(text)
        case WkbHexText(text=text):
            return _from_wkb_hex(text)
        case _:
            return None


def to_wkb_hex(point: db_models.LocationPoint) -> str:
    """Encode a point the way PostGIS prints a geography(Point, 4326).

    Args:
        point: Point to encode.

    Returns:
        Upper-case hex EWKB: the fixed header followed by X then Y.
    """
    coordinates = struct.pack("<dd", point.lng, point.lat)
    return EWKB_POINT_HEADER + coordinates.hex().upper()


def parse_write_literal(literal: str) -> db_models.LocationPoint | None:
    """Parse an EWKT literal produced by :func:`encode`.

    Args:
        literal: Text such as ``SRID=4326;POINT(77.6 12.9)``.

    Returns:
        The point it describes, or None if the text is not a Point literal
        in SRID 4326 with valid coordinates.
    """
    matched = _WRITE_LITERAL.match(literal)
    if matched is None:
        return None
    try:
        lng = float(matched.group("lng"))
        lat = float(matched.group("lat"))
    except ValueError:
        logger.debug("Unreadable coordinates in literal %r", literal)
        return None
    return db_models.LocationPoint.from_coordinates(lat, lng)
