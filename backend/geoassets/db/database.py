"""Database helpers and repositories for restaurant entity fields."""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Protocol, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras
from psycopg2 import sql

from geoassets.core import errors
from geoassets.db import models as db_models
from geoassets.services import location_codec

if TYPE_CHECKING:
    from collections.abc import Mapping

    from geoassets.core import config

logger = logging.getLogger(__name__)

Entity = dict[str, object]

LOCATION_FIELD = "location"
WRITABLE_FIELDS = frozenset(
    {
        LOCATION_FIELD,
        *db_models.SINGLE_SLOT_FIELDS.values(),
        *db_models.COLLECTION_FIELDS.values(),
    }
)


def _check_writable(fields: Mapping[str, object]) -> None:
    """Reject writes to anything but asset-URL and geography columns."""
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise errors.ValidationError(
            f"Fields cannot be written here: {', '.join(sorted(unknown))}"
        )


class RestaurantRepositoryProtocol(Protocol):
    """Protocol interface for reading and updating restaurant entities.

    Implementations only write asset URL columns and the geography column,
    supporting both in-memory (testing) and PostgreSQL (production)
    backends.
    """

    def get(self, restaurant_id: str) -> Entity | None: ...

    def update_entity(
        self,
        restaurant_id: str,
        fields: Mapping[str, object],
    ) -> Entity: ...


class InMemoryRestaurantRepository(RestaurantRepositoryProtocol):
    """Simple in-memory store for tests and local development.

    Location literals are stored the way PostGIS returns them, as hex
    EWKB, so reads go through the same decoding as in production.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory repository."""
        self._store: dict[str, Entity] = {}

    def add(self, restaurant: Entity) -> Entity:
        """Add or overwrite a restaurant row.

        Args:
            restaurant: Row with at least an ``id`` key.

        Returns:
            A copy of the stored row.
        """
        self._store[str(restaurant["id"])] = copy.deepcopy(restaurant)
        return copy.deepcopy(restaurant)

    def get(self, restaurant_id: str) -> Entity | None:
        row = self._store.get(restaurant_id)
        return copy.deepcopy(row) if row is not None else None

    def update_entity(
        self,
        restaurant_id: str,
        fields: Mapping[str, object],
    ) -> Entity:
        """Apply a partial update.

        Args:
            restaurant_id: Id of the row to update.
            fields: Column values to set.

        Returns:
            The updated row.

        Raises:
            NotFoundError: If the restaurant does not exist.
            ValidationError: If a field is not writable.
        """
        _check_writable(fields)
        row = self._store.get(restaurant_id)
        if row is None:
            raise errors.NotFoundError(f"Restaurant not found: {restaurant_id}")

        for name, value in fields.items():
            if name == LOCATION_FIELD and isinstance(value, str):
                point = location_codec.parse_write_literal(value)
                if point is None:
                    raise errors.ValidationError(
                        f"Invalid geography literal: {value}"
                    )
                value = location_codec.to_wkb_hex(point)
            row[name] = copy.deepcopy(value)
        return copy.deepcopy(row)


class PostgresRestaurantRepository(RestaurantRepositoryProtocol):
    """PostgreSQL/PostGIS-backed repository for restaurant rows.

    The ``restaurants`` table is owned by the platform; this repository
    never creates or migrates it. The geography column is written from an
    EWKT literal and read back as PostGIS prints it, hex EWKB.
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize repository with database settings.

        Args:
            settings: Application settings containing database connection URL.
        """
        self.settings = settings

    def _connection(self) -> psycopg2.extensions.connection:
        return psycopg2.connect(
            self.settings.database_url,
            cursor_factory=psycopg2.extras.RealDictCursor,
        )

    def get(self, restaurant_id: str) -> Entity | None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM restaurants WHERE id = %s", (restaurant_id,))
            row = cur.fetchone()
            if row is None:
                return None
            else:
                return dict(cast("dict[str, object]", row))

    def update_entity(
        self,
        restaurant_id: str,
        fields: Mapping[str, object],
    ) -> Entity:
        _check_writable(fields)
        if not fields:
            existing = self.get(restaurant_id)
            if existing is None:
                raise errors.NotFoundError(
                    f"Restaurant not found: {restaurant_id}"
                )
            return existing

        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                self.build_update(fields),
                {**fields, "restaurant_id": restaurant_id},
            )
            row = cur.fetchone()
            conn.commit()
        if row is None:
            raise errors.NotFoundError(f"Restaurant not found: {restaurant_id}")
        logger.info(
            "Updated restaurant %s fields %s",
            restaurant_id,
            ", ".join(sorted(fields)),
        )
        return dict(cast("dict[str, object]", row))

    @staticmethod
    def build_update(fields: Mapping[str, object]) -> sql.Composed:
        """Compose a parameterized UPDATE for the given columns.

        Column names are quoted identifiers (the platform uses camelCase
        columns) and values are named placeholders.

        Args:
            fields: Columns to set; keys must be writable fields.

        Returns:
            An UPDATE ... RETURNING * statement keyed on ``restaurant_id``.
        """
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder(name))
            for name in sorted(fields)
        )
        return sql.SQL(
            "UPDATE restaurants SET {} WHERE id = %(restaurant_id)s RETURNING *"
        ).format(assignments)


def get_restaurant_repository(
    settings: config.Settings,
) -> RestaurantRepositoryProtocol:
    """Factory function to create a restaurant repository.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgresRestaurantRepository instance for production use.
    """
    return PostgresRestaurantRepository(settings)
