"""Persistence interfaces and backends.

This package holds the collaborators the services write through: the
restaurant repository (entity rows in PostgreSQL/PostGIS) and the blob
store (asset bytes in Supabase Storage), each with an in-memory variant
for tests and local development, plus the shared value models.

Example:
    Resolve production backends from settings:
        >>> from geoassets.db import blob_store, database
        >>> repo = database.get_restaurant_repository(settings)
        >>> blobs = blob_store.get_blob_store(settings)
"""
