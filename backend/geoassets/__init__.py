"""Backend core for restaurant locations and tenant-scoped assets.

This package holds the parts of the restaurant-discovery platform that do
more than CRUD: the codec between coordinate pairs and the PostGIS
geography encoding, and the lifecycle of the images and PDFs each
restaurant stores in a shared Supabase bucket.

- Encodes coordinates as EWKT for writes and decodes hex EWKB or legacy
  JSON on reads, never failing a read on bad data
- Builds tenant-prefixed, collision-free storage paths and refuses to
  delete anything outside the managed bucket
- Validates upload batches before any write and reports partial failures
  per file
- Replaces single-slot files, appends to collections and copies assets
  between restaurants

See the module docstrings for details on architecture and usage.
"""
