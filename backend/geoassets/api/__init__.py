"""API router subpackage for the restaurant geo-assets backend.

This package organizes REST endpoints by feature domain. Each module
exposes its own APIRouter for composition in the application's main
FastAPI instance.

Submodules:
    - assets: Upload, delete, purge and cross-restaurant copy of files
      held in restaurant fields.
    - locations: Writing and reading restaurant coordinates.

Dependencies (repository, blob store, asset store, orchestrator) are
resolved through FastAPI Depends so tests can swap in in-memory backends
with ``app.dependency_overrides``.
"""
