"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that configures
logging, sets up CORS middleware, includes the asset and location routers,
maps service errors to HTTP responses, and exposes a health check endpoint.

Example:
    The application can be run with uvicorn:
        $ uvicorn geoassets.main:app --reload

    Or imported and used programmatically:
        >>> from geoassets.main import app
        >>> # Use app in ASGI server
"""

import fastapi
from fastapi import responses
from fastapi.middleware import cors

from geoassets.api import assets, locations
from geoassets.core import config, errors
from geoassets.core import logging as core_logging

# most specific first; PartialBatchFailure is handled separately
ERROR_STATUS_CODES: list[tuple[type[errors.AssetError], int]] = [
    (errors.ValidationError, 400),
    (errors.InvalidReferenceError, 400),
    (errors.NotFoundError, 404),
    (errors.TransientIOError, 502),
]


async def _asset_error_handler(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    """Translate a service error into a JSON error response.

    Partial batch failures answer 207 with one entry per submitted file so
    the client can retry only the failed ones.
    """
    if isinstance(exc, errors.PartialBatchFailure):
        return responses.JSONResponse(
            status_code=207,
            content={
                "detail": str(exc),
                "items": [
                    {
                        "filename": item.filename,
                        "status": item.status,
                        "url": item.reference.public_url
                        if item.reference is not None
                        else None,
                        "error": item.error,
                    }
                    for item in exc.items
                ],
            },
        )

    status_code = next(
        (code for kind, code in ERROR_STATUS_CODES if isinstance(exc, kind)),
        500,
    )
    content: dict[str, str] = {"detail": str(exc)}
    if isinstance(exc, errors.ReplaceInterruptedError):
        content["deleted_url"] = exc.deleted_url
    return responses.JSONResponse(status_code=status_code, content=content)


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Configures logging, sets up CORS middleware, includes the asset and
    location routers, registers the service error handler and adds a
    health check endpoint.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    core_logging.configure_logging(settings.log_level)
    app = fastapi.FastAPI(title="Restaurant Geo Assets", version="0.1.0")

    app.include_router(assets.router)
    app.include_router(locations.router)
    app.add_exception_handler(errors.AssetError, _asset_error_handler)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
