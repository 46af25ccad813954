"""Imagegate — FastAPI Application.

This module defines the FastAPI application factory, the single REST route
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
The application is stateless per request:

- **Configuration** is read from ``IMAGEGATE_*`` environment variables by
  :class:`~imagegate.core.config.ImagegateConfig`.
- **The backend** is created once in the lifespan handler (or injected into
  :func:`create_app`) and wrapped in a
  :class:`~imagegate.api.gateway.GenerationGateway` stored on ``app.state``.
- **The request body** is read raw and decoded leniently, so a malformed
  body is reported as a missing prompt instead of FastAPI's 422.

Endpoints
---------
========  ========================  ==========================================
Method    Path                      Purpose
========  ========================  ==========================================
POST      ``/api/generate-image``   Generate one image and stream it as PNG
========  ========================  ==========================================

Usage
-----
CLI (installed entry point)::

    imagegate

Direct invocation::

    python -m imagegate.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import Response

from imagegate import __version__
from imagegate.api.gateway import GenerationGateway
from imagegate.core.backend_base import ImageBackend
from imagegate.core.backends import create_backend
from imagegate.core.config import ImagegateConfig, config
from imagegate.core.options import parse_request_body

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/generate-image")
async def generate_image(request: Request) -> Response:
    """Generate an image from the JSON body and stream it back.

    Returns:
        200 with the raw ``image/png`` body, 400 ``{"error": ...}`` when the
        prompt is missing, or 500 ``{"error": ..., "details": ...}`` when the
        backend fails.
    """
    body = parse_request_body(await request.body())
    gateway: GenerationGateway = request.app.state.gateway
    return await gateway.handle(body)


def create_app(
    app_config: ImagegateConfig | None = None,
    backend: ImageBackend | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        app_config: Configuration to use.  Defaults to the global ``config``.
        backend: Backend to serve with.  When omitted, the backend named by
            ``app_config.backend`` is created at start-up.  Either way the
            application closes it on shutdown.

    Returns:
        The configured application.
    """
    settings = app_config or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        image_backend = backend if backend is not None else create_backend(settings)
        app.state.gateway = GenerationGateway(image_backend)
        logger.info("Serving with backend: %s", image_backend.get_backend_info())

        yield

        # --- Shutdown ------------------------------------------------------
        await image_backend.aclose()
        logger.info("Backend '%s' closed on shutdown.", image_backend.name)

    app = FastAPI(
        title="Imagegate",
        description="Text-to-image generation gateway.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Configure logging and launch the uvicorn ASGI server.

    Host, port and log level come from ``IMAGEGATE_SERVER_HOST``,
    ``IMAGEGATE_SERVER_PORT`` and ``IMAGEGATE_LOG_LEVEL``.  Registered as the
    ``imagegate`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "imagegate.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
