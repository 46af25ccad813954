"""Generation gateway: from a decoded request body to an HTTP response.

Per request the gateway moves through::

    RECEIVED -> VALIDATING -> REJECTED (400)
                           -> CALLING_BACKEND -> STREAMING (200)
                                              -> FAILED (500)

Validation failures never reach the backend.  Backend failures never reach
the transport: they are logged and wrapped in the
:class:`~imagegate.api.models.GenerationFailure` envelope.  The backend is
called exactly once per valid request and never retried.

The image is not buffered.  :class:`ImageStreamResponse` pipes the backend
stream into the response body and closes it once the response is finished,
whether it completed, failed part-way or the client went away.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import anyio
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from imagegate.api.models import ErrorResponse, GenerationFailure
from imagegate.core.backend_base import ImageBackend, ImageStream
from imagegate.core.errors import ValidationError
from imagegate.core.options import GenerationOptions, normalize_request

logger = logging.getLogger(__name__)

GENERATION_FAILED = "Failed to generate image"


async def _pipe(stream: ImageStream) -> AsyncIterator[bytes]:
    """Yield the backend chunks unchanged, closing the stream at the end."""
    try:
        async for chunk in stream:
            yield chunk
    except Exception:
        # Headers are already sent; the body just ends here.
        logger.exception("Image stream failed after the response had started.")
    finally:
        with anyio.CancelScope(shield=True):
            await stream.aclose()


class ImageStreamResponse(StreamingResponse):
    """``StreamingResponse`` that owns an :class:`ImageStream`.

    The stream is closed after the response is sent, including when the
    client disconnects before the last chunk.
    """

    def __init__(self, stream: ImageStream) -> None:
        super().__init__(_pipe(stream), media_type=stream.media_type)
        self.image_stream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except ClientDisconnect:
            logger.warning("Client disconnected before the image was fully sent.")
        finally:
            with anyio.CancelScope(shield=True):
                await self.image_stream.aclose()


class GenerationGateway:
    """Validates requests and calls the injected backend.

    The gateway keeps no per-request state, so one instance serves every
    concurrent request.

    Attributes:
        backend: The inference capability.  Injected so tests can substitute
            a fake.
    """

    def __init__(self, backend: ImageBackend) -> None:
        self.backend = backend

    async def handle(self, body: Any) -> Response:
        """Validate *body* and, if it carries a prompt, generate the image."""
        try:
            options = normalize_request(body)
        except ValidationError as e:
            logger.warning("Rejected generation request: %s", e)
            return JSONResponse(status_code=400, content=ErrorResponse(error=str(e)).model_dump())

        return await self.generate(options)

    async def generate(self, options: GenerationOptions) -> Response:
        """Call the backend once and wrap its outcome in a response.

        Args:
            options: Already validated options; they are not checked again.

        Returns:
            A 200 ``image/png`` streaming response, or a 500 JSON envelope.
        """
        try:
            stream = await self.backend.generate(options)
        except Exception as e:
            logger.exception("Error generating image with backend '%s'.", self.backend.name)
            failure = GenerationFailure(error=GENERATION_FAILED, details=str(e))
            return JSONResponse(status_code=500, content=failure.model_dump())

        return ImageStreamResponse(stream)
