"""Cloudflare Workers AI backend.

Calls the hosted text-to-image model through the Workers AI REST API::

    POST {workers_ai_base_url}/accounts/{account_id}/ai/run/{model}
    Authorization: Bearer {api_token}
    Content-Type: application/json

    {"prompt": "...", "height": 1024, ...}

Image models such as ``@cf/bytedance/stable-diffusion-xl-lightning`` answer
with the raw PNG body, which is streamed back chunk by chunk without being
buffered.  Models that answer with the JSON envelope
``{"success": true, "result": {"image": "<base64>"}}`` are decoded into an
in-memory stream.  Any non-2xx status, or an envelope with
``success: false``, raises :class:`~imagegate.core.errors.BackendError`.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging

import httpx

from imagegate.core.backend_base import ImageBackend, ImageStream, backend_registry
from imagegate.core.config import ImagegateConfig
from imagegate.core.errors import BackendError
from imagegate.core.options import GenerationOptions

logger = logging.getLogger(__name__)


class WorkersAIBackend(ImageBackend):
    """Backend that forwards generations to Cloudflare Workers AI.

    The ``httpx.AsyncClient`` is created on first use and shared by every
    request; it holds no per-request state.  A client may be injected (tests
    pass one built on ``httpx.MockTransport``), in which case the backend
    does not close it.
    """

    name = "workers-ai"
    description = "Hosted text-to-image inference via the Cloudflare Workers AI REST API"

    def __init__(self, config: ImagegateConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        self._client = client
        self._owns_client = client is None

    @property
    def model_id(self) -> str:
        return self.config.workers_ai_model

    @property
    def endpoint(self) -> str:
        base_url = self.config.workers_ai_base_url.rstrip("/")
        return f"{base_url}/accounts/{self.config.cloudflare_account_id}/ai/run/{self.model_id}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.request_timeout))
        return self._client

    async def generate(self, options: GenerationOptions) -> ImageStream:
        if not self.config.cloudflare_account_id or not self.config.cloudflare_api_token:
            raise BackendError(
                "Workers AI is not configured: set IMAGEGATE_CLOUDFLARE_ACCOUNT_ID "
                "and IMAGEGATE_CLOUDFLARE_API_TOKEN"
            )

        client = self._get_client()
        request = client.build_request(
            "POST",
            self.endpoint,
            json=options.to_payload(),
            headers={"Authorization": f"Bearer {self.config.cloudflare_api_token}"},
        )

        logger.info("Calling Workers AI model '%s'.", self.model_id)
        response = await client.send(request, stream=True)

        if response.is_error:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            raise BackendError(
                f"Workers AI returned HTTP {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                raw = await response.aread()
            finally:
                await response.aclose()
            return ImageStream.from_bytes(self._decode_envelope(raw, response.status_code))

        return ImageStream(response.aiter_bytes(), response.aclose)

    @staticmethod
    def _decode_envelope(raw: bytes, status_code: int) -> bytes:
        """Extract the base64 image from a Workers AI JSON envelope."""
        body = raw.decode("utf-8", errors="replace")
        try:
            envelope = json.loads(body)
        except ValueError as e:
            raise BackendError(
                f"Workers AI returned malformed JSON: {e}", status_code=status_code, body=body
            ) from e

        if not isinstance(envelope, dict):
            envelope = {}
        result = envelope.get("result")
        image = result.get("image") if isinstance(result, dict) else None
        if not envelope.get("success", True) or not isinstance(image, str):
            errors = envelope.get("errors")
            raise BackendError(
                f"Workers AI returned no image: {errors or body}",
                status_code=status_code,
                body=body,
            )

        try:
            return base64.b64decode(image, validate=True)
        except (binascii.Error, ValueError) as e:
            raise BackendError(
                f"Workers AI returned an undecodable image: {e}", status_code=status_code
            ) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


backend_registry.register(WorkersAIBackend)
