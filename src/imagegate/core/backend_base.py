"""Base classes and registry for inference backends.

An inference backend is the opaque text-to-image capability behind the
gateway: it receives a validated
:class:`~imagegate.core.options.GenerationOptions` record and returns an
:class:`ImageStream` of PNG bytes, or raises.

Backend Pattern
---------------
Each backend encapsulates:
- Client or pipeline lifecycle (created lazily, released by ``aclose()``)
- Translation of the options record into the backend's own call
- Reporting failures as exceptions (the gateway turns them into HTTP 500)

Backends never re-validate the options they receive.

Usage Example
-------------
    >>> from imagegate.core.backend_base import backend_registry
    >>> from imagegate.core.config import config
    >>>
    >>> backend_registry.list_available()
    ['workers-ai', 'diffusers']
    >>> backend = backend_registry.instantiate("workers-ai", config)
    >>> stream = await backend.generate(GenerationOptions(prompt="a red fox"))
    >>> async for chunk in stream:
    ...     sink.write(chunk)
    >>> await stream.aclose()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from imagegate.core.config import ImagegateConfig
from imagegate.core.options import GenerationOptions

logger = logging.getLogger(__name__)

PNG_MEDIA_TYPE = "image/png"
DEFAULT_CHUNK_SIZE = 64 * 1024


class ImageStream:
    """Async iterator over the bytes of one generated image.

    Wraps the chunk iterator produced by a backend together with the
    callback that releases whatever the chunks are read from.  ``aclose()``
    is idempotent so it can be called on every exit path.

    Attributes:
        media_type: MIME type of the image bytes (always ``image/png``).
    """

    media_type = PNG_MEDIA_TYPE

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._chunks = chunks
        self._close = close
        self._closed = False

    @classmethod
    def from_bytes(cls, data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ImageStream:
        """Build a stream over an in-memory image."""

        async def _iterate() -> AsyncIterator[bytes]:
            for start in range(0, len(data), chunk_size):
                yield data[start : start + chunk_size]

        return cls(_iterate())

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks

    async def aclose(self) -> None:
        """Release the underlying resource.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            await self._close()


class ImageBackend(ABC):
    """Abstract base class for all inference backends.

    Attributes
    ----------
    name : str
        Registry key of the backend (matches ``ImagegateConfig.backend``).
    description : str
        Brief description of the backend.
    config : ImagegateConfig
        Configuration object containing backend settings.
    """

    name: str = "base"
    description: str = ""

    def __init__(self, config: ImagegateConfig) -> None:
        self.config = config

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier of the model this backend runs."""

    @abstractmethod
    async def generate(self, options: GenerationOptions) -> ImageStream:
        """Run one text-to-image generation.

        Args:
            options: Validated options.  Absent fields take backend defaults.

        Returns:
            An open :class:`ImageStream`.  The caller owns it and must close it.

        Raises:
            Exception: Any failure to produce an image.
        """

    async def aclose(self) -> None:
        """Release long-lived resources.  Called once at application shutdown."""

    def get_backend_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "model_id": self.model_id,
        }


class BackendRegistry:
    """Registry for discovering and instantiating inference backends.

    Backends register themselves when their module is imported
    (see :mod:`imagegate.core.backends`).
    """

    def __init__(self) -> None:
        self._backends: dict[str, type[ImageBackend]] = {}

    def register(self, backend_class: type[ImageBackend]) -> None:
        """Register a backend class under its ``name``."""
        backend_name = backend_class.name

        if backend_name in self._backends:
            logger.warning("Backend '%s' is already registered, overwriting", backend_name)

        self._backends[backend_name] = backend_class
        logger.debug("Registered backend: %s", backend_name)

    def instantiate(self, backend_name: str, config: ImagegateConfig) -> ImageBackend:
        """Create an instance of a registered backend.

        Raises:
            KeyError: If ``backend_name`` is not registered.
        """
        if backend_name not in self._backends:
            available = ", ".join(self.list_available())
            raise KeyError(f"Backend '{backend_name}' not found. Available backends: {available}")

        instance = self._backends[backend_name](config)
        logger.info("Instantiated backend: %s (model %s)", backend_name, instance.model_id)
        return instance

    def list_available(self) -> list[str]:
        return list(self._backends.keys())


# Global backend registry instance
backend_registry = BackendRegistry()
