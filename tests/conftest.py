"""Shared pytest fixtures for Imagegate tests."""

from __future__ import annotations

import io
import shutil
import tempfile
from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from imagegate.api.main import create_app
from imagegate.core.backend_base import ImageBackend, ImageStream
from imagegate.core.config import ImagegateConfig
from imagegate.core.options import GenerationOptions


def _png_bytes(size: tuple[int, int] = (8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(255, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeBackend(ImageBackend):
    """In-memory backend that records every call it receives.

    Args:
        config: Configuration (unused beyond the base class).
        chunks: Byte chunks the returned stream yields.
        error: If set, ``generate()`` raises it instead of returning a stream.
        fail_after: If set, the stream raises after yielding this many chunks.
    """

    name = "fake"
    description = "Test double"

    def __init__(
        self,
        config: ImagegateConfig,
        chunks: list[bytes] | None = None,
        error: Exception | None = None,
        fail_after: int | None = None,
    ) -> None:
        super().__init__(config)
        self.chunks = chunks if chunks is not None else [_png_bytes()]
        self.error = error
        self.fail_after = fail_after
        self.calls: list[GenerationOptions] = []
        self.streams: list[ImageStream] = []
        self.closed = False

    @property
    def model_id(self) -> str:
        return "fake/text-to-image"

    async def generate(self, options: GenerationOptions) -> ImageStream:
        self.calls.append(options)
        if self.error is not None:
            raise self.error

        async def _chunks() -> AsyncIterator[bytes]:
            for index, chunk in enumerate(self.chunks):
                if self.fail_after is not None and index == self.fail_after:
                    raise RuntimeError("stream broke")
                yield chunk

        stream = ImageStream(_chunks())
        self.streams.append(stream)
        return stream

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> ImagegateConfig:
    """Create a test configuration that never touches real services.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        ImagegateConfig instance for testing
    """
    return ImagegateConfig(
        _env_file=None,
        backend="workers-ai",
        cloudflare_account_id="test-account",
        cloudflare_api_token="test-token",
        workers_ai_base_url="https://workers-ai.test/client/v4",
        diffusers_model_id="stabilityai/sdxl-turbo",
        device="cpu",
        torch_dtype="float32",
        models_dir=temp_dir / "models",
    )


@pytest.fixture
def png_bytes() -> bytes:
    """A small, valid PNG image."""
    return _png_bytes()


@pytest.fixture
def make_backend(test_config: ImagegateConfig):
    """Factory for :class:`FakeBackend` instances bound to the test config."""

    def _make(**kwargs) -> FakeBackend:
        return FakeBackend(test_config, **kwargs)

    return _make


@pytest.fixture
def fake_backend(make_backend) -> FakeBackend:
    """A backend that succeeds with a single PNG chunk."""
    return make_backend()


@pytest.fixture
def make_client(test_config: ImagegateConfig):
    """Factory that builds a started ``TestClient`` around a given backend."""
    clients: list[TestClient] = []

    def _make(backend: ImageBackend) -> TestClient:
        client = TestClient(create_app(test_config, backend=backend))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def test_client(make_client, fake_backend: FakeBackend) -> TestClient:
    """TestClient serving the app with :func:`fake_backend`."""
    return make_client(fake_backend)


@pytest.fixture
def anyio_backend() -> str:
    """Run ``@pytest.mark.anyio`` tests on asyncio only."""
    return "asyncio"
