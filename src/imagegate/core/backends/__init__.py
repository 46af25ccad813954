"""Inference backend implementations.

Importing this package registers every backend with
:data:`~imagegate.core.backend_base.backend_registry`.
"""

from imagegate.core.backend_base import ImageBackend, backend_registry
from imagegate.core.backends.diffusers_local import DiffusersBackend
from imagegate.core.backends.workers_ai import WorkersAIBackend
from imagegate.core.config import ImagegateConfig


def create_backend(config: ImagegateConfig) -> ImageBackend:
    """Instantiate the backend named by ``config.backend``.

    Raises:
        KeyError: If no backend is registered under that name.
    """
    return backend_registry.instantiate(config.backend, config)


__all__ = ["DiffusersBackend", "WorkersAIBackend", "create_backend"]
