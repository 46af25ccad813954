"""Core functionality for the Imagegate service.

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with IMAGEGATE_ in .env files

2. **Normalization Layer** (options.py, errors.py):
   - Turns untrusted JSON into an immutable GenerationOptions record
   - Missing prompt is the only hard validation failure

3. **Backend Layer** (backend_base.py, backends/):
   - Unified interface over the inference capability
   - Cloudflare Workers AI (hosted) and diffusers (local) implementations
   - Registry pattern for selecting the backend from configuration
"""

# Import backends to ensure they're registered
from imagegate.core.backend_base import ImageBackend, ImageStream, backend_registry
from imagegate.core.backends import DiffusersBackend, WorkersAIBackend, create_backend
from imagegate.core.config import ImagegateConfig, config
from imagegate.core.errors import BackendError, PromptRequiredError, ValidationError
from imagegate.core.options import GenerationOptions, normalize_request

__all__ = [
    "BackendError",
    "DiffusersBackend",
    "GenerationOptions",
    "ImageBackend",
    "ImageStream",
    "ImagegateConfig",
    "PromptRequiredError",
    "ValidationError",
    "WorkersAIBackend",
    "backend_registry",
    "config",
    "create_backend",
    "normalize_request",
]
