"""Configuration management for the Imagegate service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the IMAGEGATE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (IMAGEGATE_* prefix)
2. .env file in the project root
3. Default values defined in ImagegateConfig

Example .env file:
    IMAGEGATE_BACKEND=workers-ai
    IMAGEGATE_CLOUDFLARE_ACCOUNT_ID=0123456789abcdef
    IMAGEGATE_CLOUDFLARE_API_TOKEN=...
    IMAGEGATE_SERVER_PORT=8787

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
The FastAPI application factory falls back to it when no explicit
configuration is passed in.

Backend Defaults
----------------
``default_width``, ``default_height``, ``default_num_steps`` and
``default_guidance`` are only used by backends that need concrete values
(the local diffusers backend).  The gateway never fills them in: a field the
caller omits is omitted from the options record as well.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImagegateConfig(BaseSettings):
    """Main configuration for the Imagegate service.

    Attributes
    ----------
    Backend Selection:
        backend : Literal["workers-ai", "diffusers"]
            Which inference backend the application is wired to at start-up.

    Workers AI Settings:
        cloudflare_account_id : str | None
            Cloudflare account that owns the Workers AI binding.
        cloudflare_api_token : str | None
            API token with Workers AI permissions.
        workers_ai_base_url : str
            Base URL of the Cloudflare REST API.
        workers_ai_model : str
            Workers AI model identifier.
        request_timeout : float | None
            Timeout in seconds for backend calls.  ``None`` waits forever.

    Diffusers Settings:
        diffusers_model_id : str
            HuggingFace model ID loaded by the local backend.
        torch_dtype : Literal["bfloat16", "float16", "float32"]
            Torch dtype for model inference.
        device : str
            Device for inference (cuda, mps, or cpu).
        models_dir : Path
            Directory to cache downloaded models.

    Server Settings:
        server_host, server_port, log_level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGEGATE_",
        case_sensitive=False,
    )

    backend: Literal["workers-ai", "diffusers"] = Field(
        default="workers-ai",
        description="Inference backend: 'workers-ai' (hosted) or 'diffusers' (local)",
    )

    # Workers AI
    cloudflare_account_id: str | None = Field(
        default=None,
        description="Cloudflare account ID used in the Workers AI REST path",
    )
    cloudflare_api_token: str | None = Field(
        default=None,
        description="Cloudflare API token (Bearer) with Workers AI access",
    )
    workers_ai_base_url: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Base URL of the Cloudflare REST API",
    )
    workers_ai_model: str = Field(
        default="@cf/bytedance/stable-diffusion-xl-lightning",
        description="Workers AI text-to-image model identifier",
    )
    request_timeout: float | None = Field(
        default=None,
        description="Backend request timeout in seconds (None disables the timeout)",
        gt=0,
    )

    # Local diffusers pipeline
    diffusers_model_id: str = Field(
        default="stabilityai/sdxl-turbo",
        description="HuggingFace model ID for the local diffusers backend",
    )
    torch_dtype: Literal["bfloat16", "float16", "float32"] = Field(
        default="float16",
        description="Torch dtype for model inference",
    )
    device: str = Field(
        default="cuda",
        description="Device to run inference on (cuda/mps/cpu)",
    )
    models_dir: Path = Field(
        default=Path("models"),
        description="Directory to cache models",
    )
    enable_attention_slicing: bool = Field(
        default=False,
        description="Enable attention slicing for lower VRAM usage",
    )
    enable_model_cpu_offload: bool = Field(
        default=False,
        description="Enable CPU offloading for memory-constrained setups",
    )

    # Backend defaults applied by the local pipeline when a field is omitted
    default_width: int = Field(default=1024, ge=256, le=2048)
    default_height: int = Field(default=1024, ge=256, le=2048)
    default_num_steps: int = Field(default=20, ge=1, le=20)
    default_guidance: float = Field(default=7.5, ge=0.0, le=20.0)

    # Server
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8787,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level configured by the CLI entry point",
    )


# Global configuration instance, loaded from IMAGEGATE_* variables and .env.
config = ImagegateConfig()
