"""Local HuggingFace diffusers backend.

Runs a text-to-image pipeline in-process instead of calling a hosted
service.  The pipeline is loaded lazily on the first generation and kept in
memory until :meth:`DiffusersBackend.aclose` is called at shutdown.

Key Responsibilities
--------------------
- **Lazy model loading** via ``AutoPipelineForText2Image.from_pretrained``
  with the dtype, device and cache directory from the configuration.
- **Backend defaults** for every option the caller omitted
  (``default_width``, ``default_height``, ``default_num_steps``,
  ``default_guidance``).
- **Turbo-model enforcement**: models whose ID contains ``"turbo"``
  (case-insensitive) have ``guidance_scale`` forced to 0.0.
- **Deterministic generation** with a seeded ``torch.Generator`` when the
  request carries a seed.
- **Off-loop execution**: the blocking pipeline call runs in the threadpool,
  serialised by a lock, so other requests keep being served.

``torch`` and ``diffusers`` are imported inside the methods that need them so
that the hosted backend works without them installed.
"""

from __future__ import annotations

import gc
import io
import logging
import threading

from fastapi.concurrency import run_in_threadpool
from PIL import Image

from imagegate.core.backend_base import ImageBackend, ImageStream, backend_registry
from imagegate.core.config import ImagegateConfig
from imagegate.core.options import GenerationOptions

logger = logging.getLogger(__name__)


def _get_dtype_map() -> dict:
    """Return the dtype string -> ``torch.dtype`` mapping."""
    import torch

    return {
        "bfloat16": torch.bfloat16,
        "float16": torch.float16,
        "float32": torch.float32,
    }


class DiffusersBackend(ImageBackend):
    """Backend that runs a diffusers pipeline on the local machine.

    Attributes:
        _pipeline: The loaded diffusers pipeline, or ``None``.
        _lock: Serialises model loading and pipeline calls; diffusers
            pipelines are not safe to call from several threads at once.
    """

    name = "diffusers"
    description = "Local text-to-image inference with a HuggingFace diffusers pipeline"

    def __init__(self, config: ImagegateConfig) -> None:
        super().__init__(config)
        self._pipeline = None
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self.config.diffusers_model_id

    @property
    def is_loaded(self) -> bool:
        return self._pipeline is not None

    @property
    def is_turbo(self) -> bool:
        return "turbo" in self.model_id.lower()

    def load_model(self) -> None:
        """Load the configured pipeline if it is not loaded yet.

        Raises:
            Exception: Whatever ``from_pretrained`` raises (network error,
                out of memory, incompatible model format).  The backend is
                left unloaded.
        """
        if self._pipeline is not None:
            return

        import torch
        from diffusers import AutoPipelineForText2Image

        torch_dtype = _get_dtype_map().get(self.config.torch_dtype, torch.float16)
        self.config.models_dir.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Loading model '%s' (dtype=%s, device=%s, cache=%s).",
            self.model_id,
            self.config.torch_dtype,
            self.config.device,
            self.config.models_dir,
        )

        try:
            pipeline = AutoPipelineForText2Image.from_pretrained(
                self.model_id,
                torch_dtype=torch_dtype,
                cache_dir=str(self.config.models_dir),
            )

            if self.config.enable_model_cpu_offload:
                pipeline.enable_sequential_cpu_offload()
                logger.info("Sequential CPU offloading enabled.")
            else:
                pipeline = pipeline.to(self.config.device)

            if self.config.enable_attention_slicing:
                pipeline.enable_attention_slicing()
                logger.info("Attention slicing enabled.")
        except Exception:
            logger.exception("Failed to load model '%s'.", self.model_id)
            raise

        self._pipeline = pipeline
        logger.info("Model '%s' loaded successfully.", self.model_id)

    def _build_pipeline_kwargs(self, options: GenerationOptions) -> dict:
        import torch

        guidance = options.guidance if options.guidance is not None else self.config.default_guidance
        if self.is_turbo and guidance != 0.0:
            logger.debug("Turbo model '%s': forcing guidance_scale to 0.0.", self.model_id)
            guidance = 0.0

        kwargs: dict = {
            "prompt": options.prompt,
            "width": options.width or self.config.default_width,
            "height": options.height or self.config.default_height,
            "num_inference_steps": options.num_steps or self.config.default_num_steps,
            "guidance_scale": guidance,
        }

        # Without a seed the pipeline draws from torch's global RNG.
        if options.seed is not None:
            kwargs["generator"] = torch.Generator(device=self.config.device).manual_seed(options.seed)

        if options.negative_prompt:
            kwargs["negative_prompt"] = options.negative_prompt

        return kwargs

    def generate_png(self, options: GenerationOptions) -> bytes:
        """Run the pipeline synchronously and return PNG-encoded bytes."""
        with self._lock:
            self.load_model()
            kwargs = self._build_pipeline_kwargs(options)
            logger.info(
                "Generating image: %dx%d, %d steps, guidance=%.1f, seed=%s.",
                kwargs["width"],
                kwargs["height"],
                kwargs["num_inference_steps"],
                kwargs["guidance_scale"],
                options.seed,
            )
            output = self._pipeline(**kwargs)

        image: Image.Image = output.images[0]
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    async def generate(self, options: GenerationOptions) -> ImageStream:
        png = await run_in_threadpool(self.generate_png, options)
        return ImageStream.from_bytes(png)

    def unload(self) -> None:
        """Drop the pipeline and free GPU memory.  No-op when nothing is loaded."""
        with self._lock:
            if self._pipeline is None:
                return

            logger.info("Unloading model '%s'.", self.model_id)
            self._pipeline = None
            gc.collect()

            import torch

            if torch.cuda.is_available():
                torch.cuda.empty_cache()
                logger.info("CUDA cache cleared after unloading '%s'.", self.model_id)

    async def aclose(self) -> None:
        await run_in_threadpool(self.unload)


backend_registry.register(DiffusersBackend)
