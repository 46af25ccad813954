"""Request validation and parameter normalization.

Turns an untrusted JSON request body into a :class:`GenerationOptions`
record that the inference backend can consume without further checks.

Normalization policy
--------------------
``prompt`` is the only required field.  It must be a string that is
non-empty once surrounding whitespace is stripped; otherwise
:class:`~imagegate.core.errors.PromptRequiredError` is raised.  The prompt is
forwarded exactly as received, the stripped copy is only used for the
emptiness check.

Every optional field is *permissive*: a value of the wrong type, or outside
its inclusive range, is dropped and the backend default applies.  Such a
value never fails the request.

=================  =========  =====================  =========================
Field              Type       Valid range            When absent or invalid
=================  =========  =====================  =========================
negative_prompt    str        non-empty after strip  omitted
height             int        256 - 2048             omitted
width              int        256 - 2048             omitted
num_steps          int        1 - 20                 omitted
guidance           float      0 - 20                 omitted
seed               int|None   >= 0                   omitted (``null`` too)
=================  =========  =====================  =========================

``bool`` is never accepted as a number.  Integer fields also accept
integral floats such as ``1024.0``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from imagegate.core.errors import PromptRequiredError

logger = logging.getLogger(__name__)

# Inclusive (low, high) bounds for the numeric fields.
DIMENSION_RANGE: tuple[int, int] = (256, 2048)
NUM_STEPS_RANGE: tuple[int, int] = (1, 20)
GUIDANCE_RANGE: tuple[float, float] = (0.0, 20.0)
MIN_SEED = 0


@dataclass(frozen=True)
class GenerationOptions:
    """Validated, backend-facing generation parameters.

    ``None`` means "not provided"; the backend default applies.  Instances
    are built by :func:`normalize_request` and are never mutated.
    """

    prompt: str
    negative_prompt: str | None = None
    height: int | None = None
    width: int | None = None
    num_steps: int | None = None
    guidance: float | None = None
    seed: int | None = None

    def to_payload(self) -> dict[str, Any]:
        """Return the options as a mapping, omitting every absent field."""
        payload: dict[str, Any] = {"prompt": self.prompt}
        for name in ("negative_prompt", "height", "width", "num_steps", "guidance", "seed"):
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        return payload


def _parse_int(text: str) -> int | float:
    # Integers past the interpreter's digit limit become floats (or inf),
    # which the range checks then drop.
    try:
        return int(text)
    except ValueError:
        return float(text)


def parse_request_body(raw: bytes) -> Any:
    """Decode a raw HTTP body as JSON.

    An empty or undecodable body yields ``None``, which
    :func:`normalize_request` rejects as a missing prompt.  This includes
    bodies nested too deeply to decode.
    """
    if not raw:
        return None
    try:
        return json.loads(raw, parse_int=_parse_int)
    except (ValueError, UnicodeDecodeError, RecursionError):
        logger.warning("Request body is not valid JSON (%d bytes).", len(raw))
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_int(value: Any) -> int | None:
    """Return *value* as an ``int`` if it is an integral JSON number."""
    if not _is_number(value):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        return int(value)
    return value


def _bounded_int(name: str, value: Any, bounds: tuple[int, int]) -> int | None:
    if value is None:
        return None
    number = _as_int(value)
    low, high = bounds
    if number is None or not low <= number <= high:
        logger.debug("Dropping %s=%r (expected integer in %d-%d).", name, value, low, high)
        return None
    return number


def _bounded_float(name: str, value: Any, bounds: tuple[float, float]) -> float | None:
    if value is None:
        return None
    low, high = bounds
    if not _is_number(value) or not low <= value <= high:
        logger.debug("Dropping %s=%r (expected number in %s-%s).", name, value, low, high)
        return None
    return float(value)


def _negative_prompt(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        logger.debug("Dropping negative_prompt=%r (expected non-blank string).", value)
        return None
    return value


def _seed(value: Any) -> int | None:
    # Explicit null means "backend picks"; it is forwarded the same as absent.
    if value is None:
        return None
    number = _as_int(value)
    if number is None or number < MIN_SEED:
        logger.debug("Dropping seed=%r (expected non-negative integer).", value)
        return None
    return number


def normalize_request(body: Any) -> GenerationOptions:
    """Validate a decoded request body and build the options record.

    Args:
        body: Decoded JSON.  Anything other than an object carries no prompt.
            Unrecognized keys are ignored.

    Returns:
        A fresh :class:`GenerationOptions`.

    Raises:
        PromptRequiredError: If ``prompt`` is missing, not a string, or
            blank.
    """
    if not isinstance(body, dict):
        raise PromptRequiredError()

    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise PromptRequiredError()

    return GenerationOptions(
        prompt=prompt,
        negative_prompt=_negative_prompt(body.get("negative_prompt")),
        height=_bounded_int("height", body.get("height"), DIMENSION_RANGE),
        width=_bounded_int("width", body.get("width"), DIMENSION_RANGE),
        num_steps=_bounded_int("num_steps", body.get("num_steps"), NUM_STEPS_RANGE),
        guidance=_bounded_float("guidance", body.get("guidance"), GUIDANCE_RANGE),
        seed=_seed(body.get("seed")),
    )
