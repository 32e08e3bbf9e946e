"""Upstream response normalisation.

Different releases of the Retro Diffusion API have returned images in
different shapes.  Each known shape is a variant with its own parser; the
parsers are tried in a fixed priority order and the first match wins.  A body
that matches none of them becomes :class:`Unrecognized`, which normalises to a
failure result instead of an exception.

Known shapes, in priority order:

=================  ===============================================
Variant            Body
=================  ===============================================
Base64ImageList    ``{"base64_images": ["iVBOR...", ...]}``
ImageUriList       ``{"images": ["https://...", ...]}`` or
                   ``{"images": [{"url": "https://..."}]}``
SingleBase64       ``{"base64_image": "iVBOR..."}`` or ``{"image": ...}``
=================  ===============================================

``remaining_credits`` is carried through from any recognised shape.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any

from promixel.core.models import GenerationResult

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = "Invalid response from the API"
UNRECOGNIZED_FORMAT_MESSAGE = f"{INVALID_RESPONSE_MESSAGE}: unrecognized response format"

_WHITESPACE = re.compile(r"\s+")
_URI_PREFIXES = ("http://", "https://", "data:image")


def to_data_url(b64: str, mime: str = "image/png") -> str:
    """Wrap a base64 payload as a data URL."""
    return f"data:{mime};base64,{b64}"


def _clean_base64(value: Any) -> str | None:
    """Return ``value`` without whitespace if it is valid base64, else ``None``."""
    if not isinstance(value, str):
        return None
    cleaned = _WHITESPACE.sub("", value)
    if not cleaned:
        return None
    try:
        base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        return None
    return cleaned


def _credits(body: dict) -> int | None:
    value = body.get("remaining_credits")
    if isinstance(value, bool):
        return None
    return value if isinstance(value, int) else None


@dataclass(frozen=True)
class Base64ImageList:
    image_b64: str
    remaining_credits: int | None = None

    @classmethod
    def parse(cls, body: dict) -> Base64ImageList | None:
        images = body.get("base64_images")
        if not isinstance(images, list) or not images:
            return None
        cleaned = _clean_base64(images[0])
        if cleaned is None:
            return None
        return cls(image_b64=cleaned, remaining_credits=_credits(body))

    @property
    def image_url(self) -> str:
        return to_data_url(self.image_b64)


@dataclass(frozen=True)
class ImageUriList:
    uri: str
    remaining_credits: int | None = None

    @classmethod
    def parse(cls, body: dict) -> ImageUriList | None:
        images = body.get("images")
        if not isinstance(images, list) or not images:
            return None
        first = images[0]
        if isinstance(first, dict):
            first = first.get("url")
        if not isinstance(first, str) or not first.startswith(_URI_PREFIXES):
            return None
        return cls(uri=first, remaining_credits=_credits(body))

    @property
    def image_url(self) -> str:
        return self.uri


@dataclass(frozen=True)
class SingleBase64:
    image_b64: str
    remaining_credits: int | None = None

    @classmethod
    def parse(cls, body: dict) -> SingleBase64 | None:
        for field_name in ("base64_image", "image"):
            cleaned = _clean_base64(body.get(field_name))
            if cleaned is not None:
                return cls(image_b64=cleaned, remaining_credits=_credits(body))
        return None

    @property
    def image_url(self) -> str:
        return to_data_url(self.image_b64)


@dataclass(frozen=True)
class Unrecognized:
    keys: tuple[str, ...] = ()


ResponseVariant = Base64ImageList | ImageUriList | SingleBase64 | Unrecognized

# Priority order matters: the first parser that accepts the body wins.
VARIANT_PARSERS = (Base64ImageList, ImageUriList, SingleBase64)


def parse_variant(body: Any) -> ResponseVariant:
    """Return the first known variant matching ``body``."""
    if not isinstance(body, dict):
        return Unrecognized()
    for variant in VARIANT_PARSERS:
        parsed = variant.parse(body)
        if parsed is not None:
            return parsed
    return Unrecognized(keys=tuple(sorted(str(k) for k in body)))


def normalize(body: Any, *, prompt: str = "") -> GenerationResult:
    """Convert an upstream response body into a :class:`GenerationResult`.

    Args:
        body: Decoded JSON body returned by the upstream API.
        prompt: Prompt to attach to the result.

    Returns:
        A successful result for any recognised shape, otherwise a failure
        result whose message starts with ``"Invalid response from the API"``.
    """
    variant = parse_variant(body)
    if isinstance(variant, Unrecognized):
        logger.error(f"Unrecognized upstream response shape, keys={list(variant.keys)}")
        return GenerationResult.failure(UNRECOGNIZED_FORMAT_MESSAGE, prompt=prompt)

    logger.debug(f"Upstream response matched {type(variant).__name__}")
    return GenerationResult(
        success=True,
        image_url=variant.image_url,
        prompt=prompt,
        remaining_credits=variant.remaining_credits,
    )
