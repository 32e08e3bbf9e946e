"""Download and share helpers for generated images."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from pathlib import Path

import httpx

from promixel.core.models import GenerationResult

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9-]+")
_DATA_URL = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,(?P<payload>.*)$", re.DOTALL)


def download_filename(prompt: str) -> str:
    """File name for a downloaded image, e.g. ``promixel-pixel-cat.png``."""
    slug = re.sub(r"\s+", "-", (prompt or "").strip().lower())
    slug = _SLUG_INVALID.sub("", slug).strip("-")[:60]
    return f"promixel-{slug or 'art'}.png"


def decode_data_url(image_url: str) -> bytes:
    """Decode a ``data:image/...;base64,`` URL.

    Raises:
        ValueError: If the URL is not an image data URL or the payload is not
            valid base64.
    """
    match = _DATA_URL.match(image_url or "")
    if not match:
        raise ValueError("Not an image data URL")
    try:
        return base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("The image data received was invalid") from e


def save_image(
    image_url: str,
    directory: Path,
    prompt: str,
    *,
    http_client: httpx.Client | None = None,
) -> Path:
    """Write the image to ``directory`` and return its path.

    Data URLs are decoded locally.  Remote URLs are fetched through the API's
    ``/api/proxy-image`` route, so ``http_client`` must point at the API.

    Raises:
        ValueError: If there is no image or it cannot be fetched or decoded.
    """
    if not image_url:
        raise ValueError("No image URL provided for download")

    if image_url.startswith("data:"):
        content = decode_data_url(image_url)
    else:
        if http_client is None:
            raise ValueError("Remote images need an API client to download")
        try:
            response = http_client.get("/api/proxy-image", params={"url": image_url})
        except httpx.HTTPError as e:
            raise ValueError("Failed to download image") from e
        if not response.is_success:
            raise ValueError(f"Failed to download image: {response.status_code}")
        content = response.content

    directory.mkdir(parents=True, exist_ok=True)
    path = directory / download_filename(prompt)
    path.write_bytes(content)
    logger.info(f"Saved image to {path} ({len(content)} bytes)")
    return path


def share_text(result: GenerationResult, site_url: str | None = None) -> str:
    """Short text for sharing a generated image."""
    text = f'Check out my pixel art of "{result.prompt}" made with Promixel!'
    if site_url:
        text += f" {site_url}"
    if result.image_url.startswith(("http://", "https://")):
        text += f"\n{result.image_url}"
    return text
