"""Promixel - terminal-style pixel-art generation behind a rate-limited gateway."""

__version__ = "0.3.0"

from promixel.core.config import PromixelConfig, config
from promixel.core.models import GenerationRequest, GenerationResult

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "PromixelConfig",
    "config",
]
