"""Core building blocks shared by the API gateway and the UI request guard.

- **PromixelConfig / config**: configuration via Pydantic Settings
  (``PROMIXEL_`` environment prefix)
- **GenerationRequest / GenerationResult**: the data model
- **ResultCache**: size-bounded TTL cache with FIFO-by-age eviction
- **PendingSet**: atomic in-flight tracking per normalized prompt
- **normalize**: upstream response shape normalisation

Nothing in this package keeps module-level mutable state apart from the
global ``config`` instance; stores are owned by whoever constructs them.
"""

from promixel.core.cache import ResultCache
from promixel.core.config import PromixelConfig, config
from promixel.core.models import GenerationRequest, GenerationResult, normalize_prompt
from promixel.core.normalizer import normalize
from promixel.core.pending import AlreadyPendingError, PendingSet

__all__ = [
    "AlreadyPendingError",
    "GenerationRequest",
    "GenerationResult",
    "PendingSet",
    "PromixelConfig",
    "ResultCache",
    "config",
    "normalize",
    "normalize_prompt",
]
