"""In-flight request tracking.

At most one request per normalized prompt may be in flight.  Claiming a key
is a single insert-if-absent step under a lock, so two near-simultaneous
submissions of the same prompt cannot both proceed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class AlreadyPendingError(Exception):
    """Raised when a prompt is claimed while another request for it is in flight."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Request already pending: {key!r}")
        self.key = key


class PendingSet:
    """Set of keys whose requests are currently awaiting a response."""

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    def claim(self, key: str) -> bool:
        """Mark ``key`` as pending.  Returns False if it already was."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    @contextmanager
    def hold(self, key: str) -> Iterator[str]:
        """Claim ``key`` for the duration of the block.

        The key is released on every exit path, including exceptions.

        Raises:
            AlreadyPendingError: If ``key`` is already pending.
        """
        if not self.claim(key):
            raise AlreadyPendingError(key)
        try:
            yield key
        finally:
            self.release(key)
            logger.debug(f"Released pending key {key!r}")

    def __len__(self) -> int:
        return len(self._keys)
