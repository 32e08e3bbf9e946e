"""Duplicate request suppression.

A request is identified by a SHA-256 digest of its client-supplied request id
and prompt.  A second request with the same digest inside the dedup window is
treated as a duplicate (a double submit or a client retry) and rejected.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


def dedup_key(request_id: str, prompt: str) -> str:
    """Content-addressed key for a (request id, prompt) pair."""
    digest = hashlib.sha256()
    digest.update(request_id.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(prompt.encode("utf-8"))
    return digest.hexdigest()


class DuplicateTracker:
    """Remembers recently processed requests for ``window_seconds``."""

    def __init__(self, window_seconds: float = 10.0, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self._clock = clock
        self._processed: dict[str, float] = {}
        self._lock = threading.Lock()

    def check_and_mark(self, request_id: str, prompt: str) -> bool:
        """Return True if this pair was seen within the window, else record it.

        The lookup and the insert happen under one lock so concurrent copies
        of the same request cannot both pass.
        """
        key = dedup_key(request_id, prompt)
        now = self._clock()
        with self._lock:
            seen_at = self._processed.get(key)
            if seen_at is not None and now - seen_at < self.window_seconds:
                return True
            self._processed[key] = now
            return False

    def sweep(self) -> int:
        """Forget entries older than the window.  Returns the count removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, ts in self._processed.items() if now - ts >= self.window_seconds]
            for key in stale:
                del self._processed[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._processed)
