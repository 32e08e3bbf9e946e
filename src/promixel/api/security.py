"""Request screening helpers for the generation endpoint.

Prompt validation, prompt sanitisation, origin checks, client identification
and the security headers attached to every API response.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 1000

# Substrings that indicate markup, script or template injection attempts.
SUSPICIOUS_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"onerror=", re.IGNORECASE),
    re.compile(r"onload=", re.IGNORECASE),
    re.compile(r"eval\(", re.IGNORECASE),
    re.compile(r"document\.cookie", re.IGNORECASE),
    re.compile(r"\$\{"),
)

_TAGS_AND_HANDLERS = re.compile(r"<[^>]*>|javascript:|onerror=|onload=", re.IGNORECASE)
_QUOTES = re.compile(r"['\";`]")

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": (
        "default-src 'self'; img-src 'self' data:; frame-ancestors 'none'"
    ),
}

API_KEY_PREFIX = "rdpk-"


class PromptValidationError(Exception):
    """Prompt rejected before reaching the upstream API.

    The message is safe to show to the user.
    """

    pass


def validate_prompt(prompt: object, max_length: int = MAX_PROMPT_LENGTH) -> None:
    """Validate a raw prompt from a request body.

    Args:
        prompt: Value of the ``prompt`` field (any JSON type).
        max_length: Maximum allowed prompt length in characters.

    Raises:
        PromptValidationError: If the prompt is missing, not a string, too
            long, or matches a suspicious pattern.
    """
    if not prompt or not isinstance(prompt, str) or not prompt.strip():
        raise PromptValidationError("Missing prompt")

    if len(prompt) > max_length:
        raise PromptValidationError("Prompt exceeds maximum allowed length")

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(prompt):
            logger.warning(f"Prompt rejected by pattern {pattern.pattern}")
            raise PromptValidationError("Prompt contains potentially malicious content")


def sanitize_prompt(prompt: str, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """Strip HTML tags, event handlers and quote characters from a prompt."""
    if not prompt:
        return ""
    sanitized = _TAGS_AND_HANDLERS.sub("", prompt)
    sanitized = _QUOTES.sub("", sanitized)
    return sanitized.strip()[:max_length]


def is_origin_allowed(origin: str | None, allowed_origins: Iterable[str]) -> bool:
    """Return True for requests without an Origin or with an allow-listed one."""
    if not origin:
        return True
    return any(allowed == "*" or origin == allowed for allowed in allowed_origins if allowed)


def client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str:
    """Best-effort client address: proxy headers first, then the socket peer."""
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return fallback or "unknown"


def clean_api_key(api_key: str | None) -> str:
    """Trim a credential and restore its ``rdpk-`` prefix if it was mangled."""
    if not api_key:
        return ""
    cleaned = api_key.strip()
    if not cleaned.startswith(API_KEY_PREFIX) and API_KEY_PREFIX in cleaned:
        cleaned = API_KEY_PREFIX + cleaned.split(API_KEY_PREFIX, 1)[1]
    return cleaned


def mask_secret(secret: str | None, visible: int = 5) -> str:
    """Credential prefix for logs; the rest is never written out."""
    if not secret:
        return "<unset>"
    return f"{secret[:visible]}..."
