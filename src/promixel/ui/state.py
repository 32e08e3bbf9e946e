"""Session state management for the Promixel terminal UI.

Each browser session gets its own :class:`~promixel.ui.terminal.TerminalSession`
(created lazily on the first command).  The guard's timing state and the
sign-in session are mirrored into browser storage after every command and
restored from it when a session is created, so a page reload does not reset
the cooldown, the session quota or the sign-in.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from promixel.core.config import PromixelConfig
from promixel.core.pending import PendingSet
from promixel.ui.auth import AuthSession, SupabaseAuthClient
from promixel.ui.guard import RequestGuard, SessionStore
from promixel.ui.terminal import TerminalSession

logger = logging.getLogger(__name__)

# One pending set per UI process: the same prompt submitted from two tabs of
# this process is still only in flight once.
_shared_pending = PendingSet()


def create_api_client(cfg: PromixelConfig) -> httpx.Client:
    """HTTP client pointed at the Promixel API."""
    return httpx.Client(base_url=cfg.api_base_url, timeout=cfg.client_timeout_seconds)


def initialize_terminal_state(
    state: TerminalSession | None,
    stored: dict[str, Any] | None,
    cfg: PromixelConfig,
    *,
    http_client: httpx.Client | None = None,
    auth_client: SupabaseAuthClient | None = None,
) -> TerminalSession:
    """Return ``state`` if it exists, otherwise build one from browser storage.

    Args:
        state: Existing session or None.
        stored: Browser storage snapshot produced by :func:`persist_terminal_state`.
        cfg: Application configuration.
        http_client: Client for the Promixel API; created when omitted.
        auth_client: Identity provider client; created from ``cfg`` when omitted.

    Returns:
        Ready-to-use terminal session.
    """
    if state is not None:
        return state

    stored = stored if isinstance(stored, dict) else {}
    logger.info("Creating new terminal session")

    guard = RequestGuard(
        cfg,
        http_client=http_client or create_api_client(cfg),
        session=SessionStore.from_dict(stored.get("guard")),
        pending=_shared_pending,
    )
    if auth_client is None:
        auth_client = SupabaseAuthClient(cfg.supabase_url, cfg.supabase_anon_key)

    session = TerminalSession(
        guard=guard,
        auth_client=auth_client,
        downloads_dir=cfg.downloads_dir,
        require_auth=auth_client.is_configured,
        auth=AuthSession.from_dict(stored.get("auth")),
    )
    if not session.require_auth:
        logger.warning("Identity provider not configured; generation does not require sign-in")
    return session


def persist_terminal_state(state: TerminalSession) -> dict[str, Any]:
    """Snapshot of the parts of ``state`` that should survive a reload."""
    return {
        "guard": state.guard.session.to_dict(),
        "auth": state.auth.to_dict() if state.signed_in else None,
    }
