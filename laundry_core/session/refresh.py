from __future__ import annotations

import asyncio
import logging
from typing import Optional

from laundry_core.logging.audit import audit_event, redact_token
from laundry_core.session.auth_api import AuthApi
from laundry_core.session.errors import ApiError, NoRefreshToken, RefreshFailed, TransportError
from laundry_core.session.signals import SessionSignals
from laundry_core.session.token_store import TokenStore

logger = logging.getLogger(__name__)


class TokenRefresher:
    """Single-flight access token refresh.

    While a refresh is outstanding every caller awaits the same task, so the
    remote refresh endpoint is hit at most once per expiry. A failed refresh
    clears the token store and emits ``session ended`` exactly once, inside
    the shared task.
    """

    def __init__(self, token_store: TokenStore, auth_api: AuthApi, signals: SessionSignals) -> None:
        self._store = token_store
        self._auth_api = auth_api
        self._signals = signals
        self._inflight: Optional[asyncio.Task[str]] = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def refresh(self) -> str:
        if self._inflight is None:
            task = asyncio.ensure_future(self._run())
            task.add_done_callback(self._release)
            self._inflight = task
        else:
            logger.debug("Joining in-flight token refresh")
        # A cancelled caller must not cancel the shared refresh.
        return await asyncio.shield(self._inflight)

    def _release(self, task: "asyncio.Task[str]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            task.exception()

    async def _run(self) -> str:
        refresh_token = self._store.get_refresh_token()
        if not refresh_token:
            self._end_session("no_refresh_token")
            raise NoRefreshToken()
        try:
            pair = await self._auth_api.refresh(refresh_token)
        except (ApiError, TransportError) as exc:
            logger.warning("Token refresh failed: %s", exc)
            self._end_session("refresh_failed")
            raise RefreshFailed() from exc
        self._store.save(pair)
        audit_event("session.refresh", ok=True, access_token=redact_token(pair.access_token))
        return pair.access_token

    def _end_session(self, reason: str) -> None:
        self._store.clear()
        audit_event("session.ended", reason=reason)
        self._signals.emit_session_ended(reason)
