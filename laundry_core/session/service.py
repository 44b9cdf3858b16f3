from __future__ import annotations

import logging

from laundry_core.logging.audit import audit_event, redact_token
from laundry_core.session.auth_api import AuthApi
from laundry_core.session.errors import SessionError
from laundry_core.session.models import LoginCredentials, TokenPair
from laundry_core.session.signals import SessionSignals
from laundry_core.session.token_store import TokenStore

logger = logging.getLogger(__name__)


class SessionService:
    """Login/logout front door and the in-memory "is authenticated" flag.

    The flag drops whenever :class:`SessionSignals` reports the session ended,
    whether from logout or from a failed refresh inside the request pipeline.
    """

    def __init__(self, token_store: TokenStore, auth_api: AuthApi, signals: SessionSignals) -> None:
        self._store = token_store
        self._auth_api = auth_api
        self._signals = signals
        self.username: str | None = None
        self.authenticated = token_store.has_session()
        self._dispose = signals.subscribe(self._on_session_ended)

    def restore(self) -> bool:
        self.authenticated = self._store.has_session()
        audit_event("session.restore", authenticated=self.authenticated)
        return self.authenticated

    def is_authenticated(self) -> bool:
        return self.authenticated and self._store.has_session()

    async def login(self, credentials: LoginCredentials) -> TokenPair:
        try:
            pair = await self._auth_api.login(credentials)
        except SessionError as exc:
            audit_event("session.login", ok=False, username=credentials.username, status=exc.status_code)
            self.authenticated = False
            raise
        self._store.save(pair)
        self.username = credentials.username
        self.authenticated = True
        audit_event(
            "session.login",
            ok=True,
            username=credentials.username,
            access_token=redact_token(pair.access_token),
        )
        return pair

    async def logout(self) -> None:
        refresh_token = self._store.get_refresh_token()
        try:
            if refresh_token:
                await self._auth_api.logout(refresh_token)
        except SessionError as exc:
            logger.warning("Remote logout failed: %s", exc)
        finally:
            self._store.clear()
            audit_event("session.logout", username=self.username)
            self._signals.emit_session_ended("logout")

    async def validate(self) -> bool:
        token = self._store.get_access_token()
        if not token:
            return False
        return await self._auth_api.validate(token)

    def close(self) -> None:
        self._dispose()

    def _on_session_ended(self, reason: str) -> None:
        logger.info("Session ended (%s)", reason)
        self.authenticated = False
        self.username = None
