from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from adapters.http.transport import HttpTransport
from laundry_core.logging.audit import audit_event
from laundry_core.session.errors import RequestRetryExhausted
from laundry_core.session.models import ApiRequest, ApiResponse
from laundry_core.session.refresh import TokenRefresher
from laundry_core.session.token_store import TokenStore

logger = logging.getLogger(__name__)


class AuthenticatedClient:
    """Outbound request pipeline.

    Attaches ``Authorization: Bearer <token>`` from the token store and, on a
    401, refreshes through the shared :class:`TokenRefresher` and replays the
    request once. A second 401 raises :class:`RequestRetryExhausted`.
    """

    def __init__(self, transport: HttpTransport, token_store: TokenStore, refresher: TokenRefresher) -> None:
        self._transport = transport
        self._store = token_store
        self._refresher = refresher

    async def send(self, request: ApiRequest) -> ApiResponse:
        token = self._store.get_access_token()
        response = await self._transport.send(_authorize(request, token))
        if not response.unauthorized:
            return response
        if request.retried:
            raise RequestRetryExhausted(request.method, request.path)

        logger.debug("%s %s unauthorized; refreshing token", request.method, request.path)
        fresh_token = await self._fresh_token(token)
        retried = request.mark_retried()
        response = await self._transport.send(_authorize(retried, fresh_token))
        if response.unauthorized:
            audit_event("session.retry_exhausted", method=request.method, path=request.path)
            raise RequestRetryExhausted(request.method, request.path)
        return response

    async def _fresh_token(self, stale_token: Optional[str]) -> str:
        current = self._store.get_access_token()
        if current and current != stale_token and not self._refresher.in_flight:
            # Another caller already rotated the token after this request went out.
            return current
        return await self._refresher.refresh()

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        response = await self.send(ApiRequest(method, path, params=params, json=json))
        response.raise_for_status()
        return response.envelope().data

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request_json("GET", path, params=params)

    async def post_json(self, path: str, payload: Optional[Any] = None) -> Any:
        return await self.request_json("POST", path, json=payload)


def _authorize(request: ApiRequest, token: Optional[str]) -> ApiRequest:
    if not token:
        return request
    return request.with_header("Authorization", f"Bearer {token}")
