"""Unauthenticated calls against the remote ``/auth`` endpoints."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from adapters.http.transport import HttpTransport
from laundry_core.session.errors import ApiError, TransportError
from laundry_core.session.models import ApiRequest, ApiResponse, LoginCredentials, TokenPair

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/auth"


def _token_pair_from(response: ApiResponse) -> TokenPair:
    response.raise_for_status()
    data: Any = response.envelope().data
    if not isinstance(data, dict):
        raise ApiError("Token response is missing its data block", status_code=502)
    try:
        return TokenPair.model_validate(data)
    except ValidationError as exc:
        raise ApiError("Token response is malformed", status_code=502) from exc


class AuthApi:
    def __init__(self, transport: HttpTransport, prefix: str = AUTH_PREFIX) -> None:
        self._transport = transport
        self._prefix = prefix.rstrip("/")

    async def login(self, credentials: LoginCredentials) -> TokenPair:
        response = await self._transport.send(
            ApiRequest("POST", f"{self._prefix}/login", json=credentials.as_payload())
        )
        return _token_pair_from(response)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair.

        Raises :class:`ApiError` when the server rejects the token and
        :class:`TransportError` when it cannot be reached.
        """
        response = await self._transport.send(
            ApiRequest("POST", f"{self._prefix}/refresh", json={"refreshToken": refresh_token})
        )
        return _token_pair_from(response)

    async def logout(self, refresh_token: str) -> None:
        response = await self._transport.send(
            ApiRequest("POST", f"{self._prefix}/logout", json={"refreshToken": refresh_token})
        )
        response.raise_for_status()

    async def validate(self, access_token: str) -> bool:
        request = ApiRequest("GET", f"{self._prefix}/validate").with_header(
            "Authorization", f"Bearer {access_token}"
        )
        try:
            response = await self._transport.send(request)
        except TransportError:
            logger.debug("Token validation skipped: server unreachable")
            return False
        if not response.ok:
            return False
        data = response.envelope().data
        return bool(isinstance(data, dict) and data.get("valid"))
