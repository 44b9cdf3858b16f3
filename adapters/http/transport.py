from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Protocol

import requests

from laundry_core.session.errors import TransportError
from laundry_core.session.models import ApiRequest, ApiResponse, decode_body

logger = logging.getLogger(__name__)


class HttpTransport(Protocol):
    async def send(self, request: ApiRequest) -> ApiResponse:
        ...


class RequestsTransport:
    """Dispatches :class:`ApiRequest` objects with a ``requests`` session.

    The blocking call runs in a worker thread so the event loop is never held
    up. Any object with a requests-compatible ``request()`` method can be
    passed as ``session``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        max_retries: int = 2,
        session: Any = None,
        default_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = {"Content-Type": "application/json", **(default_headers or {})}
        if session is None:
            session = requests.Session()
            adapter = requests.adapters.HTTPAdapter(max_retries=max_retries)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def send(self, request: ApiRequest) -> ApiResponse:
        return await asyncio.to_thread(self._send_blocking, request)

    def _send_blocking(self, request: ApiRequest) -> ApiResponse:
        url = self.url_for(request.path)
        headers = {**self.default_headers, **request.headers}
        started = time.monotonic()
        try:
            response = self._session.request(
                request.method,
                url,
                params=request.params,
                json=request.json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.debug("Transport failure for %s %s: %s", request.method, url, exc)
            raise TransportError(f"Could not reach the server: {exc}") from exc
        elapsed = time.monotonic() - started
        logger.debug("%s %s -> %s (%.3fs)", request.method, url, response.status_code, elapsed)
        return ApiResponse(
            status_code=response.status_code,
            body=decode_body(response.text),
            headers=dict(response.headers),
            elapsed=elapsed,
        )

    def close(self) -> None:
        close = getattr(self._session, "close", None)
        if callable(close):
            close()
