from __future__ import annotations

from typing import Optional


class SessionError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NoRefreshToken(SessionError):
    def __init__(self, message: str = "No refresh token available."):
        super().__init__(message, status_code=401)


class RefreshFailed(SessionError):
    """The refresh token was rejected; the session has been torn down."""

    def __init__(self, message: str = "Session expired. Please sign in again."):
        super().__init__(message, status_code=401)


class RequestRetryExhausted(SessionError):
    def __init__(self, method: str, url: str):
        super().__init__(f"{method} {url} is still unauthorized after a token refresh.", status_code=401)
        self.method = method
        self.url = url


class ApiError(SessionError):
    def __init__(self, message: str, status_code: int, payload: Optional[dict] = None):
        super().__init__(message, status_code=status_code)
        self.payload = payload or {}


class TransportError(SessionError):
    def __init__(self, message: str = "Could not reach the server."):
        super().__init__(message, status_code=503)
