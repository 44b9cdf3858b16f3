from __future__ import annotations

import json
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from laundry_core.session.errors import ApiError

UNAUTHORIZED = 401


class TokenPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in: int = Field(default=3600, alias="expiresIn", ge=0)


class LoginCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    password: str
    branch_office_id: Optional[str] = Field(default=None, alias="branchOfficeId")

    def as_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ApiEnvelope(BaseModel):
    status: int = 200
    message: str = ""
    data: Any = None
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class ApiRequest:
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)
    retried: bool = False

    def with_header(self, name: str, value: str) -> "ApiRequest":
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=headers)

    def mark_retried(self) -> "ApiRequest":
        return replace(self, retried=True)


@dataclass
class ApiResponse:
    status_code: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed: float = 0.0
    received_at: float = field(default_factory=time.time)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def unauthorized(self) -> bool:
        return self.status_code == UNAUTHORIZED

    def envelope(self) -> ApiEnvelope:
        if isinstance(self.body, dict):
            return ApiEnvelope(
                status=self.body.get("status", self.status_code),
                message=self.body.get("message") or "",
                data=self.body.get("data"),
                timestamp=self.body.get("timestamp"),
            )
        return ApiEnvelope(status=self.status_code, data=self.body)

    def error_message(self) -> str:
        if isinstance(self.body, dict):
            for key in ("message", "detail", "error"):
                value = self.body.get(key)
                if isinstance(value, str) and value:
                    return value
                if isinstance(value, dict) and isinstance(value.get("message"), str):
                    return value["message"]
        if isinstance(self.body, str) and self.body:
            return self.body
        return "Server error"

    def raise_for_status(self) -> None:
        if self.ok:
            return
        payload = self.body if isinstance(self.body, dict) else None
        raise ApiError(self.error_message(), status_code=self.status_code, payload=payload)


def decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text
