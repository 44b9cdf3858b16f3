from __future__ import annotations

import os
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

import bcrypt
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from laundry_core.authorization.models import (
    ActionType,
    AuthorizationRequest,
    AuthorizationStatus,
    CreateAuthorizationRequest,
)
from laundry_core.logging.audit import audit_event, redact_token
from laundry_core.logging.logger import get_logger


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    password: str
    branch_office_id: Optional[str] = Field(default=None, alias="branchOfficeId")


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken")


class InvalidateRequest(BaseModel):
    entity_type: str
    entity_id: str


@dataclass
class IssuedToken:
    username: str
    expires_at: float


@dataclass
class MockState:
    username: str
    password_hash: str
    access_ttl: int
    access_tokens: Dict[str, IssuedToken] = field(default_factory=dict)
    refresh_tokens: Dict[str, str] = field(default_factory=dict)
    authorizations: Dict[str, AuthorizationRequest] = field(default_factory=dict)
    inactive: set[str] = field(default_factory=set)
    refresh_calls: int = 0

    def issue_pair(self, username: str) -> Dict[str, Any]:
        access_token = secrets.token_urlsafe(24)
        refresh_token = secrets.token_urlsafe(32)
        self.access_tokens[access_token] = IssuedToken(username=username, expires_at=time.time() + self.access_ttl)
        self.refresh_tokens[refresh_token] = username
        return {"accessToken": access_token, "refreshToken": refresh_token, "expiresIn": self.access_ttl}

    def user_for(self, access_token: str) -> Optional[str]:
        issued = self.access_tokens.get(access_token)
        if issued is None:
            return None
        if time.time() >= issued.expires_at:
            self.access_tokens.pop(access_token, None)
            return None
        return issued.username

    def pending_for(self, entity_type: str, entity_id: str) -> Optional[AuthorizationRequest]:
        for record in self.authorizations.values():
            if (
                record.entity_type == entity_type
                and record.entity_id == entity_id
                and record.status is AuthorizationStatus.PENDING
                and record.id not in self.inactive
            ):
                return record
        return None


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _envelope(data: Any = None, message: str = "OK", status_code: int = 200) -> Dict[str, Any]:
    return {"status": status_code, "message": message, "data": data, "timestamp": _now()}


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


def _bearer(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise _error(status.HTTP_401_UNAUTHORIZED, "missing_token", "Missing token")
    return auth_header.split(" ", 1)[1].strip()


def create_app() -> FastAPI:
    get_logger()
    username = os.getenv("LAUNDRY_MOCK_USERNAME", "admin")
    password = os.getenv("LAUNDRY_MOCK_PASSWORD", "admin123")
    state = MockState(
        username=username,
        password_hash=bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8"),
        access_ttl=int(os.getenv("LAUNDRY_MOCK_ACCESS_TTL", "900")),
    )
    app = FastAPI(title="Laundry Mock API")
    app.state.mock = state

    def require_user(request: Request) -> str:
        user = state.user_for(_bearer(request))
        if user is None:
            raise _error(status.HTTP_401_UNAUTHORIZED, "invalid_token", "Invalid or expired token")
        return user

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/auth/login")
    def login(payload: LoginRequest) -> Dict[str, Any]:
        valid = payload.username == state.username and bcrypt.checkpw(
            payload.password.encode("utf-8"), state.password_hash.encode("utf-8")
        )
        if not valid:
            audit_event("mock.login", ok=False, username=payload.username)
            raise _error(status.HTTP_401_UNAUTHORIZED, "invalid_credentials", "Invalid credentials")
        pair = state.issue_pair(payload.username)
        audit_event("mock.login", ok=True, username=payload.username, branch=payload.branch_office_id)
        return _envelope({**pair, "user": {"username": payload.username, "branchOfficeId": payload.branch_office_id}})

    @app.post("/auth/refresh")
    def refresh(payload: RefreshRequest) -> Dict[str, Any]:
        state.refresh_calls += 1
        user = state.refresh_tokens.pop(payload.refresh_token, None)
        if user is None:
            audit_event("mock.refresh", ok=False, refresh_token=redact_token(payload.refresh_token))
            raise _error(status.HTTP_401_UNAUTHORIZED, "invalid_refresh_token", "Refresh token invalid or expired")
        audit_event("mock.refresh", ok=True, username=user)
        return _envelope(state.issue_pair(user))

    @app.post("/auth/logout")
    def logout(payload: RefreshRequest) -> Dict[str, Any]:
        state.refresh_tokens.pop(payload.refresh_token, None)
        return _envelope(None, message="Logged out")

    @app.get("/auth/validate")
    def validate(request: Request) -> Dict[str, Any]:
        try:
            user = state.user_for(_bearer(request))
        except HTTPException:
            user = None
        return _envelope({"valid": user is not None})

    @app.post("/admin/expire-access-tokens")
    def expire_access_tokens() -> Dict[str, Any]:
        expired = len(state.access_tokens)
        state.access_tokens.clear()
        return _envelope({"expired": expired})

    @app.post("/authorizations/")
    def create_authorization(
        payload: CreateAuthorizationRequest,
        user: str = Depends(require_user),
    ) -> Dict[str, Any]:
        if state.pending_for(payload.entity_type, payload.entity_id) is not None:
            raise _error(status.HTTP_409_CONFLICT, "already_pending", "A request is already awaiting approval")
        now = _now()
        record = AuthorizationRequest(
            id=str(uuid4()),
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            action_type=payload.action_type,
            reason=payload.reason,
            requested_data=payload.requested_data,
            status=AuthorizationStatus.PENDING,
            requested_by_id=user,
            created_at=now,
            updated_at=now,
        )
        state.authorizations[record.id] = record
        audit_event("mock.authorization_created", authorization_id=record.id, username=user)
        return _envelope(record.model_dump(mode="json"), status_code=201)

    @app.get("/authorizations/")
    def list_authorizations(user: str = Depends(require_user)) -> Dict[str, Any]:
        items: List[Dict[str, Any]] = [
            record.model_dump(mode="json")
            for record in state.authorizations.values()
            if record.requested_by_id == user
        ]
        return _envelope(items)

    @app.get("/authorizations/check")
    def check_authorization(
        entity_type: str = Query(...),
        entity_id: str = Query(...),
        action_type: ActionType = Query(...),
        user: str = Depends(require_user),
    ) -> Dict[str, Any]:
        pending = state.pending_for(entity_type, entity_id)
        if pending is not None:
            return _envelope(
                {"hasAuthorization": False, "authorizationId": pending.id, "status": pending.status.value}
            )
        for record in state.authorizations.values():
            if (
                record.entity_type == entity_type
                and record.entity_id == entity_id
                and record.action_type is action_type
                and record.status is AuthorizationStatus.APPROVED
                and record.id not in state.inactive
            ):
                return _envelope(
                    {"hasAuthorization": True, "authorizationId": record.id, "status": record.status.value}
                )
        return _envelope({"hasAuthorization": False, "message": "No authorization found"})

    @app.post("/authorizations/invalidate")
    def invalidate_authorization(
        payload: InvalidateRequest,
        user: str = Depends(require_user),
    ) -> Dict[str, Any]:
        invalidated = 0
        for record in state.authorizations.values():
            if record.entity_type == payload.entity_type and record.entity_id == payload.entity_id:
                if record.id not in state.inactive:
                    state.inactive.add(record.id)
                    invalidated += 1
        audit_event("mock.authorization_invalidated", entity_id=payload.entity_id, count=invalidated)
        return _envelope({"invalidated": invalidated})

    @app.get("/authorizations/{authorization_id}")
    def get_authorization(authorization_id: str, user: str = Depends(require_user)) -> Dict[str, Any]:
        record = state.authorizations.get(authorization_id)
        if record is None:
            raise _error(status.HTTP_404_NOT_FOUND, "not_found", "Authorization not found")
        return _envelope(record.model_dump(mode="json"))

    def _decide(authorization_id: str, decision: AuthorizationStatus, approver: str) -> Dict[str, Any]:
        record = state.authorizations.get(authorization_id)
        if record is None:
            raise _error(status.HTTP_404_NOT_FOUND, "not_found", "Authorization not found")
        if record.status is not AuthorizationStatus.PENDING:
            raise _error(status.HTTP_409_CONFLICT, "already_decided", "Authorization already decided")
        updated = record.model_copy(
            update={"status": decision, "approved_by_id": approver, "updated_at": _now()}
        )
        state.authorizations[authorization_id] = updated
        audit_event("mock.authorization_decided", authorization_id=authorization_id, status=decision.value)
        return _envelope(updated.model_dump(mode="json"))

    @app.post("/authorizations/{authorization_id}/approve")
    def approve_authorization(
        authorization_id: str,
        user: str = Depends(require_user),
    ) -> Dict[str, Any]:
        return _decide(authorization_id, AuthorizationStatus.APPROVED, user)

    @app.post("/authorizations/{authorization_id}/reject")
    def reject_authorization(
        authorization_id: str,
        user: str = Depends(require_user),
    ) -> Dict[str, Any]:
        return _decide(authorization_id, AuthorizationStatus.REJECTED, user)

    return app


app = create_app()
