from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuthorizationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def terminal(self) -> bool:
        return self is not AuthorizationStatus.PENDING


class AuthorizationOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    INVALIDATED = "invalidated"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class CreateAuthorizationRequest(BaseModel):
    entity_type: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    action_type: ActionType
    reason: str = Field(min_length=1)
    requested_data: Optional[Dict[str, Any]] = None


class AuthorizationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    entity_type: str
    entity_id: str
    action_type: ActionType
    reason: str = ""
    status: AuthorizationStatus = AuthorizationStatus.PENDING
    requested_data: Optional[Dict[str, Any]] = None
    requested_by_id: Optional[str] = None
    approved_by_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AuthorizationCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_authorization: bool = Field(default=False, alias="hasAuthorization")
    authorization_id: Optional[str] = Field(default=None, alias="authorizationId")
    message: Optional[str] = None
    status: Optional[AuthorizationStatus] = None

    @property
    def pending(self) -> bool:
        return self.status is AuthorizationStatus.PENDING
