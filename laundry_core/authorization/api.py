from __future__ import annotations

from typing import List

from laundry_core.authorization.models import (
    ActionType,
    AuthorizationCheck,
    AuthorizationRequest,
    AuthorizationStatus,
    CreateAuthorizationRequest,
)
from laundry_core.session.errors import ApiError
from laundry_core.session.pipeline import AuthenticatedClient

AUTHORIZATIONS_PREFIX = "/authorizations"


class AuthorizationsApi:
    """Authorization record endpoints, called through the authenticated pipeline."""

    def __init__(self, client: AuthenticatedClient, prefix: str = AUTHORIZATIONS_PREFIX) -> None:
        self._client = client
        self._prefix = prefix.rstrip("/")

    async def create(self, payload: CreateAuthorizationRequest) -> AuthorizationRequest:
        data = await self._client.post_json(
            f"{self._prefix}/",
            payload.model_dump(mode="json", exclude_none=True),
        )
        return _record(data)

    async def get(self, authorization_id: str) -> AuthorizationRequest:
        data = await self._client.get_json(f"{self._prefix}/{authorization_id}")
        return _record(data)

    async def check(self, entity_type: str, entity_id: str, action_type: ActionType) -> AuthorizationCheck:
        data = await self._client.get_json(
            f"{self._prefix}/check",
            params={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action_type": action_type.value,
            },
        )
        return AuthorizationCheck.model_validate(data or {})

    async def invalidate(self, entity_type: str, entity_id: str) -> None:
        await self._client.post_json(
            f"{self._prefix}/invalidate",
            {"entity_type": entity_type, "entity_id": entity_id},
        )

    async def list_mine(self) -> List[AuthorizationRequest]:
        data = await self._client.get_json(f"{self._prefix}/")
        return [_record(item) for item in data or []]

    async def approved(self) -> List[AuthorizationRequest]:
        return [item for item in await self.list_mine() if item.status is AuthorizationStatus.APPROVED]


def _record(data: object) -> AuthorizationRequest:
    if not isinstance(data, dict):
        raise ApiError("Authorization response is missing its data block", status_code=502)
    return AuthorizationRequest.model_validate(data)
