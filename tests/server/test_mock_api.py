from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from apps.mock_api.main import create_app


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("LAUNDRY_MOCK_USERNAME", "admin")
    monkeypatch.setenv("LAUNDRY_MOCK_PASSWORD", "testpass")
    return TestClient(create_app())


def _login(client: TestClient) -> dict:
    response = client.post("/auth/login", json={"username": "admin", "password": "testpass"})
    assert response.status_code == 200
    return response.json()["data"]


def _headers(tokens: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


def test_login_rejects_bad_password(client: TestClient) -> None:
    response = client.post("/auth/login", json={"username": "admin", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["detail"]["message"] == "Invalid credentials"


def test_refresh_rotates_and_revokes_old_token(client: TestClient) -> None:
    tokens = _login(client)
    refreshed = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    new_tokens = refreshed.json()["data"]
    assert new_tokens["accessToken"] != tokens["accessToken"]

    replay = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert replay.status_code == 401


def test_validate_and_expire_access_tokens(client: TestClient) -> None:
    tokens = _login(client)
    assert client.get("/auth/validate", headers=_headers(tokens)).json()["data"]["valid"] is True

    client.post("/admin/expire-access-tokens")

    assert client.get("/auth/validate", headers=_headers(tokens)).json()["data"]["valid"] is False
    assert client.get("/authorizations/", headers=_headers(tokens)).status_code == 401


def test_authorization_lifecycle(client: TestClient) -> None:
    headers = _headers(_login(client))
    body = {"entity_type": "order", "entity_id": "42", "action_type": "UPDATE", "reason": "fix weight"}

    created = client.post("/authorizations/", json=body, headers=headers)
    assert created.status_code == 200
    record = created.json()["data"]
    assert record["status"] == "PENDING"

    duplicate = client.post("/authorizations/", json=body, headers=headers)
    assert duplicate.status_code == 409

    check = client.get(
        "/authorizations/check",
        params={"entity_type": "order", "entity_id": "42", "action_type": "UPDATE"},
        headers=headers,
    ).json()["data"]
    assert check["authorizationId"] == record["id"]
    assert check["status"] == "PENDING"

    approved = client.post(f"/authorizations/{record['id']}/approve", headers=headers)
    assert approved.json()["data"]["status"] == "APPROVED"
    assert client.post(f"/authorizations/{record['id']}/reject", headers=headers).status_code == 409

    fetched = client.get(f"/authorizations/{record['id']}", headers=headers).json()["data"]
    assert fetched["status"] == "APPROVED"
    assert fetched["approved_by_id"] == "admin"

    listing = client.get("/authorizations/", headers=headers).json()["data"]
    assert [item["id"] for item in listing] == [record["id"]]


def test_invalidate_frees_the_entity(client: TestClient) -> None:
    headers = _headers(_login(client))
    body = {"entity_type": "order", "entity_id": "7", "action_type": "DELETE", "reason": "duplicate"}
    assert client.post("/authorizations/", json=body, headers=headers).status_code == 200

    invalidated = client.post(
        "/authorizations/invalidate", json={"entity_type": "order", "entity_id": "7"}, headers=headers
    )
    assert invalidated.json()["data"]["invalidated"] == 1
    assert client.post("/authorizations/", json=body, headers=headers).status_code == 200


def test_unknown_authorization_is_404(client: TestClient) -> None:
    headers = _headers(_login(client))
    response = client.get("/authorizations/missing", headers=headers)
    assert response.status_code == 404
    assert response.json()["detail"]["message"] == "Authorization not found"
