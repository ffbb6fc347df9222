from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from identity_service.api import routes

SIGNUP = {
    "email": "alice@example.com",
    "password": "Secret123!",
    "password_confirmation": "Secret123!",
}


@pytest.fixture
def api_client(service, bus):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.account_service = service

    with TestClient(app) as client:
        yield client, bus


def _activated_tokens(client, bus) -> dict:
    assert client.post("/v1/auth/signup", json=SIGNUP).status_code == 201
    code = bus.events()[-1]["verification_code"]
    assert client.get(f"/v1/auth/verify/{code}").status_code == 200
    response = client.post(
        "/v1/auth/signin", json={"email": SIGNUP["email"], "password": SIGNUP["password"]}
    )
    assert response.status_code == 200
    return response.json()


def test_signup_returns_pending_account_without_secrets(api_client):
    client, bus = api_client
    response = client.post("/v1/auth/signup", json=SIGNUP)
    assert response.status_code == 201
    body = response.json()
    assert body["state"] == "pending"
    assert body["account_id"]
    assert "verification_code" not in body
    assert "password_hash" not in body
    assert len(bus.published) == 1


def test_signup_conflicts_and_validation(api_client):
    client, _ = api_client
    assert client.post("/v1/auth/signup", json=SIGNUP).status_code == 201

    duplicate = client.post("/v1/auth/signup", json=SIGNUP)
    assert duplicate.status_code == 409

    mismatch = client.post(
        "/v1/auth/signup",
        json={**SIGNUP, "email": "bob@example.com", "password_confirmation": "other"},
    )
    assert mismatch.status_code == 400


def test_signup_reports_delivery_failure(api_client):
    client, bus = api_client
    bus.fail_with = "broker down"
    response = client.post("/v1/auth/signup", json=SIGNUP)
    assert response.status_code == 502


def test_verify_is_single_use(api_client):
    client, bus = api_client
    client.post("/v1/auth/signup", json=SIGNUP)
    code = bus.events()[0]["verification_code"]

    first = client.get(f"/v1/auth/verify/{code}")
    assert first.status_code == 200
    assert first.json()["state"] == "active"
    assert client.get(f"/v1/auth/verify/{code}").status_code == 409
    assert client.get("/v1/auth/verify/" + "Z" * 64).status_code == 404


def test_signin_returns_token_pair(api_client):
    client, bus = api_client
    tokens = _activated_tokens(client, bus)
    assert tokens["token_type"] == "bearer"
    assert tokens["access_token"]
    assert tokens["refresh_token"]
    assert tokens["expires_in"] == 900


def test_signin_failures_share_one_response(api_client):
    client, bus = api_client
    _activated_tokens(client, bus)
    wrong = client.post("/v1/auth/signin", json={"email": SIGNUP["email"], "password": "nope"})
    unknown = client.post("/v1/auth/signin", json={"email": "ghost@example.com", "password": "nope"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"detail": "invalid credentials"}


def test_profile_requires_bearer_token(api_client):
    client, bus = api_client
    tokens = _activated_tokens(client, bus)

    assert client.get("/v1/users/me").status_code == 401
    assert client.get("/v1/users/me", headers={"Authorization": "Bearer junk"}).status_code == 401

    for token in (tokens["access_token"], tokens["refresh_token"]):
        response = client.get("/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == SIGNUP["email"]
        assert body["state"] == "active"


def test_change_password_flow(api_client):
    client, bus = api_client
    tokens = _activated_tokens(client, bus)
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = client.post("/v1/users/change-password", json={"password": "N3w-Secret!"}, headers=headers)
    assert response.status_code == 204

    old = client.post("/v1/auth/signin", json={"email": SIGNUP["email"], "password": SIGNUP["password"]})
    new = client.post("/v1/auth/signin", json={"email": SIGNUP["email"], "password": "N3w-Secret!"})
    assert old.status_code == 401
    assert new.status_code == 200

    empty = client.post("/v1/users/change-password", json={"password": ""}, headers=headers)
    assert empty.status_code == 400


def test_resend_verification(api_client):
    client, bus = api_client
    client.post("/v1/auth/signup", json=SIGNUP)
    response = client.post("/v1/auth/verification/resend", json={"email": SIGNUP["email"]})
    assert response.status_code == 202
    assert len(bus.published) == 2


def _operation_count(operation: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "identity_operations_total", {"operation": operation, "outcome": outcome}
    )
    return value or 0.0


def test_profile_and_resend_outcomes_are_counted(api_client):
    client, bus = api_client
    resend_ok = _operation_count("resend_verification", "ok")
    resend_missing = _operation_count("resend_verification", "NotFoundError")
    profile_ok = _operation_count("get_profile", "ok")
    profile_bad = _operation_count("get_profile", "TokenMalformedError")

    client.post("/v1/auth/verification/resend", json={"email": "ghost@example.com"})
    tokens = _activated_tokens(client, bus)
    client.get("/v1/users/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    client.get("/v1/users/me", headers={"Authorization": "Bearer junk"})

    assert _operation_count("resend_verification", "NotFoundError") == resend_missing + 1
    assert _operation_count("resend_verification", "ok") == resend_ok
    assert _operation_count("get_profile", "ok") == profile_ok + 1
    assert _operation_count("get_profile", "TokenMalformedError") == profile_bad + 1
