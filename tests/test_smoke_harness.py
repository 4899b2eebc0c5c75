from __future__ import annotations

import asyncio

import pytest
from career_client.credentials import CredentialPair
from career_client.storage import JsonFileStorage
from fastapi.testclient import TestClient
from tester.main import create_app

pytestmark = [pytest.mark.integration, pytest.mark.smoke]


def test_smoke_tester_login_and_profile(career_api, make_session) -> None:
    with TestClient(create_app(session_factory=make_session)) as client:
        health = client.get("/health")
        login = client.post(
            "/api/session/login",
            json={"email": career_api.email, "password": career_api.password},
        )
        career_api.expire_access_tokens()
        me = client.get("/api/me")
        logout = client.post("/api/session/logout")

    assert health.status_code == 200
    assert login.status_code == 200
    assert me.status_code == 200
    assert me.json()["career_response"]["email"] == career_api.email
    assert logout.status_code == 200
    assert len(career_api.calls("POST", "/auth/refresh")) == 1


def test_smoke_file_backed_session_survives_restart(career_api, make_session, tmp_path) -> None:
    path = tmp_path / "tokens.json"

    async def sign_in() -> None:
        async with make_session(JsonFileStorage(path)) as session:
            await session.auth.login(career_api.email, career_api.password)

    async def resume() -> CredentialPair:
        async with make_session(JsonFileStorage(path)) as session:
            await session.auth.current_user()
            return session.store.read()

    asyncio.run(sign_in())
    pair = asyncio.run(resume())

    assert pair == CredentialPair("access-1", "refresh-1")
    assert career_api.bearer_tokens("GET", "/user") == ["access-1"]
