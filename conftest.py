from __future__ import annotations

import asyncio
import importlib.util
import json
from typing import Any

import httpx
import pytest
from career_client.session import ApiSession
from career_client.settings import ClientSettings
from career_client.storage import KeyValueStorage, MemoryStorage

# Tester service tests depend on optional pydantic email extras.
# Skip collecting them when email-validator is not installed.
if importlib.util.find_spec("email_validator") is None:
    collect_ignore_glob = [
        "services/tester/tests/*",
        "tests/test_smoke_harness.py",
    ]

API_URL = "http://career.test/api"
TEST_EMAIL = "candidate@example.com"
TEST_PASSWORD = "correct-horse"
TEST_USER = {"id": "user-1", "email": TEST_EMAIL, "createdAt": "2026-02-26T10:00:00.000Z"}


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def error_body(code: str, message: str, details: list[str] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details is not None:
        body["error"]["details"] = details
    return body


class FakeCareerApi:
    """In-memory career API speaking the success/error envelope contract.

    Access tokens stay valid until ``expire_access_tokens`` is called and
    refresh tokens are single use, like the real rotation scheme.
    """

    base_url = API_URL
    prefix = "/api"
    email = TEST_EMAIL
    password = TEST_PASSWORD
    user = TEST_USER
    ok = staticmethod(ok)
    error_body = staticmethod(error_body)

    def __init__(self) -> None:
        self.active_access_tokens: set[str] = set()
        self.refresh_tokens: set[str] = set()
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {
            ("GET", "/user"): (200, ok(TEST_USER)),
            ("POST", "/auth/logout"): (200, ok("Logged out")),
        }
        self.public_paths: set[tuple[str, str]] = {
            ("POST", "/auth/register"),
            ("POST", "/auth/send-register-code"),
        }
        self.refresh_override: tuple[int, Any] | None = None
        self.refresh_gate: asyncio.Event | None = None
        self.route_gates: dict[tuple[str, str], asyncio.Event] = {}
        self.requests: list[httpx.Request] = []
        self._issued = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def issue_pair(self) -> tuple[str, str]:
        self._issued += 1
        access_token = f"access-{self._issued}"
        refresh_token = f"refresh-{self._issued}"
        self.active_access_tokens.add(access_token)
        self.refresh_tokens.add(refresh_token)
        return access_token, refresh_token

    def expire_access_tokens(self) -> None:
        self.active_access_tokens.clear()

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and request.url.path == f"{self.prefix}{path}"
        ]

    def bearer_tokens(self, method: str, path: str) -> list[str | None]:
        tokens: list[str | None] = []
        for request in self.calls(method, path):
            header = request.headers.get("authorization")
            tokens.append(header.removeprefix("Bearer ") if header else None)
        return tokens

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(self.prefix)
        key = (request.method, path)

        if key == ("POST", "/auth/refresh"):
            return await self._refresh(request)
        if key == ("POST", "/auth/login"):
            return self._login(request)

        header = request.headers.get("authorization", "")
        token = header.removeprefix("Bearer ")
        if key not in self.public_paths and token not in self.active_access_tokens:
            return httpx.Response(401, json=error_body("UNAUTHORIZED", "Unauthorized"))

        gate = self.route_gates.get(key)
        if gate is not None:
            await gate.wait()
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json=error_body("NOT_FOUND", f"Cannot {key[0]} {path}"))
        status_code, payload = route
        if isinstance(payload, (bytes, str)):
            return httpx.Response(status_code, content=payload)
        return httpx.Response(status_code, json=payload)

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        if self.refresh_override is not None:
            status_code, payload = self.refresh_override
            return httpx.Response(status_code, json=payload)

        refresh_token = json.loads(request.content or b"{}").get("refreshToken")
        if refresh_token not in self.refresh_tokens:
            return httpx.Response(
                401,
                json={"success": False, **error_body("UNAUTHORIZED", "Invalid refresh token")},
            )
        self.refresh_tokens.discard(refresh_token)
        access_token, new_refresh_token = self.issue_pair()
        return httpx.Response(
            200, json=ok({"accessToken": access_token, "refreshToken": new_refresh_token})
        )

    def _login(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content or b"{}")
        if payload.get("email") != TEST_EMAIL or payload.get("password") != TEST_PASSWORD:
            return httpx.Response(
                401, json=error_body("INVALID_CREDENTIALS", "Invalid email or password")
            )
        access_token, refresh_token = self.issue_pair()
        return httpx.Response(
            200,
            json=ok(
                {"accessToken": access_token, "refreshToken": refresh_token, "user": TEST_USER}
            ),
        )


@pytest.fixture
def career_api() -> FakeCareerApi:
    return FakeCareerApi()


@pytest.fixture
def make_session(career_api: FakeCareerApi):
    def factory(storage: KeyValueStorage | None = None, **settings: Any) -> ApiSession:
        return ApiSession(
            ClientSettings(api_url=career_api.base_url, **settings),
            storage=storage if storage is not None else MemoryStorage(),
            transport=career_api.transport,
        )

    return factory
