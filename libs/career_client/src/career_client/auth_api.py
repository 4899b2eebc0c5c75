from __future__ import annotations

from career_client.client import AuthenticatedClient
from career_client.credentials import CredentialPair, CredentialStore
from career_client.envelopes import WireModel


class User(WireModel):
    id: str
    email: str
    created_at: str | None = None
    updated_at: str | None = None


class AuthLoginResponse(WireModel):
    access_token: str
    refresh_token: str
    user: User


class AuthApi:
    def __init__(self, client: AuthenticatedClient, store: CredentialStore) -> None:
        self._client = client
        self._store = store

    async def login(self, email: str, password: str) -> User:
        result: AuthLoginResponse = await self._client.request(
            "/auth/login",
            method="POST",
            body={"email": email, "password": password},
            authenticated=False,
            skip_auto_refresh=True,
            response_model=AuthLoginResponse,
        )
        self._store.write(
            CredentialPair(access_token=result.access_token, refresh_token=result.refresh_token)
        )
        return result.user

    async def register(self, email: str, password: str, confirm_password: str, code: str) -> User:
        return await self._client.request(
            "/auth/register",
            method="POST",
            body={
                "email": email,
                "password": password,
                "confirmPassword": confirm_password,
                "code": code,
            },
            authenticated=False,
            skip_auto_refresh=True,
            response_model=User,
        )

    async def send_register_code(self, email: str) -> None:
        await self._client.request(
            "/auth/send-register-code",
            method="POST",
            body={"email": email},
            authenticated=False,
            skip_auto_refresh=True,
        )

    async def current_user(self) -> User:
        return await self._client.request("/user", response_model=User)

    async def logout(self) -> None:
        """Revoke the session upstream; local credentials are cleared either way."""
        if not self._store.read().access_token:
            self._store.clear()
            return
        try:
            await self._client.request("/auth/logout", method="POST", skip_auto_refresh=True)
        finally:
            self._store.clear()
