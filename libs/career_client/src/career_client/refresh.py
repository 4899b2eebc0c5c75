from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from career_client.credentials import CredentialPair, CredentialStore
from career_client.envelopes import RefreshEnvelope

LOGGER = logging.getLogger("career.client")

REFRESH_PATH = "/auth/refresh"


class RefreshCoordinator:
    """Coalesces concurrent credential refreshes into a single backend call.

    The first caller starts a task and parks it in ``_inflight``; callers that
    arrive before it settles await the same task. Failures never raise: the
    stored pair is cleared and every caller receives ``None``.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        *,
        path: str = REFRESH_PATH,
    ) -> None:
        self._http = http
        self._store = store
        self._path = path
        self._inflight: asyncio.Task[CredentialPair | None] | None = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def refresh(self) -> CredentialPair | None:
        task = self._inflight
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh_once())
            task.add_done_callback(self._settle)
            self._inflight = task
        # A cancelled caller must not cancel the refresh other callers share.
        return await asyncio.shield(task)

    def _settle(self, task: asyncio.Task[CredentialPair | None]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh_once(self) -> CredentialPair | None:
        try:
            return await self._attempt_refresh()
        except Exception as exc:
            LOGGER.exception(
                json.dumps(
                    {"event": "credential_refresh", "status": "error", "error": repr(exc)}
                )
            )
            return self._fail("unexpected_error", error_type=type(exc).__name__)

    async def _attempt_refresh(self) -> CredentialPair | None:
        refresh_token = self._store.read().refresh_token
        if not refresh_token:
            self._log("skipped", reason="missing_refresh_token")
            return None

        try:
            response = await self._http.post(self._path, json={"refreshToken": refresh_token})
        except httpx.HTTPError as exc:
            return self._fail("transport_error", error=str(exc))

        if not response.is_success:
            return self._fail("rejected", status_code=response.status_code)

        try:
            envelope = RefreshEnvelope.model_validate(response.json())
        except ValueError:
            return self._fail("malformed_response", status_code=response.status_code)

        pair = CredentialPair(
            access_token=envelope.data.access_token,
            refresh_token=envelope.data.refresh_token,
        )
        self._store.write(pair)
        self._log("ok", status_code=response.status_code)
        return pair

    def _fail(self, reason: str, **fields: Any) -> None:
        self._store.clear()
        self._log("failed", reason=reason, **fields)
        return None

    def _log(self, status: str, **fields: Any) -> None:
        level = logging.WARNING if status == "failed" else logging.INFO
        LOGGER.log(level, json.dumps({"event": "credential_refresh", "status": status, **fields}))
