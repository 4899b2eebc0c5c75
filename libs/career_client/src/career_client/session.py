from __future__ import annotations

import asyncio
import contextlib
import json
import logging

import httpx

from career_client.auth_api import AuthApi
from career_client.client import AuthenticatedClient
from career_client.credentials import CredentialStore
from career_client.events import EventBus
from career_client.refresh import RefreshCoordinator
from career_client.settings import ClientSettings, load_settings
from career_client.storage import JsonFileStorage, KeyValueStorage, MemoryStorage, StorageWatcher
from career_client.workspace import WorkspaceApi

LOGGER = logging.getLogger("career.client")


def build_storage(settings: ClientSettings) -> KeyValueStorage:
    if settings.credentials_file:
        return JsonFileStorage(settings.credentials_file)
    return MemoryStorage()


class ApiSession:
    """Owns one process-wide set of credentials and the clients built on them."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        storage: KeyValueStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.storage = storage if storage is not None else build_storage(self.settings)
        self.http = httpx.AsyncClient(
            base_url=self.settings.api_url,
            timeout=self.settings.timeout_seconds,
            transport=transport,
        )
        self.bus = EventBus()
        self.store = CredentialStore(self.storage, self.bus)
        self.coordinator = RefreshCoordinator(self.http, self.store)
        self.client = AuthenticatedClient(self.http, self.store, self.coordinator)
        self.auth = AuthApi(self.client, self.store)
        self.workspace = WorkspaceApi(
            self.client,
            self.store,
            summary_ttl_seconds=self.settings.workspace_summary_ttl_seconds,
            diagnostics_ttl_seconds=self.settings.run_diagnostics_ttl_seconds,
        )
        self.watcher: StorageWatcher | None = None
        if isinstance(self.storage, JsonFileStorage) and self.settings.credentials_poll_seconds > 0:
            self.watcher = StorageWatcher(
                self.storage,
                self.store.notify_external_change,
                interval_seconds=self.settings.credentials_poll_seconds,
            )
        self._watcher_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self.watcher is not None and self._watcher_task is None:
            self._watcher_task = asyncio.create_task(self.watcher.run())
        LOGGER.info(
            json.dumps(
                {
                    "event": "session_started",
                    "api_url": self.settings.api_url,
                    "storage": type(self.storage).__name__,
                    "watching": self._watcher_task is not None,
                }
            )
        )

    async def aclose(self) -> None:
        if self._watcher_task:
            self._watcher_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watcher_task
            self._watcher_task = None
        self.workspace.close()
        await self.http.aclose()

    async def __aenter__(self) -> ApiSession:
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> bool:
        await self.aclose()
        return False
