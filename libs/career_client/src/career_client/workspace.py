from __future__ import annotations

from collections.abc import Callable
from typing import Any

from common.ttl_cache import TTLCache
from common.utils import monotonic_ms

from career_client.client import AuthenticatedClient
from career_client.credentials import CredentialStore
from career_client.envelopes import WireModel

ANONYMOUS_KEY = "anonymous"


class SummaryProfile(WireModel):
    exists: bool
    status: str | None = None
    version: int | None = None
    updated_at: str | None = None


class SummaryProfileInput(WireModel):
    exists: bool
    updated_at: str | None = None


class SummaryOffers(WireModel):
    total: int
    scored: int
    last_updated_at: str | None = None


class SummaryScrape(WireModel):
    last_run_status: str | None = None
    last_run_at: str | None = None
    total_runs: int


class SummaryWorkflow(WireModel):
    needs_onboarding: bool


class WorkspaceSummary(WireModel):
    profile: SummaryProfile
    profile_input: SummaryProfileInput
    offers: SummaryOffers
    scrape: SummaryScrape
    workflow: SummaryWorkflow


class WorkspaceApi:
    """Read paths for dashboard aggregates, cached per caller token.

    Entries belonging to a token are dropped as soon as the stored
    credentials change, and mutations drop the caller's summary.
    """

    def __init__(
        self,
        client: AuthenticatedClient,
        store: CredentialStore,
        *,
        summary_ttl_seconds: float = 0,
        diagnostics_ttl_seconds: float = 0,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._client = client
        self._store = store
        self.summary_cache: TTLCache[WorkspaceSummary] = TTLCache(summary_ttl_seconds, clock=clock)
        self.diagnostics_cache: TTLCache[dict[str, Any]] = TTLCache(
            diagnostics_ttl_seconds, clock=clock
        )
        self._diagnostics_windows: dict[str, set[int]] = {}
        self._last_identity = self._identity()
        self._unsubscribe = store.on_change(self._on_credentials_changed)

    def _identity(self) -> str:
        return self._store.read().access_token or ANONYMOUS_KEY

    def _on_credentials_changed(self) -> None:
        identity = self._identity()
        if identity == self._last_identity:
            return
        self._invalidate_identity(self._last_identity)
        self._last_identity = identity

    def _invalidate_identity(self, identity: str) -> None:
        self.summary_cache.invalidate(identity)
        for window_hours in self._diagnostics_windows.pop(identity, ()):
            self.diagnostics_cache.invalidate(f"{identity}:{window_hours}")

    def _still_current(self, used_token: str | None) -> bool:
        return used_token is not None and used_token == self._store.read().access_token

    async def get_summary(self) -> WorkspaceSummary:
        cached = self.summary_cache.get(self._identity())
        if cached is not None:
            return cached
        summary, used_token = await self._client.request_with_token(
            "/workspace/summary", response_model=WorkspaceSummary
        )
        # Credentials may have changed while the fetch was in flight.
        if self._still_current(used_token):
            self.summary_cache.set(used_token, summary)
        return summary

    async def get_run_diagnostics_summary(self, window_hours: int = 72) -> dict[str, Any]:
        cached = self.diagnostics_cache.get(f"{self._identity()}:{window_hours}")
        if cached is not None:
            return cached
        summary, used_token = await self._client.request_with_token(
            "/job-sources/runs/diagnostics/summary",
            params={"windowHours": window_hours},
            response_model=dict[str, Any],
        )
        if self._still_current(used_token):
            self._diagnostics_windows.setdefault(used_token, set()).add(window_hours)
            self.diagnostics_cache.set(f"{used_token}:{window_hours}", summary)
        return summary

    async def create_profile_input(self, payload: dict[str, Any]) -> dict[str, Any]:
        created = await self._client.request("/profile-inputs", method="POST", body=payload)
        self.summary_cache.invalidate(self._identity())
        return created

    async def enqueue_scrape(self, payload: dict[str, Any]) -> dict[str, Any]:
        accepted = await self._client.request("/job-sources/scrape", method="POST", body=payload)
        self.summary_cache.invalidate(self._identity())
        return accepted

    def close(self) -> None:
        self._unsubscribe()
