from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
from career_client.errors import ApiError, ResponseParseError
from career_client.session import ApiSession
from common.utils import now_utc_iso
from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, EmailStr, Field

LOGGER = logging.getLogger("career.tester")

SessionFactory = Callable[[], ApiSession]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileInputRequest(BaseModel):
    target_roles: str = Field(..., min_length=1, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)


class ScrapeRequest(BaseModel):
    source: str = Field(..., min_length=1)
    listing_url: str | None = None
    limit: int = Field(default=20, ge=1, le=100)


class SessionMonitor:
    """Counts credential changes seen by this process."""

    def __init__(self, session: ApiSession) -> None:
        self.session = session
        self.changes = 0
        self.last_changed_at: str | None = None
        self._unsubscribe = session.store.on_change(self._record)

    def _record(self) -> None:
        self.changes += 1
        self.last_changed_at = now_utc_iso()
        LOGGER.info(
            json.dumps(
                {
                    "event": "credentials_changed",
                    "authenticated": self.session.store.read().is_authenticated,
                }
            )
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "authenticated": self.session.store.read().is_authenticated,
            "refresh_in_flight": self.session.coordinator.in_flight,
            "credential_changes": self.changes,
            "last_changed_at": self.last_changed_at,
        }

    def close(self) -> None:
        self._unsubscribe()


def error_detail(error: ApiError) -> dict[str, Any]:
    return {"code": error.code, "message": error.message, "details": error.details}


def to_payload(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


def build_gateway_response(payload: Any) -> dict[str, Any]:
    return {
        "gateway_generated_at": now_utc_iso(),
        "career_response": to_payload(payload),
    }


async def call_career_api(operation: Awaitable[Any]) -> dict[str, Any]:
    try:
        result = await operation
    except ApiError as exc:
        if 400 <= exc.status < 500:
            raise HTTPException(status_code=exc.status, detail=error_detail(exc)) from exc
        raise HTTPException(status_code=502, detail=error_detail(exc)) from exc
    except ResponseParseError as exc:
        raise HTTPException(status_code=502, detail=exc.reason) from exc
    except httpx.RequestError as exc:
        raise HTTPException(status_code=502, detail="Upstream career API is unavailable") from exc
    return build_gateway_response(result)


def create_app(session_factory: SessionFactory | None = None) -> FastAPI:
    factory = session_factory or ApiSession

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = factory()
        async with session:
            app.state.session = session
            app.state.monitor = SessionMonitor(session)
            try:
                yield
            finally:
                app.state.monitor.close()

    app = FastAPI(title="Career Assistant Tester", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        LOGGER.info(
            json.dumps(
                {
                    "event": "request_complete",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                }
            )
        )
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "tester"}

    @app.get("/api/session")
    async def session_state(request: Request) -> dict[str, Any]:
        return request.app.state.monitor.snapshot()

    @app.post("/api/session/login")
    async def login(request: Request, payload: LoginRequest) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        return await call_career_api(session.auth.login(payload.email, payload.password))

    @app.post("/api/session/logout")
    async def logout(request: Request) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        return await call_career_api(session.auth.logout())

    @app.get("/api/me")
    async def current_user(request: Request) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        return await call_career_api(session.auth.current_user())

    @app.get("/api/workspace/summary")
    async def workspace_summary(request: Request) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        return await call_career_api(session.workspace.get_summary())

    @app.get("/api/job-sources/diagnostics/summary")
    async def run_diagnostics_summary(
        request: Request,
        window_hours: int = Query(default=72, ge=1, le=720),
    ) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        return await call_career_api(session.workspace.get_run_diagnostics_summary(window_hours))

    @app.post("/api/profile-inputs")
    async def create_profile_input(
        request: Request, payload: ProfileInputRequest
    ) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        body: dict[str, Any] = {"targetRoles": payload.target_roles}
        if payload.notes:
            body["notes"] = payload.notes
        return await call_career_api(session.workspace.create_profile_input(body))

    @app.post("/api/job-sources/scrape")
    async def enqueue_scrape(request: Request, payload: ScrapeRequest) -> dict[str, Any]:
        session: ApiSession = request.app.state.session
        body: dict[str, Any] = {"source": payload.source, "limit": payload.limit}
        if payload.listing_url:
            body["listingUrl"] = payload.listing_url
        return await call_career_api(session.workspace.enqueue_scrape(body))

    return app


app = create_app()
