from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from career_client.credentials import CredentialStore
from career_client.envelopes import ErrorBody, ErrorMeta, SuccessEnvelope
from career_client.errors import ApiError, ResponseParseError
from career_client.refresh import RefreshCoordinator

LOGGER = logging.getLogger("career.client")


def build_headers(*, token: str | None, has_body: bool, request_id: str) -> dict[str, str]:
    headers = {"x-request-id": request_id}
    if has_body:
        headers["Content-Type"] = "application/json"
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def build_api_error(response: httpx.Response) -> ApiError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {}

    # error and meta are validated independently.
    try:
        error = ErrorBody.model_validate(payload.get("error") or {})
    except ValidationError:
        error = ErrorBody()
    try:
        meta = ErrorMeta.model_validate(payload["meta"]) if payload.get("meta") else None
    except ValidationError:
        meta = None

    return ApiError(
        response.status_code,
        code=error.code,
        message=error.message,
        details=error.details,
        trace_id=meta.trace_id if meta else None,
    )


def parse_success(response: httpx.Response, response_model: Any = None) -> Any:
    if response.status_code == 204:
        return None
    try:
        envelope = SuccessEnvelope.model_validate(response.json())
    except ValueError as exc:
        raise ResponseParseError(
            response.status_code, f"Malformed success envelope: {exc}"
        ) from exc
    if response_model is None:
        return envelope.data
    try:
        return TypeAdapter(response_model).validate_python(envelope.data)
    except ValidationError as exc:
        raise ResponseParseError(
            response.status_code, f"Unexpected response payload: {exc}"
        ) from exc


class AuthenticatedClient:
    """Issues API calls with the stored bearer token and one refresh-and-retry on 401."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
    ) -> None:
        self._http = http
        self._store = store
        self._coordinator = coordinator

    async def request(self, path: str, **options: Any) -> Any:
        """Perform one logical request and return the envelope's ``data``.

        Accepts the keyword options of ``request_with_token``.
        """
        data, _ = await self.request_with_token(path, **options)
        return data

    async def request_with_token(
        self,
        path: str,
        *,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
        token: str | None = None,
        skip_auto_refresh: bool = False,
        authenticated: bool = True,
        response_model: Any = None,
    ) -> tuple[Any, str | None]:
        """Perform one logical request; return its ``data`` and the token that produced it.

        ``token`` pins the credential for the first attempt; otherwise the
        stored access token is used unless ``authenticated`` is False. A 401
        on an authenticated attempt triggers a shared refresh and a single
        retry with the refreshed token.
        """
        attached = token
        if attached is None and authenticated:
            attached = self._store.read().access_token

        request_id = str(uuid.uuid4())
        started = time.perf_counter()
        response = await self._send(
            method,
            path,
            body=body,
            params=params,
            token=attached,
            request_id=request_id,
        )

        used_token = attached
        retried = False
        if response.status_code == 401 and attached and not skip_auto_refresh:
            outcome = await self._coordinator.refresh()
            if outcome is not None:
                retried = True
                used_token = outcome.access_token
                response = await self._send(
                    method,
                    path,
                    body=body,
                    params=params,
                    token=outcome.access_token,
                    request_id=request_id,
                )

        LOGGER.info(
            json.dumps(
                {
                    "event": "request_complete",
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                    "retried": retried,
                }
            )
        )

        if not response.is_success:
            raise build_api_error(response)
        return parse_success(response, response_model), used_token

    async def _send(
        self,
        method: str,
        path: str,
        *,
        body: Any,
        params: dict[str, Any] | None,
        token: str | None,
        request_id: str,
    ) -> httpx.Response:
        request_kwargs: dict[str, Any] = {
            "headers": build_headers(token=token, has_body=body is not None, request_id=request_id)
        }
        if body is not None:
            request_kwargs["json"] = body
        if params:
            request_kwargs["params"] = {
                key: value for key, value in params.items() if value is not None
            }
        return await self._http.request(method, path, **request_kwargs)
