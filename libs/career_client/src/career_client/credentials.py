from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from career_client.events import EventBus
from career_client.storage import KeyValueStorage

LOGGER = logging.getLogger("career.client")

ACCESS_TOKEN_KEY = "career_assistant_access_token"
REFRESH_TOKEN_KEY = "career_assistant_refresh_token"
TOKENS_EVENT = "career_assistant_tokens_updated"
TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY)


@dataclass(frozen=True)
class CredentialPair:
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token and self.refresh_token)


EMPTY_PAIR = CredentialPair()


class CredentialStore:
    """Single source of truth for the access/refresh token pair.

    Both tokens are read and written in one storage batch. Every successful
    write or clear publishes a zero-payload change event; listeners re-read the
    store. ``storage=None`` models a context without durable storage: reads
    return the empty pair and writes are no-ops.
    """

    def __init__(self, storage: KeyValueStorage | None, bus: EventBus | None = None) -> None:
        self.storage = storage
        self.bus = bus or EventBus()

    def read(self) -> CredentialPair:
        if self.storage is None:
            return EMPTY_PAIR
        try:
            items = self.storage.get_many(TOKEN_KEYS)
        except OSError as exc:
            self._log_storage_failure("read", exc)
            return EMPTY_PAIR
        access_token = items.get(ACCESS_TOKEN_KEY) or None
        refresh_token = items.get(REFRESH_TOKEN_KEY) or None
        if access_token is None or refresh_token is None:
            return EMPTY_PAIR
        return CredentialPair(access_token=access_token, refresh_token=refresh_token)

    def write(self, pair: CredentialPair) -> None:
        if not pair.is_authenticated:
            raise ValueError("Both access and refresh tokens are required.")
        if self.storage is None:
            return
        try:
            self.storage.set_many(
                {ACCESS_TOKEN_KEY: pair.access_token, REFRESH_TOKEN_KEY: pair.refresh_token}
            )
        except OSError as exc:
            self._log_storage_failure("write", exc)
            return
        self.bus.publish(TOKENS_EVENT)

    def clear(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.delete_many(TOKEN_KEYS)
        except OSError as exc:
            self._log_storage_failure("clear", exc)
            return
        self.bus.publish(TOKENS_EVENT)

    def on_change(self, handler: Callable[[], None]) -> Callable[[], None]:
        return self.bus.subscribe(TOKENS_EVENT, handler)

    def notify_external_change(self) -> None:
        self.bus.publish(TOKENS_EVENT)

    def _log_storage_failure(self, operation: str, exc: OSError) -> None:
        LOGGER.warning(
            json.dumps(
                {
                    "event": "credential_storage_failed",
                    "operation": operation,
                    "error": str(exc),
                }
            )
        )
