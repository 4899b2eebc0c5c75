from __future__ import annotations

import json
import logging
from collections.abc import Callable

LOGGER = logging.getLogger("career.client")

Handler = Callable[[], None]


class _Subscription:
    __slots__ = ("handler", "active")

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.active = True


class EventBus:
    """Zero-payload publish/subscribe channel.

    Listeners are expected to re-read whatever state they care about instead
    of receiving it with the notification.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        subscription = _Subscription(handler)
        self._subscriptions.setdefault(topic, []).append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions[topic].remove(subscription)

        return unsubscribe

    def publish(self, topic: str) -> None:
        for subscription in list(self._subscriptions.get(topic, ())):
            if not subscription.active:
                continue
            try:
                subscription.handler()
            except Exception:
                LOGGER.exception(json.dumps({"event": "listener_failed", "topic": topic}))

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))
