"""Host event-bus names and a minimal in-process bus.

The engine only needs ``on``/``off``; a real host passes its own bus.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, TypeAlias

log = logging.getLogger(__name__)

SURFACE_SWITCHED = "surface-switched"
SURFACE_LOADED = "surface-loaded"
BLOCK_UPDATED = "block-updated"
TRANSACTION_LOG = "transaction-log"

Handler: TypeAlias = Callable[[Any], None]


class EventBusLike(Protocol):
    def on(self, name: str, handler: Handler) -> None: ...

    def off(self, name: str, handler: Handler) -> None: ...


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, name: str, handler: Handler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def off(self, name: str, handler: Handler) -> None:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, name: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(name, [])):
            handler(payload)

    def handler_count(self, name: str) -> int:
        return len(self._handlers.get(name, []))
