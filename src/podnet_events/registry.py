"""Registry dispatching resource events to per-kind handlers."""

from __future__ import annotations

import logging
from typing import Dict, Union

from .events import ResourceCreate, ResourceDelete, ResourceUpdate
from .handlers import EventHandler

LOG = logging.getLogger(__name__)

Event = Union[ResourceCreate, ResourceUpdate, ResourceDelete]


class HandlerRegistry:
    """Dispatch resource events to the handler registered for their kind.

    The handler is chosen once, when it is registered for a kind; events
    never inspect the type of the object they carry.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, EventHandler] = {}

    def register(self, kind: str, handler: EventHandler) -> None:
        if kind in self._handlers:
            raise ValueError(f"handler for kind '{kind}' already registered")
        self._handlers[kind] = handler

    def unregister(self, kind: str) -> None:
        self._handlers.pop(kind, None)

    def kinds(self) -> list[str]:
        return sorted(self._handlers)

    def handle(self, event: Event) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            LOG.debug("No handler registered for kind %s, dropping event", event.kind)
            return

        if isinstance(event, ResourceCreate):
            handler.on_create(event.obj)
        elif isinstance(event, ResourceUpdate):
            handler.on_update(event.old, event.new)
        elif isinstance(event, ResourceDelete):
            handler.on_delete(event.obj)
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")
