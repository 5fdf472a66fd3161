"""File-based resource watcher."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Event, Thread
from typing import Any, Dict

from podnet_events import HandlerRegistry
from podnet_events.events import ResourceCreate, ResourceDelete, ResourceUpdate

from .utils import PARSERS, object_key

LOG = logging.getLogger(__name__)


class FileResourceWatcher(Thread):
    """Poll a JSON snapshot of one resource kind and publish events.

    The file holds ``{"items": [...]}``.  Each poll is diffed against the
    previous one by object key: new keys produce create events, vanished
    keys produce delete events, and keys whose parsed snapshot differs
    produce update events carrying both versions.  When a handler fails the
    previous version is kept, so the event is delivered again on the next
    poll.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        kind: str,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True)
        if kind not in PARSERS:
            raise ValueError(f"unsupported resource kind '{kind}'")
        self._registry = registry
        self._kind = kind
        self._parse = PARSERS[kind]
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._state: Dict[str, Any] = {}

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("%s watcher encountered an error", self._kind)
            self._stop_event.wait(self._interval)

    def _load(self) -> Dict[str, Any] | None:
        if not self._path.exists():
            LOG.debug("%s file %s does not exist yet", self._kind, self._path)
            return None

        try:
            payload = json.loads(self._path.read_text())
        except json.JSONDecodeError as exc:
            LOG.warning("failed to parse %s file %s: %s", self._kind, self._path, exc)
            return None

        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            LOG.warning("invalid %s file %s: missing 'items' list", self._kind, self._path)
            return None

        desired: Dict[str, Any] = {}
        for entry in items:
            try:
                desired[object_key(entry)] = self._parse(entry)
            except (KeyError, TypeError, ValueError) as exc:
                LOG.warning("skipping invalid %s entry %r: %s", self._kind, entry, exc)
        return desired

    def _dispatch(self, event) -> bool:
        try:
            self._registry.handle(event)
        except Exception:
            LOG.exception("%s handler failed for %s, will retry", self._kind, type(event).__name__)
            return False
        return True

    def poll(self) -> None:
        desired = self._load()
        if desired is None:
            return

        for key, obj in desired.items():
            previous = self._state.get(key)
            if previous is None:
                if self._dispatch(ResourceCreate(self._kind, obj)):
                    self._state[key] = obj
            elif previous != obj:
                LOG.debug("%s %s updated", self._kind, key)
                if self._dispatch(ResourceUpdate(self._kind, previous, obj)):
                    self._state[key] = obj

        for key in set(self._state) - set(desired):
            LOG.debug("%s %s removed", self._kind, key)
            if self._dispatch(ResourceDelete(self._kind, self._state[key])):
                del self._state[key]
