"""StatefulSet handler: free addresses of ordinals the owner no longer has."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from podnet_ipam.allocator import AddressAllocator

from ..events import StatefulSetInfo
from .base import EventHandler

LOG = logging.getLogger(__name__)


class StatefulSetHandler(EventHandler):
    """Keep the allocator's view of each StatefulSet's replica count current.

    Pod deletion alone never frees a stateful address; only a replica count
    drop or the deletion of the StatefulSet does.  Retained ordinals beyond
    the replica count are freed at once, and pods still running beyond it
    free their addresses when they are deleted, whichever event arrives
    first.
    """

    def __init__(
        self,
        allocator: AddressAllocator,
        on_records_changed: Optional[Callable[[], None]] = None,
    ) -> None:
        self._allocator = allocator
        self._on_records_changed = on_records_changed

    def on_create(self, obj: StatefulSetInfo) -> None:
        self._apply_replicas(obj)

    def on_update(self, old: StatefulSetInfo, new: StatefulSetInfo) -> None:
        if new.replicas == old.replicas and new.uid == old.uid:
            return
        purged = self._apply_replicas(new)
        LOG.info(
            "StatefulSet %s/%s scaled %d -> %d, released %d addresses",
            new.namespace,
            new.name,
            old.replicas,
            new.replicas,
            purged,
        )

    def on_delete(self, obj: StatefulSetInfo) -> None:
        purged = self._allocator.purge_owner(obj.namespace, obj.reference())
        LOG.info(
            "StatefulSet %s/%s deleted, released %d addresses",
            obj.namespace,
            obj.name,
            len(purged),
        )
        if purged:
            self._notify()

    def _apply_replicas(self, obj: StatefulSetInfo) -> int:
        purged = self._allocator.purge_owner(obj.namespace, obj.reference(), keep=obj.replicas)
        if purged:
            self._notify()
        return len(purged)

    def _notify(self) -> None:
        if self._on_records_changed is not None:
            self._on_records_changed()
