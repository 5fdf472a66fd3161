"""Pod handler: allocate on scheduling, release or retain on deletion."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from podnet_ipam.allocator import AddressAllocator
from podnet_ipam.arp import ActivationValidator
from podnet_ipam.models import AddressRecord, IPFamily, NetworkType

from ..events import PodInfo
from .base import EventHandler

LOG = logging.getLogger(__name__)


class PodHandler(EventHandler):
    """Drive the allocator from pod events.

    Pods are handled once they are bound to a node.  When a validator and an
    interface are configured, every IPv4 address of an underlay pod running
    on this node is activated after allocation.  The allocator lock is no
    longer held at that point, and a failed activation leaves the address
    reserved.
    """

    def __init__(
        self,
        allocator: AddressAllocator,
        validator: Optional[ActivationValidator] = None,
        interface: Optional[str] = None,
        timeout: Optional[float] = None,
        on_records_changed: Optional[Callable[[], None]] = None,
        node_name: Optional[str] = None,
    ) -> None:
        self._allocator = allocator
        self._node_name = node_name
        self._validator = validator
        self._interface = interface
        self._timeout = timeout
        self._on_records_changed = on_records_changed

    def on_create(self, obj: PodInfo) -> None:
        self.ensure_addresses(obj)

    def on_update(self, old: PodInfo, new: PodInfo) -> None:
        if old.uid != new.uid:
            self.on_delete(old)
        if new.node_name and (not old.node_name or old.uid != new.uid):
            self.ensure_addresses(new)

    def on_delete(self, obj: PodInfo) -> None:
        released = self._allocator.release(obj.identity())
        if released:
            self._notify()

    def ensure_addresses(self, pod: PodInfo) -> List[AddressRecord]:
        if not pod.node_name:
            LOG.debug("Pod %s/%s not scheduled yet", pod.namespace, pod.name)
            return []

        records = self._allocator.allocate(pod.identity(), pod.criteria(), pod.subnets)
        self._notify()
        if (
            self._validator is not None
            and self._interface
            and pod.network_type is NetworkType.UNDERLAY
            and (self._node_name is None or pod.node_name == self._node_name)
        ):
            self._activate(records)
        return records

    def _activate(self, records: List[AddressRecord]) -> None:
        for record in records:
            if record.family is not IPFamily.IPV4:
                continue
            subnet = self._allocator.subnet(record.subnet)
            if subnet is None or not subnet.gateway:
                LOG.debug("Subnet %s has no gateway, skipping activation", record.subnet)
                continue
            self._validator.activate(  # type: ignore[union-attr]
                self._interface,  # type: ignore[arg-type]
                record.address,
                subnet.gateway,
                self._timeout,
            )

    def _notify(self) -> None:
        if self._on_records_changed is not None:
            self._on_records_changed()
