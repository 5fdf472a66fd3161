"""Handlers turning remote cluster topology events into resync requests."""

from __future__ import annotations

import logging
from typing import Protocol

from podnet_ipam.models import RemotePeer, RemoteSubnet
from podnet_ipam.topology import (
    ACTION_RECONCILE_NODE,
    ACTION_RECONCILE_SUBNET,
    remote_peer_changed,
    remote_subnet_changed,
)

from .base import EventHandler

LOG = logging.getLogger(__name__)


class ResyncQueue(Protocol):
    def add(self, key: str) -> None:
        ...


class RemoteVtepHandler(EventHandler):
    """Request a node recompute when a remote tunnel endpoint changes.

    Create and delete always enqueue.  Updates enqueue only when the VTEP
    address, VTEP MAC or one of the ordered address lists differ, so status
    churn does not trigger a resync.  The queue collapses repeated keys.
    """

    def __init__(self, queue: ResyncQueue) -> None:
        self._queue = queue

    def on_create(self, obj: RemotePeer) -> None:
        LOG.debug("Remote vtep %s created", obj.name)
        self._queue.add(ACTION_RECONCILE_NODE)

    def on_update(self, old: RemotePeer, new: RemotePeer) -> None:
        if not remote_peer_changed(old, new):
            LOG.debug("Remote vtep %s updated without topology change", new.name)
            return
        LOG.info(
            "Remote vtep %s of cluster %s changed (vtep %s/%s)",
            new.name,
            new.cluster,
            new.vtep_ip,
            new.vtep_mac,
        )
        self._queue.add(ACTION_RECONCILE_NODE)

    def on_delete(self, obj: RemotePeer) -> None:
        LOG.debug("Remote vtep %s deleted", obj.name)
        self._queue.add(ACTION_RECONCILE_NODE)


class RemoteSubnetHandler(EventHandler):
    """Request a subnet recompute when remote subnet metadata changes."""

    def __init__(self, queue: ResyncQueue) -> None:
        self._queue = queue

    def on_create(self, obj: RemoteSubnet) -> None:
        self._queue.add(ACTION_RECONCILE_SUBNET)

    def on_update(self, old: RemoteSubnet, new: RemoteSubnet) -> None:
        if remote_subnet_changed(old, new):
            LOG.info("Remote subnet %s of cluster %s changed", new.name, new.cluster)
            self._queue.add(ACTION_RECONCILE_SUBNET)

    def on_delete(self, obj: RemoteSubnet) -> None:
        self._queue.add(ACTION_RECONCILE_SUBNET)
