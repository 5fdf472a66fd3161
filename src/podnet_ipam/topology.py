"""Change detection for remote cluster topology snapshots.

Remote tunnel-endpoint and subnet records are rewritten often (status
heartbeats, label churn) without any change that matters to the forwarding
plane.  The comparators below decide whether two successive versions differ
in a way that requires the local node configuration to be recomputed.
"""

from __future__ import annotations

from typing import Sequence

from .models import RemotePeer, RemoteSubnet

ACTION_RECONCILE_NODE = "ReconcileNode"
ACTION_RECONCILE_SUBNET = "ReconcileSubnet"


def address_lists_equal(a: Sequence[str], b: Sequence[str]) -> bool:
    """Compare two address lists position by position.

    Reordering counts as a change: endpoint order is also used as an
    ordering key by the forwarding plane.
    """

    if len(a) != len(b):
        return False
    return all(x == y for x, y in zip(a, b))


def remote_peer_changed(old: RemotePeer, new: RemotePeer) -> bool:
    return (
        old.vtep_ip != new.vtep_ip
        or old.vtep_mac != new.vtep_mac
        or not address_lists_equal(old.node_local_ips, new.node_local_ips)
        or not address_lists_equal(old.endpoint_ips, new.endpoint_ips)
    )


def remote_subnet_changed(old: RemoteSubnet, new: RemoteSubnet) -> bool:
    return (
        old.cidr != new.cidr
        or old.gateway != new.gateway
        or old.network_type is not new.network_type
        or old.cluster != new.cluster
    )
