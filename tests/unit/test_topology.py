from dataclasses import replace

from podnet_agent.workqueue import DedupQueue
from podnet_events import KIND_REMOTE_SUBNET, KIND_REMOTE_VTEP, HandlerRegistry
from podnet_events.events import ResourceCreate, ResourceDelete, ResourceUpdate
from podnet_events.handlers import RemoteSubnetHandler, RemoteVtepHandler
from podnet_ipam.models import NetworkType, RemotePeer, RemoteSubnet
from podnet_ipam.topology import (
    ACTION_RECONCILE_NODE,
    ACTION_RECONCILE_SUBNET,
    address_lists_equal,
    remote_peer_changed,
    remote_subnet_changed,
)

PEER = RemotePeer(
    name="cluster2-node1",
    cluster="cluster2",
    node="node1",
    vtep_ip="192.168.0.11",
    vtep_mac="02:42:c0:a8:00:0b",
    node_local_ips=("10.0.0.1", "10.0.0.2"),
    endpoint_ips=("100.10.0.5",),
)
REMOTE_SUBNET = RemoteSubnet(
    name="cluster2.overlay-v4",
    cluster="cluster2",
    network_type=NetworkType.OVERLAY,
    cidr="100.20.0.0/24",
    gateway="100.20.0.1",
)


def registry_with_queue():
    queue = DedupQueue()
    registry = HandlerRegistry()
    registry.register(KIND_REMOTE_VTEP, RemoteVtepHandler(queue))
    registry.register(KIND_REMOTE_SUBNET, RemoteSubnetHandler(queue))
    return registry, queue


def test_address_lists_compare_by_position():
    assert address_lists_equal([], [])
    assert address_lists_equal(["a", "b"], ["a", "b"])
    assert not address_lists_equal(["a", "b"], ["b", "a"])
    assert not address_lists_equal(["a"], ["a", "b"])


def test_remote_peer_changed_ignores_identical_copies():
    assert not remote_peer_changed(PEER, replace(PEER))
    assert not remote_peer_changed(PEER, replace(PEER, node="renamed"))
    assert remote_peer_changed(PEER, replace(PEER, vtep_mac="02:42:c0:a8:00:0c"))
    assert remote_peer_changed(PEER, replace(PEER, vtep_ip="192.168.0.12"))
    assert remote_peer_changed(PEER, replace(PEER, endpoint_ips=()))


def test_remote_subnet_changed():
    assert not remote_subnet_changed(REMOTE_SUBNET, replace(REMOTE_SUBNET))
    assert remote_subnet_changed(REMOTE_SUBNET, replace(REMOTE_SUBNET, gateway=None))
    assert remote_subnet_changed(REMOTE_SUBNET, replace(REMOTE_SUBNET, cidr="100.21.0.0/24"))


def test_unchanged_vtep_update_enqueues_nothing():
    registry, queue = registry_with_queue()

    registry.handle(ResourceUpdate(KIND_REMOTE_VTEP, PEER, replace(PEER)))

    assert len(queue) == 0


def test_reordered_node_local_ips_enqueue_once():
    registry, queue = registry_with_queue()
    reordered = replace(PEER, node_local_ips=("10.0.0.2", "10.0.0.1"))

    registry.handle(ResourceUpdate(KIND_REMOTE_VTEP, PEER, reordered))

    assert len(queue) == 1
    assert queue.get(timeout=0) == ACTION_RECONCILE_NODE


def test_burst_of_changes_collapses_into_one_key():
    registry, queue = registry_with_queue()

    for i in range(10):
        changed = replace(PEER, vtep_ip=f"192.168.0.{20 + i}")
        registry.handle(ResourceUpdate(KIND_REMOTE_VTEP, PEER, changed))
    registry.handle(ResourceCreate(KIND_REMOTE_VTEP, PEER))

    assert len(queue) == 1


def test_create_and_delete_always_enqueue():
    registry, queue = registry_with_queue()

    registry.handle(ResourceCreate(KIND_REMOTE_VTEP, PEER))
    assert queue.get(timeout=0) == ACTION_RECONCILE_NODE
    queue.done(ACTION_RECONCILE_NODE)

    registry.handle(ResourceDelete(KIND_REMOTE_VTEP, PEER))
    assert queue.get(timeout=0) == ACTION_RECONCILE_NODE


def test_remote_subnet_events_use_subnet_key():
    registry, queue = registry_with_queue()

    registry.handle(ResourceUpdate(KIND_REMOTE_SUBNET, REMOTE_SUBNET, replace(REMOTE_SUBNET)))
    assert len(queue) == 0

    registry.handle(
        ResourceUpdate(KIND_REMOTE_SUBNET, REMOTE_SUBNET, replace(REMOTE_SUBNET, gateway="100.20.0.254"))
    )
    registry.handle(ResourceCreate(KIND_REMOTE_VTEP, PEER))

    assert queue.get(timeout=0) == ACTION_RECONCILE_SUBNET
    assert queue.get(timeout=0) == ACTION_RECONCILE_NODE
