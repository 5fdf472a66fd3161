import pytest

from podnet_ipam.allocator import AddressAllocator
from podnet_ipam.errors import ExhaustedPool, RetentionLookupInconsistent
from podnet_ipam.models import (
    AllocationCriteria,
    IPFamily,
    Network,
    NetworkType,
    ReferredObject,
    Subnet,
    WorkloadIdentity,
    parse_ordinal,
)
from podnet_ipam.retention import RetentionStore

DUAL = AllocationCriteria(NetworkType.OVERLAY, (IPFamily.IPV4, IPFamily.IPV6))
UNDERLAY_V4 = AllocationCriteria(NetworkType.UNDERLAY, (IPFamily.IPV4,))
OWNER = ReferredObject(kind="StatefulSet", name="web", uid="sts-uid-1")


def build_allocator() -> AddressAllocator:
    return AddressAllocator(
        networks=[Network("overlay1", NetworkType.OVERLAY, (IPFamily.IPV4, IPFamily.IPV6))],
        subnets=[
            Subnet("overlay-v4", "overlay1", "100.10.0.0/24"),
            Subnet("overlay-v6", "overlay1", "fd00:10::/120"),
        ],
    )


def stateful_pod(name: str, uid: str, node: str, owner: ReferredObject = OWNER) -> WorkloadIdentity:
    return WorkloadIdentity.for_pod("default", name, pod_uid=uid, node_name=node, owner=owner)


def test_parse_ordinal():
    assert parse_ordinal("web-7") == 7
    assert parse_ordinal("my-app-12") == 12
    assert parse_ordinal("web") is None
    assert parse_ordinal("web-x") is None


def test_plain_pod_is_not_stateful():
    identity = WorkloadIdentity.for_pod("default", "pod-7", pod_uid="uid")

    assert identity.ordinal == 7
    assert not identity.is_stateful
    assert identity.stateful_info() is None


def test_stateful_pod_retains_and_rebinds_on_another_node():
    allocator = build_allocator()
    first = allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    assert all(r.binding.stateful.index == 0 for r in first)

    retained = allocator.release(stateful_pod("web-0", "uid-1", "node1"))

    assert [r.address for r in retained] == [r.address for r in first]
    for record in retained:
        assert record.binding.pod_uid == ""
        assert record.binding.node_name == ""
        assert record.binding.pod_name == "web-0"
        assert record.binding.referred_object == OWNER
    assert len(allocator.retention) == 1
    assert allocator.usage("overlay-v4").used == 1

    second = allocator.allocate(stateful_pod("web-0", "uid-2", "node2"), DUAL)

    assert [r.address for r in second] == [r.address for r in first]
    assert second[0].mac == first[0].mac == second[1].mac
    assert {r.binding.pod_uid for r in second} == {"uid-2"}
    assert {r.binding.node_name for r in second} == {"node2"}
    assert len(allocator.retention) == 0
    assert len(allocator.records()) == 2


def test_retained_address_is_not_handed_to_other_pods():
    allocator = build_allocator()
    kept = allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    allocator.release(stateful_pod("web-0", "uid-1", "node1"))

    other = allocator.allocate(stateful_pod("web-1", "uid-9", "node1"), DUAL)

    assert {r.address for r in other}.isdisjoint({r.address for r in kept})


def test_rebind_with_different_owner_uid_is_inconsistent():
    allocator = build_allocator()
    allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    allocator.release(stateful_pod("web-0", "uid-1", "node1"))

    recreated_owner = ReferredObject(kind="StatefulSet", name="web", uid="sts-uid-2")
    with pytest.raises(RetentionLookupInconsistent) as excinfo:
        allocator.allocate(stateful_pod("web-0", "uid-2", "node1", recreated_owner), DUAL)

    assert excinfo.value.pod_name == "web-0"
    assert len(allocator.retention) == 1


def test_rebind_with_different_families_is_inconsistent():
    allocator = build_allocator()
    allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    allocator.release(stateful_pod("web-0", "uid-1", "node1"))

    with pytest.raises(RetentionLookupInconsistent):
        allocator.allocate(
            stateful_pod("web-0", "uid-2", "node1"),
            AllocationCriteria(NetworkType.OVERLAY, (IPFamily.IPV4,)),
        )


def test_lookup_has_no_side_effects():
    allocator = build_allocator()
    allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    allocator.release(stateful_pod("web-0", "uid-1", "node1"))
    store = allocator.retention

    found = store.lookup(stateful_pod("web-0", "", ""))
    found[0].binding.pod_uid = "mutated"

    assert len(store) == 1
    assert store.lookup(stateful_pod("web-0", "", ""))[0].binding.pod_uid == ""


def test_lookup_rejects_non_stateful_identity():
    store = RetentionStore()

    with pytest.raises(RetentionLookupInconsistent):
        store.lookup(WorkloadIdentity.for_pod("default", "web-0", pod_uid="uid"))
    with pytest.raises(RetentionLookupInconsistent):
        store.lookup(stateful_pod("web", "uid", "node1"))


def test_purge_frees_retained_addresses():
    allocator = build_allocator()
    allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    allocator.release(stateful_pod("web-0", "uid-1", "node1"))

    purged = allocator.purge(stateful_pod("web-0", "", ""))

    assert len(purged) == 2
    assert len(allocator.retention) == 0
    assert allocator.usage("overlay-v4").used == 0
    assert allocator.usage("overlay-v6").used == 0


def test_purge_owner_honours_keep():
    allocator = build_allocator()
    for ordinal in range(3):
        identity = stateful_pod(f"web-{ordinal}", f"uid-{ordinal}", "node1")
        allocator.allocate(identity, DUAL)
        allocator.release(identity)

    purged = allocator.purge_owner("default", OWNER, keep=1)

    assert {r.binding.stateful.index for r in purged} == {1, 2}
    assert len(allocator.retention) == 1
    assert allocator.retention.lookup(stateful_pod("web-0", "", "")) is not None

    allocator.purge_owner("default", OWNER)
    assert len(allocator.retention) == 0
    assert allocator.records() == []


def test_scale_down_keeps_running_pod_address_until_it_is_deleted():
    allocator = AddressAllocator(
        networks=[Network("underlay1", NetworkType.UNDERLAY)],
        subnets=[Subnet("small", "underlay1", "10.0.0.0/29")],
    )
    allocator.allocate(stateful_pod("web-0", "uid-0", "node1"), UNDERLAY_V4)
    running = allocator.allocate(stateful_pod("web-1", "uid-1", "node1"), UNDERLAY_V4)[0]

    purged = allocator.purge_owner("default", OWNER, keep=1)

    assert purged == []
    others = []
    with pytest.raises(ExhaustedPool):
        for i in range(10):
            others.append(
                allocator.allocate(
                    WorkloadIdentity.for_pod("default", f"plain-{i}", pod_uid=f"plain-{i}"),
                    UNDERLAY_V4,
                )[0].address
            )
    assert len(others) == 4
    assert running.address not in others

    allocator.release(stateful_pod("web-1", "uid-1", "node1"))

    assert len(allocator.retention) == 0
    assert allocator.usage("small").used == 5


def test_scale_up_restores_retention_for_higher_ordinals():
    allocator = build_allocator()
    allocator.allocate(stateful_pod("web-1", "uid-1", "node1"), DUAL)
    allocator.purge_owner("default", OWNER, keep=1)
    allocator.purge_owner("default", OWNER, keep=3)

    allocator.release(stateful_pod("web-1", "uid-1", "node1"))

    assert len(allocator.retention) == 1


def test_recreated_pod_waits_for_previous_pod_of_same_ordinal():
    allocator = build_allocator()
    first = allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)

    with pytest.raises(RetentionLookupInconsistent):
        allocator.allocate(stateful_pod("web-0", "uid-2", "node2"), DUAL)
    assert allocator.usage("overlay-v4").used == 1

    allocator.release(stateful_pod("web-0", "uid-1", "node1"))
    second = allocator.allocate(stateful_pod("web-0", "uid-2", "node2"), DUAL)
    assert [r.address for r in second] == [r.address for r in first]

    allocator.release(stateful_pod("web-0", "uid-2", "node2"))
    allocator.purge_owner("default", OWNER)

    assert allocator.usage("overlay-v4").used == 0
    assert allocator.usage("overlay-v6").used == 0


def test_retain_never_overwrites_an_ordinal():
    allocator = build_allocator()
    allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    retained = allocator.release(stateful_pod("web-0", "uid-1", "node1"))
    store = allocator.retention

    with pytest.raises(RetentionLookupInconsistent):
        store.retain([r.copy() for r in retained])

    assert [r.address for r in store.lookup(stateful_pod("web-0", "", ""))] == [
        r.address for r in retained
    ]


def test_rebuild_rejects_conflicting_bindings():
    allocator = build_allocator()
    held = allocator.allocate(stateful_pod("web-0", "uid-1", "node1"), DUAL)
    other = allocator.allocate(stateful_pod("web-1", "uid-2", "node1"), DUAL)

    stale = [r.copy() for r in other]
    for record in stale:
        record.binding.pod_name = "web-0"
        record.binding.pod_uid = ""
        record.binding.node_name = ""
        record.binding.stateful = held[0].binding.stateful
    orphan = allocator.allocate(
        WorkloadIdentity.for_pod("default", "plain", pod_uid="uid-3"), DUAL
    )[0].copy()
    orphan.binding.pod_uid = ""
    orphan.binding.node_name = "node1"

    restored = build_allocator()
    skipped = restored.rebuild(held + stale + [orphan])

    assert len(skipped) == 3
    assert restored.usage("overlay-v4").used == 1
    assert restored.usage("overlay-v6").used == 1
    assert len(restored.retention) == 0
    assert restored.records_for(stateful_pod("web-0", "uid-1", "node1")) == held
