import json
from pathlib import Path

from podnet_agent.records import RecordFileStore
from podnet_ipam.allocator import AddressAllocator
from podnet_ipam.models import (
    AllocationCriteria,
    IPFamily,
    Network,
    NetworkType,
    ReferredObject,
    Subnet,
    WorkloadIdentity,
)

OWNER = ReferredObject("StatefulSet", "web", "sts-uid")
UNDERLAY_V4 = AllocationCriteria(NetworkType.UNDERLAY, (IPFamily.IPV4,))


def build_allocator() -> AddressAllocator:
    return AddressAllocator(
        networks=[Network("underlay1", NetworkType.UNDERLAY)],
        subnets=[Subnet("underlay-sub", "underlay1", "10.14.100.0/24", gateway="10.14.100.1")],
    )


def test_missing_file_loads_empty(tmp_path: Path):
    assert RecordFileStore(tmp_path / "records.json").load() == []


def test_saved_records_rebuild_allocator_state(tmp_path: Path):
    allocator = build_allocator()
    plain = WorkloadIdentity.for_pod("default", "nginx", pod_uid="uid-1", node_name="node1")
    stateful = WorkloadIdentity.for_pod("default", "web-0", pod_uid="uid-2", node_name="node1", owner=OWNER)
    allocator.allocate(plain, UNDERLAY_V4)
    kept = allocator.allocate(stateful, UNDERLAY_V4)[0]
    allocator.release(stateful)

    store = RecordFileStore(tmp_path / "state" / "records.json")
    store.save(allocator.records())

    payload = json.loads(store.path.read_text())
    assert len(payload["records"]) == 2
    retained = [r for r in payload["records"] if r["binding"]["podUID"] == ""][0]
    assert retained["binding"]["podName"] == "web-0"
    assert retained["binding"]["stateful"] == {"index": 0}

    restored = build_allocator()
    skipped = restored.rebuild(store.load())

    assert skipped == []
    assert restored.usage("underlay-sub").used == 2
    assert len(restored.records_for(plain)) == 1
    rebound = restored.allocate(
        WorkloadIdentity.for_pod("default", "web-0", pod_uid="uid-3", node_name="node2", owner=OWNER),
        UNDERLAY_V4,
    )
    assert rebound[0].address == kept.address


def test_rebuild_skips_duplicates_and_unknown_subnets(tmp_path: Path):
    allocator = build_allocator()
    records = allocator.allocate(
        WorkloadIdentity.for_pod("default", "nginx", pod_uid="uid-1", node_name="node1"),
        UNDERLAY_V4,
    )
    duplicate = records[0].copy()
    duplicate.binding.pod_uid = "uid-other"
    stray = records[0].copy()
    stray.subnet = "gone"

    skipped = build_allocator().rebuild(records + [duplicate, stray])

    assert {r.subnet for r in skipped} == {"underlay-sub", "gone"}
    assert len(skipped) == 2


def test_malformed_entries_are_skipped(tmp_path: Path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps({"records": [{"address": "10.14.100.5"}]}))

    assert RecordFileStore(path).load() == []
