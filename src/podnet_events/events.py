"""Event primitives and resource snapshots consumed by the handler registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from podnet_ipam.models import (
    AllocationCriteria,
    IPFamily,
    NetworkType,
    ReferredObject,
    WorkloadIdentity,
)

KIND_POD = "Pod"
KIND_STATEFULSET = "StatefulSet"
KIND_REMOTE_VTEP = "RemoteVtep"
KIND_REMOTE_SUBNET = "RemoteSubnet"


@dataclass(frozen=True)
class ResourceCreate:
    """A watched object appeared."""

    kind: str
    obj: Any


@dataclass(frozen=True)
class ResourceUpdate:
    """A watched object changed.  Both versions are delivered."""

    kind: str
    old: Any
    new: Any


@dataclass(frozen=True)
class ResourceDelete:
    kind: str
    obj: Any


@dataclass(frozen=True)
class PodInfo:
    """The slice of a pod the address handlers care about."""

    namespace: str
    name: str
    uid: str
    node_name: str = ""
    owner: Optional[ReferredObject] = None
    network_type: NetworkType = NetworkType.UNDERLAY
    families: Sequence[IPFamily] = (IPFamily.IPV4,)
    subnets: Optional[Sequence[str]] = None

    def identity(self) -> WorkloadIdentity:
        return WorkloadIdentity.for_pod(
            namespace=self.namespace,
            pod_name=self.name,
            pod_uid=self.uid,
            node_name=self.node_name,
            owner=self.owner,
        )

    def criteria(self) -> AllocationCriteria:
        return AllocationCriteria(network_type=self.network_type, families=tuple(self.families))


@dataclass(frozen=True)
class StatefulSetInfo:
    namespace: str
    name: str
    uid: str
    replicas: int

    def reference(self) -> ReferredObject:
        return ReferredObject(kind=KIND_STATEFULSET, name=self.name, uid=self.uid)
