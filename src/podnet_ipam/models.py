"""Data structures shared by the allocator, retention store and topology diff.

Network and subnet definitions are immutable descriptions fed from the
declarative configuration store.  :class:`AddressRecord` is the only mutable
type: its binding changes when a workload is rebound, retained or released.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Sequence, Tuple

POD_KIND = "Pod"
STATEFUL_KINDS: FrozenSet[str] = frozenset({"StatefulSet"})


class NetworkType(Enum):
    """Kind of logical network an address is allocated from."""

    UNDERLAY = "Underlay"
    OVERLAY = "Overlay"

    @classmethod
    def parse(cls, value: str) -> NetworkType:
        for member in cls:
            if member.value.lower() == str(value).lower():
                return member
        raise ValueError(f"Unsupported network type '{value}'")


class IPFamily(Enum):
    IPV4 = "IPv4"
    IPV6 = "IPv6"

    @classmethod
    def parse(cls, value: str) -> IPFamily:
        for member in cls:
            if member.value.lower() == str(value).lower():
                return member
        raise ValueError(f"Unsupported address family '{value}'")

    @classmethod
    def from_address(cls, address: str) -> IPFamily:
        version = ipaddress.ip_address(address).version
        return cls.IPV4 if version == 4 else cls.IPV6


# Allocation order for multi-family requests.
FAMILY_ORDER: Tuple[IPFamily, ...] = (IPFamily.IPV4, IPFamily.IPV6)


@dataclass(frozen=True)
class Network:
    """A logical network (underlay or overlay)."""

    name: str
    type: NetworkType
    families: Sequence[IPFamily] = (IPFamily.IPV4,)

    def supports(self, family: IPFamily) -> bool:
        return family in self.families


@dataclass(frozen=True)
class Subnet:
    """Address range belonging to a :class:`Network`.

    Attributes
    ----------
    name:
        Unique subnet identity.
    network:
        Name of the parent network.
    cidr:
        Range in CIDR notation, e.g. ``10.14.100.0/24``.
    gateway:
        Optional gateway address.  It is never handed out.
    excluded:
        Addresses inside ``cidr`` that are reserved and never handed out.
    start, end:
        Optional bounds narrowing the usable range inside ``cidr``.
    """

    name: str
    network: str
    cidr: str
    gateway: Optional[str] = None
    excluded: FrozenSet[str] = frozenset()
    start: Optional[str] = None
    end: Optional[str] = None

    @property
    def ip_network(self) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
        return ipaddress.ip_network(self.cidr, strict=False)

    @property
    def family(self) -> IPFamily:
        return IPFamily.IPV4 if self.ip_network.version == 4 else IPFamily.IPV6


@dataclass(frozen=True)
class ReferredObject:
    """The object owning a workload: a controller, or the pod itself."""

    kind: str
    name: str
    uid: str = ""


@dataclass(frozen=True)
class StatefulInfo:
    index: int


@dataclass
class Binding:
    """Association between an address record and the workload using it."""

    pod_uid: str
    pod_name: str
    node_name: str
    referred_object: ReferredObject
    stateful: Optional[StatefulInfo] = None

    @property
    def is_retained(self) -> bool:
        return not self.pod_uid and not self.node_name


@dataclass
class AddressRecord:
    """A single allocated address and its current binding."""

    address: str
    family: IPFamily
    mac: str
    subnet: str
    network: str
    namespace: str
    binding: Binding

    @property
    def name(self) -> str:
        """Object name used when the record is persisted."""

        return self.address.replace(".", "-").replace(":", "-")

    def copy(self) -> AddressRecord:
        return replace(self, binding=replace(self.binding))

    def to_dict(self) -> Dict[str, Any]:
        binding = self.binding
        payload: Dict[str, Any] = {
            "address": self.address,
            "family": self.family.value,
            "mac": self.mac,
            "subnet": self.subnet,
            "network": self.network,
            "namespace": self.namespace,
            "binding": {
                "podUID": binding.pod_uid,
                "podName": binding.pod_name,
                "nodeName": binding.node_name,
                "referredObject": {
                    "kind": binding.referred_object.kind,
                    "name": binding.referred_object.name,
                    "uid": binding.referred_object.uid,
                },
            },
        }
        if binding.stateful is not None:
            payload["binding"]["stateful"] = {"index": binding.stateful.index}
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AddressRecord:
        binding = data.get("binding") or {}
        referred = binding.get("referredObject") or {}
        stateful = binding.get("stateful")
        address = str(data["address"])
        family = data.get("family")
        return cls(
            address=address,
            family=IPFamily.parse(family) if family else IPFamily.from_address(address),
            mac=str(data["mac"]),
            subnet=str(data["subnet"]),
            network=str(data["network"]),
            namespace=str(data.get("namespace", "default")),
            binding=Binding(
                pod_uid=str(binding.get("podUID", "")),
                pod_name=str(binding.get("podName", "")),
                node_name=str(binding.get("nodeName", "")),
                referred_object=ReferredObject(
                    kind=str(referred.get("kind", POD_KIND)),
                    name=str(referred.get("name", binding.get("podName", ""))),
                    uid=str(referred.get("uid", "")),
                ),
                stateful=StatefulInfo(int(stateful["index"])) if stateful else None,
            ),
        )


def parse_ordinal(name: str) -> Optional[int]:
    """Return the integer suffix after the last ``-`` of ``name``."""

    _, sep, suffix = name.rpartition("-")
    if not sep or not suffix.isdigit():
        return None
    return int(suffix)


@dataclass(frozen=True)
class WorkloadIdentity:
    """Identity of the workload requesting addresses.

    ``pod_uid`` and ``node_name`` change every time a pod is recreated; the
    retention key is built only from the owner reference and the ordinal so
    it survives recreation.
    """

    namespace: str
    pod_name: str
    referred_object: ReferredObject
    pod_uid: str = ""
    node_name: str = ""
    stateful_kinds: FrozenSet[str] = field(default=STATEFUL_KINDS, compare=False)

    @classmethod
    def for_pod(
        cls,
        namespace: str,
        pod_name: str,
        pod_uid: str = "",
        node_name: str = "",
        owner: Optional[ReferredObject] = None,
    ) -> WorkloadIdentity:
        referred = owner or ReferredObject(kind=POD_KIND, name=pod_name, uid=pod_uid)
        return cls(
            namespace=namespace,
            pod_name=pod_name,
            referred_object=referred,
            pod_uid=pod_uid,
            node_name=node_name,
        )

    @property
    def ordinal(self) -> Optional[int]:
        return parse_ordinal(self.pod_name)

    @property
    def owned_by_stateful_controller(self) -> bool:
        return self.referred_object.kind in self.stateful_kinds

    @property
    def is_stateful(self) -> bool:
        return self.owned_by_stateful_controller and self.ordinal is not None

    @property
    def retention_key(self) -> Tuple[str, str, str, int]:
        ordinal = self.ordinal
        if ordinal is None:
            raise ValueError(f"pod name '{self.pod_name}' carries no ordinal")
        return (
            self.namespace,
            self.referred_object.kind,
            self.referred_object.name,
            ordinal,
        )

    def stateful_info(self) -> Optional[StatefulInfo]:
        if not self.is_stateful:
            return None
        return StatefulInfo(index=self.ordinal)  # type: ignore[arg-type]


@dataclass(frozen=True)
class AllocationCriteria:
    network_type: NetworkType
    families: Sequence[IPFamily] = (IPFamily.IPV4,)

    @property
    def is_dual_stack(self) -> bool:
        return IPFamily.IPV4 in self.families and IPFamily.IPV6 in self.families

    def ordered_families(self) -> Tuple[IPFamily, ...]:
        return tuple(f for f in FAMILY_ORDER if f in self.families)


@dataclass(frozen=True)
class RemotePeer:
    """Tunnel endpoint state of one node in a remote cluster."""

    name: str
    cluster: str
    node: str
    vtep_ip: str
    vtep_mac: str
    node_local_ips: Tuple[str, ...] = ()
    endpoint_ips: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RemoteSubnet:
    """Subnet metadata published by a remote cluster."""

    name: str
    cluster: str
    network_type: NetworkType
    cidr: str
    gateway: Optional[str] = None
