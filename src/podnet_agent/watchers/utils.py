from __future__ import annotations

import ipaddress
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from podnet_events.events import (
    KIND_POD,
    KIND_REMOTE_SUBNET,
    KIND_REMOTE_VTEP,
    KIND_STATEFULSET,
    PodInfo,
    StatefulSetInfo,
)
from podnet_ipam.models import (
    IPFamily,
    NetworkType,
    ReferredObject,
    RemotePeer,
    RemoteSubnet,
)

NODE_LOCAL_VXLAN_IP_LIST_KEY = "networking.podnet.io/node-local-vxlan-ip-list"


def address_list(value: Any) -> Tuple[str, ...]:
    """Normalise an ordered address list.

    Accepts a list or the comma separated annotation form.  Order is kept.
    """

    if value is None or value == "":
        return ()
    items: Iterable[Any] = value.split(",") if isinstance(value, str) else value
    return tuple(str(ipaddress.ip_address(str(item).strip())) for item in items)


def _owner(entry: Optional[Mapping[str, Any]]) -> Optional[ReferredObject]:
    if not entry:
        return None
    return ReferredObject(
        kind=str(entry["kind"]),
        name=str(entry["name"]),
        uid=str(entry.get("uid", "")),
    )


def parse_pod(entry: Mapping[str, Any]) -> PodInfo:
    families = entry.get("families") or ["IPv4"]
    subnets = entry.get("subnets")
    return PodInfo(
        namespace=str(entry.get("namespace", "default")),
        name=str(entry["name"]),
        uid=str(entry["uid"]),
        node_name=str(entry.get("nodeName", "")),
        owner=_owner(entry.get("owner")),
        network_type=NetworkType.parse(entry.get("networkType", "Underlay")),
        families=tuple(IPFamily.parse(f) for f in families),
        subnets=tuple(str(s) for s in subnets) if subnets else None,
    )


def parse_statefulset(entry: Mapping[str, Any]) -> StatefulSetInfo:
    return StatefulSetInfo(
        namespace=str(entry.get("namespace", "default")),
        name=str(entry["name"]),
        uid=str(entry.get("uid", "")),
        replicas=int(entry.get("replicas", 0)),
    )


def parse_remote_vtep(entry: Mapping[str, Any]) -> RemotePeer:
    annotations = entry.get("annotations") or {}
    node_local = entry.get("nodeLocalVxlanIPs", annotations.get(NODE_LOCAL_VXLAN_IP_LIST_KEY))
    return RemotePeer(
        name=str(entry["name"]),
        cluster=str(entry.get("cluster", "")),
        node=str(entry.get("node", entry["name"])),
        vtep_ip=str(ipaddress.ip_address(entry["vtepIP"])),
        vtep_mac=str(entry["vtepMAC"]).lower(),
        node_local_ips=address_list(node_local),
        endpoint_ips=address_list(entry.get("endpointIPs")),
    )


def parse_remote_subnet(entry: Mapping[str, Any]) -> RemoteSubnet:
    return RemoteSubnet(
        name=str(entry["name"]),
        cluster=str(entry.get("cluster", "")),
        network_type=NetworkType.parse(entry.get("networkType", "Overlay")),
        cidr=str(ipaddress.ip_network(entry["cidr"], strict=False)),
        gateway=str(entry["gateway"]) if entry.get("gateway") else None,
    )


PARSERS: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
    KIND_POD: parse_pod,
    KIND_STATEFULSET: parse_statefulset,
    KIND_REMOTE_VTEP: parse_remote_vtep,
    KIND_REMOTE_SUBNET: parse_remote_subnet,
}


def object_key(entry: Mapping[str, Any]) -> str:
    namespace = entry.get("namespace")
    name = str(entry["name"])
    return f"{namespace}/{name}" if namespace else name
