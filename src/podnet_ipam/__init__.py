"""Address lifecycle and activation for pod networking.

This package holds the pieces of the networking control plane that decide
which address a pod gets and whether that address is safe to use:

* :class:`~podnet_ipam.allocator.AddressAllocator` hands out unique addresses
  from per-subnet pools, for underlay and overlay networks and for IPv4,
  IPv6 or dual-stack requests;
* :class:`~podnet_ipam.retention.RetentionStore` keeps the addresses of
  stateful pods (pods owned by a StatefulSet) across pod recreation, keyed by
  owner and ordinal instead of pod UID;
* :class:`~podnet_ipam.arp.ActivationValidator` proves an IPv4 address is
  reachable and conflict-free with ARP before the pod is marked ready; and
* :mod:`podnet_ipam.topology` compares successive remote tunnel-endpoint
  and subnet snapshots so resyncs are only triggered by meaningful changes.

The package has no knowledge of the record store or watch layer; those feed
it through :mod:`podnet_events` and :mod:`podnet_agent`.
"""

from .allocator import AddressAllocator  # noqa: F401
from .arp import ActivationValidator  # noqa: F401
from .retention import RetentionStore  # noqa: F401

__all__ = ["ActivationValidator", "AddressAllocator", "RetentionStore"]
