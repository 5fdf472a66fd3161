"""Link-layer activation checks for a freshly allocated IPv4 address.

Before a pod address goes into service on a bridged (underlay) segment the
agent runs three ARP exchanges on the pod's host-side interface:

1. resolve the gateway with the pod address as sender, proving the VLAN
   reaches the upstream switch;
2. probe the pod address with the unspecified sender ``0.0.0.0``; any reply
   means another host already holds it;
3. broadcast a gratuitous ARP so neighbours flush stale cache entries.

Each step blocks for at most ``timeout`` seconds.  The steps run strictly in
order and the first failure aborts the rest.  Nothing here touches the
allocator; a failed activation leaves the address reserved.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

import pyroute2
from scapy.layers.l2 import ARP, Ether
from scapy.sendrecv import sendp, srp1

from .errors import AnnounceFailed, DuplicateAddress, GatewayUnreachable

LOG = logging.getLogger(__name__)

UNSPECIFIED_ADDRESS = "0.0.0.0"
BROADCAST_MAC = "ff:ff:ff:ff:ff:ff"
ZERO_MAC = "00:00:00:00:00:00"
DEFAULT_TIMEOUT = 3.0


@dataclass(frozen=True)
class InterfaceHandle:
    """A network interface the probes are sent from."""

    name: str
    index: int
    hardware_address: str


def lookup_interface(name: str) -> InterfaceHandle:
    """Resolve interface ``name`` through netlink."""

    with pyroute2.IPRoute() as ipr:
        links = ipr.link_lookup(ifname=name)
        if not links:
            raise ValueError(f"interface '{name}' not found")
        link = ipr.get_links(links[0])[0]
        return InterfaceHandle(
            name=name,
            index=links[0],
            hardware_address=link.get_attr("IFLA_ADDRESS"),
        )


class ArpTransport(ABC):
    """Raw ARP send/receive used by :class:`ActivationValidator`."""

    @abstractmethod
    def probe(
        self,
        interface: InterfaceHandle,
        sender_ip: str,
        target_ip: str,
        timeout: float,
    ) -> Optional[str]:
        """Send an ARP request and return the responder MAC.

        Returns ``None`` when nobody answers within ``timeout``.  Raises
        :class:`OSError` when the request cannot be sent.
        """

    @abstractmethod
    def announce(self, interface: InterfaceHandle, address: str) -> None:
        """Broadcast a gratuitous ARP binding ``address`` to ``interface``."""


class ScapyArpTransport(ArpTransport):
    """ARP transport built on scapy raw layer-2 sockets."""

    def probe(
        self,
        interface: InterfaceHandle,
        sender_ip: str,
        target_ip: str,
        timeout: float,
    ) -> Optional[str]:
        request = Ether(src=interface.hardware_address, dst=BROADCAST_MAC) / ARP(
            op="who-has",
            hwsrc=interface.hardware_address,
            psrc=sender_ip,
            hwdst=ZERO_MAC,
            pdst=target_ip,
        )
        reply = srp1(request, iface=interface.name, timeout=timeout, verbose=False)
        if reply is None or ARP not in reply:
            return None
        return reply[ARP].hwsrc

    def announce(self, interface: InterfaceHandle, address: str) -> None:
        frame = Ether(src=interface.hardware_address, dst=BROADCAST_MAC) / ARP(
            op="who-has",
            hwsrc=interface.hardware_address,
            psrc=address,
            hwdst=BROADCAST_MAC,
            pdst=address,
        )
        sendp(frame, iface=interface.name, verbose=False)


class ActivationValidator:
    """Gateway probe, duplicate-address probe and gratuitous announcement."""

    def __init__(
        self,
        transport: Optional[ArpTransport] = None,
        default_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._transport = transport or ScapyArpTransport()
        self._default_timeout = default_timeout

    def activate(
        self,
        interface: Union[InterfaceHandle, str],
        source: str,
        gateway: str,
        timeout: Optional[float] = None,
    ) -> None:
        """Validate ``source`` on ``interface``; raise on the first failed step."""

        for label, value in (("source", source), ("gateway", gateway)):
            if ipaddress.ip_address(value).version != 4:
                raise ValueError(f"ARP activation needs an IPv4 {label}, got {value}")
        if isinstance(interface, str):
            interface = lookup_interface(interface)
        timeout = self._default_timeout if timeout is None else timeout
        started = time.monotonic()

        self._probe_gateway(interface, source, gateway, timeout)
        self._probe_duplicate(interface, source, timeout)
        self._announce(interface, source)

        LOG.info(
            "Activated %s on %s (gateway %s) in %.3fs",
            source,
            interface.name,
            gateway,
            time.monotonic() - started,
        )

    def _probe_gateway(
        self, interface: InterfaceHandle, source: str, gateway: str, timeout: float
    ) -> None:
        try:
            responder = self._transport.probe(interface, source, gateway, timeout)
        except OSError as exc:
            raise GatewayUnreachable(interface.name, source, gateway, exc) from exc
        if responder is None:
            raise GatewayUnreachable(
                interface.name,
                source,
                gateway,
                TimeoutError(f"no reply within {timeout}s"),
            )
        LOG.debug("Gateway %s resolved to %s via %s", gateway, responder, interface.name)

    def _probe_duplicate(
        self, interface: InterfaceHandle, source: str, timeout: float
    ) -> None:
        try:
            responder = self._transport.probe(
                interface, UNSPECIFIED_ADDRESS, source, timeout
            )
        except OSError as exc:
            LOG.warning(
                "Duplicate probe for %s on %s could not be sent, assuming no "
                "conflict: %s",
                source,
                interface.name,
                exc,
            )
            return
        if responder is not None:
            raise DuplicateAddress(source, responder)
        LOG.debug("No host answered duplicate probe for %s", source)

    def _announce(self, interface: InterfaceHandle, source: str) -> None:
        try:
            self._transport.announce(interface, source)
        except OSError as exc:
            raise AnnounceFailed(source, exc) from exc
