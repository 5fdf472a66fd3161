"""Exception classes raised by the address lifecycle components."""

from __future__ import annotations

from typing import Optional


class IPAMError(Exception):
    """Base exception for address management."""

    pass


class AllocationError(IPAMError):
    """Allocation could not be satisfied.  The caller owns retry policy."""

    pass


class NoEligibleSubnet(AllocationError):
    """No subnet matches the requested network type and family."""

    def __init__(self, network_type: str, family: str):
        self.network_type = network_type
        self.family = family
        super().__init__(
            f"no eligible {network_type} subnet for address family {family}"
        )


class ExhaustedPool(AllocationError):
    """Every eligible subnet for a family is out of free addresses."""

    def __init__(self, family: str, subnets: tuple = ()):
        self.family = family
        self.subnets = tuple(subnets)
        super().__init__(
            f"no free {family} address left in subnets {list(self.subnets)}"
        )


class RetentionLookupInconsistent(IPAMError):
    """A retained record cannot be matched to the requesting workload."""

    def __init__(self, message: str, pod_name: str = ""):
        self.pod_name = pod_name
        super().__init__(message)


class ActivationError(IPAMError):
    """An address failed link-layer validation before going into service."""

    pass


class GatewayUnreachable(ActivationError):
    """The gateway did not answer an ARP request sent from the pod address."""

    def __init__(
        self,
        interface: str,
        source: str,
        gateway: str,
        cause: Optional[BaseException] = None,
    ):
        self.interface = interface
        self.source = source
        self.gateway = gateway
        self.cause = cause
        super().__init__(
            f"arp resolve from pod {source} to gateway {gateway} failed: "
            f"{cause or 'no reply'}; vlan network seems not working, please check "
            f"the setting of {interface}'s upper physical switch port first"
        )


class DuplicateAddress(ActivationError):
    """Another host answered the address-conflict-detection probe."""

    def __init__(self, address: str, responder_mac: str):
        self.address = address
        self.responder_mac = responder_mac
        super().__init__(
            f"pod ip {address} duplicated, please check if ip {address} is "
            f"occupied by other machines or containers, another hw addr is "
            f"{responder_mac}"
        )


class AnnounceFailed(ActivationError):
    """The gratuitous ARP announcement could not be sent."""

    def __init__(self, address: str, cause: Optional[BaseException] = None):
        self.address = address
        self.cause = cause
        super().__init__(f"send gratuitous arp for pod {address} failed: {cause}")
