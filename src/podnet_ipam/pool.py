"""Per-subnet free/used address bookkeeping."""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass
from typing import Set

from .errors import ExhaustedPool
from .models import Subnet

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolUsage:
    total: int
    used: int

    @property
    def available(self) -> int:
        return self.total - self.used


class SubnetPool:
    """Hand out addresses of a single subnet.

    Addresses are tracked as integers in a ``used`` set.  A next-free cursor
    walks the usable range round-robin so a freshly released address is not
    handed out again immediately, and so large IPv6 ranges never have to be
    materialised.

    Every mutation happens under the pool's own lock.  Pools of different
    subnets never share a lock.
    """

    def __init__(self, subnet: Subnet) -> None:
        self._subnet = subnet
        network = subnet.ip_network
        self._address_cls = type(network.network_address)

        first = int(network.network_address)
        last = int(network.broadcast_address)
        blocked: Set[int] = set()
        if network.num_addresses > 2:
            blocked.add(first)
            if network.version == 4:
                blocked.add(last)
        if subnet.gateway:
            blocked.add(self._to_int(subnet.gateway))
        blocked.update(self._to_int(address) for address in subnet.excluded)

        if subnet.start:
            first = max(first, self._to_int(subnet.start))
        if subnet.end:
            last = min(last, self._to_int(subnet.end))
        if first > last:
            raise ValueError(f"subnet {subnet.name} has an empty usable range")

        self._first = first
        self._last = last
        self._blocked = {value for value in blocked if first <= value <= last}
        self._capacity = (last - first + 1) - len(self._blocked)
        self._used: Set[int] = set()
        self._cursor = first
        self._lock = threading.Lock()

    @property
    def subnet(self) -> Subnet:
        return self._subnet

    def _to_int(self, address: str) -> int:
        value = ipaddress.ip_address(address)
        if not isinstance(value, self._address_cls):
            raise ValueError(
                f"address {address} does not belong to the family of subnet "
                f"{self._subnet.name}"
            )
        return int(value)

    def _usable(self, value: int) -> bool:
        return self._first <= value <= self._last and value not in self._blocked

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def acquire(self) -> str:
        """Mark the next free address used and return it."""

        with self._lock:
            if len(self._used) >= self._capacity:
                raise ExhaustedPool(self._subnet.family.value, (self._subnet.name,))

            candidate = self._cursor
            while not self._usable(candidate) or candidate in self._used:
                candidate += 1
                if candidate > self._last:
                    candidate = self._first
            self._used.add(candidate)
            self._cursor = candidate + 1 if candidate < self._last else self._first
            return str(self._address_cls(candidate))

    def reserve(self, address: str) -> bool:
        """Mark a specific address used.  Returns ``False`` if it already was."""

        value = self._to_int(address)
        if not self._usable(value):
            raise ValueError(
                f"address {address} is not allocatable in subnet {self._subnet.name}"
            )
        with self._lock:
            if value in self._used:
                return False
            self._used.add(value)
            return True

    def release(self, address: str) -> bool:
        value = self._to_int(address)
        with self._lock:
            if value not in self._used:
                LOG.debug(
                    "address %s of subnet %s already free", address, self._subnet.name
                )
                return False
            self._used.discard(value)
            return True

    def clear(self) -> None:
        with self._lock:
            self._used.clear()
            self._cursor = self._first

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def contains(self, address: str) -> bool:
        try:
            return self._usable(self._to_int(address))
        except ValueError:
            return False

    def is_used(self, address: str) -> bool:
        value = self._to_int(address)
        with self._lock:
            return value in self._used

    def has_free(self) -> bool:
        with self._lock:
            return len(self._used) < self._capacity

    def usage(self) -> PoolUsage:
        with self._lock:
            return PoolUsage(total=self._capacity, used=len(self._used))
