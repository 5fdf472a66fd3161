"""Address allocation from subnet pools with retention for stateful pods."""

from __future__ import annotations

import logging
import threading
import zlib
from contextlib import ExitStack, contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import AllocationError, ExhaustedPool, NoEligibleSubnet, RetentionLookupInconsistent
from .mac import generate_mac
from .models import (
    AddressRecord,
    AllocationCriteria,
    Binding,
    IPFamily,
    Network,
    NetworkType,
    ReferredObject,
    Subnet,
    WorkloadIdentity,
)
from .pool import PoolUsage, SubnetPool
from .retention import RetentionKey, RetentionStore, record_key

LOG = logging.getLogger(__name__)

_IDENTITY_STRIPES = 64

OwnerKey = Tuple[str, str, str]


def _copies(records: Iterable[AddressRecord]) -> List[AddressRecord]:
    return [record.copy() for record in records]


class AddressAllocator:
    """Issue, retain and release address records.

    One allocator is constructed per process and handed to every handler.
    Each subnet has its own :class:`~podnet_ipam.pool.SubnetPool` and lock, so
    allocations against unrelated subnets never wait on each other.
    Operations on the same workload are serialised through a striped lock
    keyed by ``namespace/pod name``, which also covers a stateful pod and its
    recreated successor.  Owner-wide operations (purge, rebuild) take every
    stripe.

    A stateful ordinal is held by at most one pod at a time.  The allocator
    also remembers the replica count last seen for each stateful owner:
    ordinals at or beyond it are freed on pod deletion instead of retained.

    Parameters
    ----------
    networks, subnets:
        Initial network and subnet definitions.
    retention:
        Store used for stateful workloads.  A private one is created when
        omitted.
    mac_factory:
        Callable returning a new MAC address string.
    """

    def __init__(
        self,
        networks: Iterable[Network] = (),
        subnets: Iterable[Subnet] = (),
        retention: Optional[RetentionStore] = None,
        mac_factory: Callable[[], str] = generate_mac,
    ) -> None:
        self._networks: Dict[str, Network] = {}
        self._pools: Dict[str, SubnetPool] = {}
        self._registry_lock = threading.Lock()
        self._active: Dict[str, List[AddressRecord]] = {}
        # Stateful ordinal -> pod UID currently bound to it.
        self._ordinal_holders: Dict[RetentionKey, str] = {}
        self._active_lock = threading.Lock()
        # Owner -> (owner uid, replicas).  Written with every stripe held.
        self._owner_limits: Dict[OwnerKey, Tuple[str, int]] = {}
        self._identity_locks = [threading.Lock() for _ in range(_IDENTITY_STRIPES)]
        self._retention = retention or RetentionStore()
        self._mac_factory = mac_factory

        for network in networks:
            self.add_network(network)
        for subnet in subnets:
            self.add_subnet(subnet)

    @property
    def retention(self) -> RetentionStore:
        return self._retention

    # ------------------------------------------------------------------
    # Network / subnet registry
    # ------------------------------------------------------------------
    def add_network(self, network: Network) -> None:
        with self._registry_lock:
            self._networks[network.name] = network
        LOG.debug("Registered %s network %s", network.type.value, network.name)

    def add_subnet(self, subnet: Subnet) -> None:
        with self._registry_lock:
            network = self._networks.get(subnet.network)
            if network is None:
                raise ValueError(
                    f"subnet {subnet.name} refers to unknown network {subnet.network}"
                )
            if not network.supports(subnet.family):
                raise ValueError(
                    f"network {network.name} does not support {subnet.family.value}"
                )
            if subnet.name in self._pools:
                raise ValueError(f"subnet '{subnet.name}' already registered")
            self._pools[subnet.name] = SubnetPool(subnet)
        LOG.info("Registered subnet %s (%s) in network %s", subnet.name, subnet.cidr, subnet.network)

    def remove_subnet(self, name: str) -> None:
        with self._registry_lock:
            pool = self._pools.get(name)
            if pool is None:
                return
            if pool.usage().used:
                raise ValueError(f"subnet '{name}' still has addresses in use")
            del self._pools[name]
        LOG.info("Removed subnet %s", name)

    def subnets(self) -> List[Subnet]:
        with self._registry_lock:
            return [pool.subnet for pool in self._pools.values()]

    def subnet(self, name: str) -> Optional[Subnet]:
        pool = self._pool(name)
        return pool.subnet if pool is not None else None

    def usage(self, subnet: str) -> PoolUsage:
        with self._registry_lock:
            pool = self._pools[subnet]
        return pool.usage()

    def _pool(self, name: str) -> Optional[SubnetPool]:
        with self._registry_lock:
            return self._pools.get(name)

    def _eligible_pools(
        self,
        network_type: NetworkType,
        family: IPFamily,
        eligible: Optional[Sequence[str]],
    ) -> List[SubnetPool]:
        with self._registry_lock:
            candidates = []
            for name, pool in self._pools.items():
                if eligible is not None and name not in eligible:
                    continue
                network = self._networks.get(pool.subnet.network)
                if network is None or network.type is not network_type:
                    continue
                if not network.supports(family) or pool.subnet.family is not family:
                    continue
                candidates.append(pool)
        # Deterministic tie-break: network name, then subnet name.
        return sorted(candidates, key=lambda p: (p.subnet.network, p.subnet.name))

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------
    def _identity_lock(self, identity: WorkloadIdentity) -> threading.Lock:
        key = f"{identity.namespace}/{identity.pod_name}".encode("utf-8")
        return self._identity_locks[zlib.crc32(key) % _IDENTITY_STRIPES]

    @contextmanager
    def _all_identity_locks(self) -> Iterator[None]:
        with ExitStack() as stack:
            for lock in self._identity_locks:
                stack.enter_context(lock)
            yield

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------
    def allocate(
        self,
        identity: WorkloadIdentity,
        criteria: AllocationCriteria,
        eligible_subnets: Optional[Sequence[str]] = None,
    ) -> List[AddressRecord]:
        """Return the address records for ``identity``.

        Active records of the same pod are returned unchanged.  For a stateful
        identity, retained records are rebound before a fresh address is
        considered.  Otherwise one address per requested family is taken from
        the first eligible subnet with free capacity.
        """

        if not identity.pod_uid:
            raise ValueError(f"pod {identity.namespace}/{identity.pod_name} has no uid")
        if not criteria.ordered_families():
            raise ValueError("allocation criteria request no address family")

        with self._identity_lock(identity):
            holder = None
            with self._active_lock:
                existing = self._active.get(identity.pod_uid)
                if identity.is_stateful:
                    holder = self._ordinal_holders.get(identity.retention_key)
            if existing:
                LOG.debug("Pod %s already holds %s", identity.pod_name, [r.address for r in existing])
                return _copies(existing)
            if holder is not None:
                # The previous pod of this ordinal has not been released yet.
                raise RetentionLookupInconsistent(
                    f"ordinal of pod {identity.namespace}/{identity.pod_name} is "
                    f"still held by pod uid {holder}",
                    identity.pod_name,
                )

            records = None
            if identity.is_stateful:
                records = self._rebind_retained(identity, criteria)
            if records is None:
                records = self._allocate_fresh(identity, criteria, eligible_subnets)

            with self._active_lock:
                self._active[identity.pod_uid] = records
                if identity.is_stateful:
                    self._ordinal_holders[identity.retention_key] = identity.pod_uid
            return _copies(records)

    def _rebind_retained(
        self, identity: WorkloadIdentity, criteria: AllocationCriteria
    ) -> Optional[List[AddressRecord]]:
        retained = self._retention.lookup(identity)
        if retained is None:
            return None

        wanted = set(criteria.ordered_families())
        have = {record.family for record in retained}
        if have != wanted:
            raise RetentionLookupInconsistent(
                f"pod {identity.pod_name} retains {sorted(f.value for f in have)} "
                f"but requests {sorted(f.value for f in wanted)}",
                identity.pod_name,
            )
        for record in retained:
            with self._registry_lock:
                network = self._networks.get(record.network)
            if network is not None and network.type is not criteria.network_type:
                raise RetentionLookupInconsistent(
                    f"pod {identity.pod_name} retains address {record.address} in "
                    f"{network.type.value} network {network.name}",
                    identity.pod_name,
                )

        records = self._retention.take(identity)
        if records is None:
            # Purged between lookup and take.
            return None
        for record in records:
            record.binding.pod_uid = identity.pod_uid
            record.binding.pod_name = identity.pod_name
            record.binding.node_name = identity.node_name
        LOG.info(
            "Rebound retained addresses %s to pod %s/%s (uid=%s, node=%s)",
            [r.address for r in records],
            identity.namespace,
            identity.pod_name,
            identity.pod_uid,
            identity.node_name,
        )
        return records

    def _allocate_fresh(
        self,
        identity: WorkloadIdentity,
        criteria: AllocationCriteria,
        eligible_subnets: Optional[Sequence[str]],
    ) -> List[AddressRecord]:
        mac = self._mac_factory()
        stateful = identity.stateful_info()
        acquired: List[Tuple[SubnetPool, str]] = []
        records: List[AddressRecord] = []
        try:
            for family in criteria.ordered_families():
                pool, address = self._acquire(criteria.network_type, family, eligible_subnets)
                acquired.append((pool, address))
                records.append(
                    AddressRecord(
                        address=address,
                        family=family,
                        mac=mac,
                        subnet=pool.subnet.name,
                        network=pool.subnet.network,
                        namespace=identity.namespace,
                        binding=Binding(
                            pod_uid=identity.pod_uid,
                            pod_name=identity.pod_name,
                            node_name=identity.node_name,
                            referred_object=identity.referred_object,
                            stateful=stateful,
                        ),
                    )
                )
        except AllocationError:
            for pool, address in acquired:
                pool.release(address)
            raise

        LOG.info(
            "Allocated %s (mac=%s) to pod %s/%s",
            ["%s@%s" % (r.address, r.subnet) for r in records],
            mac,
            identity.namespace,
            identity.pod_name,
        )
        return records

    def _acquire(
        self,
        network_type: NetworkType,
        family: IPFamily,
        eligible: Optional[Sequence[str]],
    ) -> Tuple[SubnetPool, str]:
        candidates = self._eligible_pools(network_type, family, eligible)
        if not candidates:
            raise NoEligibleSubnet(network_type.value, family.value)
        for pool in candidates:
            try:
                return pool, pool.acquire()
            except ExhaustedPool:
                LOG.debug("Subnet %s exhausted, trying next", pool.subnet.name)
        raise ExhaustedPool(family.value, tuple(p.subnet.name for p in candidates))

    # ------------------------------------------------------------------
    # Release / purge
    # ------------------------------------------------------------------
    def release(self, identity: WorkloadIdentity) -> List[AddressRecord]:
        """Release the addresses held by the pod of ``identity``.

        Records carrying a stateful index are retained instead of freed; the
        binding keeps the pod name and owner but loses pod UID and node.
        Ordinals the owner has scaled below, or records of a deleted owner,
        are freed.
        """

        with self._identity_lock(identity):
            with self._active_lock:
                records = self._active.pop(identity.pod_uid, None)
                if records:
                    self._forget_holder(records, identity.pod_uid)
            if not records:
                LOG.debug("Pod %s/%s holds no addresses", identity.namespace, identity.pod_name)
                return []

            if all(record.binding.stateful is not None for record in records) and not (
                self._beyond_owner_limit(records[0])
            ):
                for record in records:
                    record.binding.pod_uid = ""
                    record.binding.node_name = ""
                try:
                    self._retention.retain(records)
                except RetentionLookupInconsistent:
                    self._free(records)
                    raise
                return _copies(records)

            self._free(records)
            LOG.info(
                "Released %s of pod %s/%s",
                [r.address for r in records],
                identity.namespace,
                identity.pod_name,
            )
            return _copies(records)

    def purge(self, identity: WorkloadIdentity) -> List[AddressRecord]:
        """Drop the addresses retained for a stateful ordinal."""

        with self._identity_lock(identity):
            records = self._retention.purge(identity)
            self._free(records)
            return _copies(records)

    def purge_owner(
        self,
        namespace: str,
        owner: ReferredObject,
        keep: Optional[int] = None,
    ) -> List[AddressRecord]:
        """Free the retained addresses of ``owner`` whose ordinal is ``>= keep``.

        Covers owner deletion (``keep=None``) and scale-down.  Pods that are
        still bound keep their addresses; ``keep`` is remembered as the
        owner's replica count, so those pods free their addresses on
        deletion instead of retaining them.  Calling this with the current
        replica count on owner creation or scale-up raises the limit again.
        """

        limit = 0 if keep is None else keep
        with self._all_identity_locks():
            self._owner_limits[(namespace, owner.kind, owner.name)] = (owner.uid, limit)
            purged = self._retention.purge_owner(namespace, owner, keep)
            self._free(purged)
        return _copies(purged)

    def _beyond_owner_limit(self, record: AddressRecord) -> bool:
        binding = record.binding
        referred = binding.referred_object
        entry = self._owner_limits.get((record.namespace, referred.kind, referred.name))
        if entry is None or binding.stateful is None:
            return False
        owner_uid, limit = entry
        if owner_uid and referred.uid and owner_uid != referred.uid:
            return False
        return binding.stateful.index >= limit

    def _forget_holder(self, records: Sequence[AddressRecord], pod_uid: str) -> None:
        # Caller holds _active_lock.
        for record in records:
            if record.binding.stateful is None:
                continue
            key = record_key(record)
            if self._ordinal_holders.get(key) == pod_uid:
                del self._ordinal_holders[key]

    def _free(self, records: Iterable[AddressRecord]) -> None:
        for record in records:
            pool = self._pool(record.subnet)
            if pool is None:
                LOG.warning(
                    "Cannot free %s: subnet %s is no longer registered",
                    record.address,
                    record.subnet,
                )
                continue
            pool.release(record.address)

    # ------------------------------------------------------------------
    # Rebuild from persisted state
    # ------------------------------------------------------------------
    def rebuild(self, records: Iterable[AddressRecord]) -> List[AddressRecord]:
        """Reset in-memory state from the persisted record set.

        Returns the records that could not be adopted: unknown subnet,
        address outside the usable range, duplicate address, a binding with
        a node but no pod UID, an unbound record without a stateful index,
        or a stateful ordinal already claimed by another pod.
        """

        skipped: List[AddressRecord] = []
        with self._all_identity_locks():
            with self._registry_lock:
                pools = dict(self._pools)
            for pool in pools.values():
                pool.clear()
            self._retention.clear()
            active: Dict[str, List[AddressRecord]] = {}
            holders: Dict[RetentionKey, str] = {}
            retained: Dict[RetentionKey, List[AddressRecord]] = {}

            def drop(record: AddressRecord, reason: str) -> None:
                LOG.warning("Skipping %s: %s", record.address, reason)
                pools[record.subnet].release(record.address)
                skipped.append(record)

            for record in records:
                record = record.copy()
                pool = pools.get(record.subnet)
                if pool is None:
                    LOG.warning("Skipping %s: unknown subnet %s", record.address, record.subnet)
                    skipped.append(record)
                    continue
                try:
                    fresh = pool.reserve(record.address)
                except ValueError as exc:
                    LOG.warning("Skipping %s: %s", record.address, exc)
                    skipped.append(record)
                    continue
                if not fresh:
                    LOG.warning(
                        "Skipping duplicate record for %s in subnet %s",
                        record.address,
                        record.subnet,
                    )
                    skipped.append(record)
                    continue

                binding = record.binding
                if not binding.pod_uid and binding.node_name:
                    drop(record, f"bound to node {binding.node_name} without a pod uid")
                elif binding.is_retained:
                    if binding.stateful is None:
                        drop(record, "unbound record without a stateful index")
                        continue
                    retained.setdefault(record_key(record), []).append(record)
                else:
                    if binding.stateful is not None:
                        key = record_key(record)
                        holder = holders.setdefault(key, binding.pod_uid)
                        if holder != binding.pod_uid:
                            drop(record, f"ordinal already held by pod uid {holder}")
                            continue
                    active.setdefault(binding.pod_uid, []).append(record)

            for key, group in retained.items():
                if key in holders:
                    for record in group:
                        drop(record, f"ordinal already held by pod uid {holders[key]}")
                    continue
                self._retention.retain(group)
            adopted = len(self._retention)
            with self._active_lock:
                self._active = active
                self._ordinal_holders = holders

        LOG.info(
            "Rebuilt allocator state: %d active pods, %d retained ordinals, %d skipped",
            len(active),
            adopted,
            len(skipped),
        )
        return skipped

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def records_for(self, identity: WorkloadIdentity) -> List[AddressRecord]:
        with self._active_lock:
            return _copies(self._active.get(identity.pod_uid, ()))

    def records(self) -> List[AddressRecord]:
        """Snapshot of every active and retained record."""

        with self._active_lock:
            active = [record.copy() for group in self._active.values() for record in group]
        return active + self._retention.records()
