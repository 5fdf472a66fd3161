"""Retention of addresses for stateful workloads across pod recreation."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import RetentionLookupInconsistent
from .models import AddressRecord, ReferredObject, WorkloadIdentity

LOG = logging.getLogger(__name__)

RetentionKey = Tuple[str, str, str, int]


def record_key(record: AddressRecord) -> RetentionKey:
    binding = record.binding
    if binding.stateful is None:
        raise ValueError(f"record {record.name} carries no stateful index")
    return (
        record.namespace,
        binding.referred_object.kind,
        binding.referred_object.name,
        binding.stateful.index,
    )


class RetentionStore:
    """Index retained address records by owner reference and ordinal.

    Records are keyed by ``(namespace, owner kind, owner name, ordinal)`` and
    never by pod UID, because the UID changes every time the pod is
    recreated.  The owner UID is checked on every access so a recreated
    owner never inherits addresses retained for its predecessor.
    """

    def __init__(self) -> None:
        self._records: Dict[RetentionKey, List[AddressRecord]] = {}
        self._lock = threading.Lock()

    def _key_for(self, identity: WorkloadIdentity) -> RetentionKey:
        if not identity.owned_by_stateful_controller:
            raise RetentionLookupInconsistent(
                f"pod {identity.namespace}/{identity.pod_name} is not owned by a "
                f"stateful controller (owner kind {identity.referred_object.kind})",
                identity.pod_name,
            )
        if identity.ordinal is None:
            raise RetentionLookupInconsistent(
                f"ordinal of pod {identity.namespace}/{identity.pod_name} is unparsable",
                identity.pod_name,
            )
        return identity.retention_key

    @staticmethod
    def _check_owner(
        identity: WorkloadIdentity, records: Sequence[AddressRecord]
    ) -> None:
        wanted = identity.referred_object.uid
        for record in records:
            stored = record.binding.referred_object.uid
            if wanted and stored and wanted != stored:
                raise RetentionLookupInconsistent(
                    f"address {record.address} is retained for owner uid {stored}, "
                    f"not {wanted}",
                    identity.pod_name,
                )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def retain(self, records: Sequence[AddressRecord]) -> None:
        """Store ``records`` (one per family) for later rebind.

        An ordinal already holding retained records is never overwritten;
        :class:`RetentionLookupInconsistent` is raised and the caller keeps
        ownership of ``records``.
        """

        if not records:
            return
        keys = {record_key(record) for record in records}
        if len(keys) != 1:
            raise ValueError(f"records belong to different workloads: {sorted(keys)}")
        for record in records:
            if not record.binding.is_retained:
                raise ValueError(
                    f"record {record.name} is still bound to pod "
                    f"{record.binding.pod_uid}"
                )
        key = keys.pop()
        with self._lock:
            held = self._records.get(key)
            if held is not None:
                raise RetentionLookupInconsistent(
                    f"{key[1]} {key[0]}/{key[2]} ordinal {key[3]} already retains "
                    f"{[r.address for r in held]}",
                    records[0].binding.pod_name,
                )
            self._records[key] = list(records)
        LOG.info(
            "Retained %s for %s/%s %s ordinal %d",
            [r.address for r in records],
            key[0],
            key[1],
            key[2],
            key[3],
        )

    def take(self, identity: WorkloadIdentity) -> Optional[List[AddressRecord]]:
        """Remove and return the records retained for ``identity``."""

        key = self._key_for(identity)
        with self._lock:
            records = self._records.get(key)
            if records is None:
                return None
            self._check_owner(identity, records)
            del self._records[key]
        return records

    def purge(self, identity: WorkloadIdentity) -> List[AddressRecord]:
        key = self._key_for(identity)
        with self._lock:
            records = self._records.get(key)
            if records is None:
                return []
            self._check_owner(identity, records)
            del self._records[key]
        LOG.info("Purged retained addresses %s", [r.address for r in records])
        return records

    def purge_owner(
        self,
        namespace: str,
        owner: ReferredObject,
        keep: Optional[int] = None,
    ) -> List[AddressRecord]:
        """Purge retained ordinals of ``owner``.

        With ``keep`` set, only ordinals ``>= keep`` are purged (scale-down);
        otherwise every ordinal is purged (owner deletion).
        """

        purged: List[AddressRecord] = []
        with self._lock:
            for key in list(self._records):
                rec_ns, kind, name, index = key
                if (rec_ns, kind, name) != (namespace, owner.kind, owner.name):
                    continue
                if keep is not None and index < keep:
                    continue
                records = self._records[key]
                stored_uid = records[0].binding.referred_object.uid
                if owner.uid and stored_uid and owner.uid != stored_uid:
                    continue
                purged.extend(self._records.pop(key))
        if purged:
            LOG.info(
                "Purged retained addresses of %s %s/%s: %s",
                owner.kind,
                namespace,
                owner.name,
                [r.address for r in purged],
            )
        return purged

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def lookup(self, identity: WorkloadIdentity) -> Optional[List[AddressRecord]]:
        """Return copies of the records retained for ``identity``, if any."""

        key = self._key_for(identity)
        with self._lock:
            records = self._records.get(key)
            if records is None:
                return None
            self._check_owner(identity, records)
            return [record.copy() for record in records]

    def records(self) -> List[AddressRecord]:
        with self._lock:
            return [record.copy() for group in self._records.values() for record in group]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
