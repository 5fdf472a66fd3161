"""JSON file persistence for allocated address records."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Iterable, List

from podnet_ipam.models import AddressRecord

LOG = logging.getLogger(__name__)


class RecordFileStore:
    """Load and save the allocator's record snapshot.

    The file holds ``{"records": [...]}`` with one entry per address in the
    persisted field shape of :meth:`AddressRecord.to_dict`.  Saves go through
    a temporary file and a rename so a crash never leaves a torn file.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[AddressRecord]:
        if not self._path.exists():
            LOG.debug("records file %s does not exist yet", self._path)
            return []

        payload = json.loads(self._path.read_text())
        if not isinstance(payload, dict) or not isinstance(payload.get("records"), list):
            raise ValueError(f"records file {self._path} missing 'records' list")

        records = []
        for entry in payload["records"]:
            try:
                records.append(AddressRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                LOG.warning("skipping malformed record %r in %s: %s", entry, self._path, exc)
        return records

    def save(self, records: Iterable[AddressRecord]) -> None:
        ordered = sorted(records, key=lambda r: (r.subnet, r.address))
        body = json.dumps({"records": [r.to_dict() for r in ordered]}, indent=2)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(body)
            os.replace(tmp_path, self._path)
