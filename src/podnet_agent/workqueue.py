"""Deduplicating work queue for resync keys."""

from __future__ import annotations

import logging
from collections import deque
from threading import Condition, Event, Thread
from typing import Callable, Deque, Optional, Set

LOG = logging.getLogger(__name__)


class DedupQueue:
    """FIFO of keys where a key is pending at most once.

    Adding a key that is already waiting is a no-op.  Adding a key that is
    currently being processed marks it dirty; it is queued again once when
    :meth:`done` is called, so a change arriving mid-processing is never lost.
    """

    def __init__(self) -> None:
        self._cond = Condition()
        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._shutting_down = False

    def add(self, key: str) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Pop the next key, or return ``None`` on timeout or shutdown."""

        with self._cond:
            while not self._queue and not self._shutting_down:
                if not self._cond.wait(timeout):
                    return None
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)


class QueueWorker(Thread):
    """Process keys from a :class:`DedupQueue` until ``stop_event`` is set.

    A failing key is added back after ``retry_delay`` seconds.
    """

    def __init__(
        self,
        queue: DedupQueue,
        process: Callable[[str], None],
        stop_event: Event,
        retry_delay: float = 1.0,
    ) -> None:
        super().__init__(daemon=True)
        self._queue = queue
        self._process = process
        self._stop_event = stop_event
        self._retry_delay = retry_delay

    def run(self) -> None:
        while not self._stop_event.is_set():
            key = self._queue.get(timeout=0.5)
            if key is None:
                continue
            try:
                self._process(key)
            except Exception:  # pragma: no cover - logged below
                LOG.exception("processing %s failed, retrying in %ss", key, self._retry_delay)
                self._queue.done(key)
                self._stop_event.wait(self._retry_delay)
                self._queue.add(key)
                continue
            self._queue.done(key)
