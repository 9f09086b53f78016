"""
Pending row cache keyed by batch identity.

Each distinct BatchKey owns one PendingBatch: an ordered list of row payloads
paired with the lock that guards it. Entries are created on first use and
never removed, only drained in place, so a key never has two live lists.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from hyper_sender.records import Action

logger = logging.getLogger(__name__)

SendFn = Callable[["BatchKey", list[str]], None]


@dataclass(frozen=True)
class BatchKey:
    """
    Identity of one pending batch queue.

    columns is the comma-joined column signature and is only set for update
    batches, so different column subsets of one partition queue separately.
    """

    action: Action
    partition_num: int
    columns: Optional[str] = None


class PendingBatch:
    """Rows queued under one BatchKey together with their lock."""

    def __init__(self, key: BatchKey, created_at: float):
        self.key = key
        self.lock = threading.Lock()
        self.rows: list[str] = []
        self.last_flush_time = created_at

    def __len__(self) -> int:
        return len(self.rows)


class PendingCache:
    """
    Concurrent mapping from BatchKey to PendingBatch.

    Lookups of existing keys take no lock. Registration of a new key goes
    through a single lock with insert-if-absent semantics. All reads and
    writes of a key's rows happen under that key's own lock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache.

        Args:
            clock: Monotonic time source used for flush bookkeeping
        """
        self._entries: dict[BatchKey, PendingBatch] = {}
        self._register_lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: BatchKey) -> bool:
        return key in self._entries

    def get(self, key: BatchKey) -> PendingBatch:
        """Return the entry for key, creating it on first use."""
        entry = self._entries.get(key)
        if entry is None:
            with self._register_lock:
                entry = self._entries.get(key)
                if entry is None:
                    entry = PendingBatch(key, self._clock())
                    self._entries[key] = entry
                    logger.debug("Registered pending batch: %s", key)
        return entry

    def entries(self) -> list[PendingBatch]:
        """Snapshot of every entry registered so far."""
        with self._register_lock:
            return list(self._entries.values())

    def pending_count(self) -> int:
        """Number of rows currently queued across all keys."""
        return sum(len(entry) for entry in self.entries())

    def append(self, key: BatchKey, payload: str, threshold: int, send: SendFn) -> int:
        """
        Queue a payload and flush the key once it reaches the threshold.

        The append, the size check and the flush run under the key's lock, so
        no row can slip in between the check and the clear.

        Args:
            key: Batch the payload belongs to
            payload: Serialized row
            threshold: Row count that triggers a flush
            send: Callable delivering (key, rows); exceptions propagate

        Returns:
            Number of rows flushed, 0 if the threshold was not reached
        """
        entry = self.get(key)
        with entry.lock:
            entry.rows.append(payload)
            if len(entry.rows) >= threshold:
                return self._drain_locked(entry, send)
        return 0

    def flush_entry(
        self,
        entry: PendingBatch,
        send: SendFn,
        max_staleness: Optional[float] = None,
    ) -> int:
        """
        Flush an entry if it has rows (and, when max_staleness is given, if it
        has not been flushed for at least that many seconds).

        Emptiness and staleness are checked before and again after taking the
        lock, since a threshold flush may have drained the entry meanwhile.

        Returns:
            Number of rows flushed
        """
        if not self._due(entry, max_staleness):
            return 0
        with entry.lock:
            if not self._due(entry, max_staleness):
                return 0
            return self._drain_locked(entry, send)

    def _due(self, entry: PendingBatch, max_staleness: Optional[float]) -> bool:
        if not entry.rows:
            return False
        if max_staleness is None:
            return True
        return self._clock() - entry.last_flush_time >= max_staleness

    def _drain_locked(self, entry: PendingBatch, send: SendFn) -> int:
        # Rows are cleared only once send returns; a failed send keeps them queued.
        rows = list(entry.rows)
        send(entry.key, rows)
        entry.rows.clear()
        entry.last_flush_time = self._clock()
        return len(rows)
