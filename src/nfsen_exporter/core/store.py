from __future__ import annotations
import threading
import time
from typing import Dict, List, Optional, Tuple
from .models import MetricRecord


class MetricStore:
    """
    In memory map of the latest MetricRecord per (ident, exporter_id).

    One lock guards the whole mapping. The listener writes through upsert,
    the exporter reads through snapshot. Nothing else touches the mapping.

    Important:
      Records are immutable, so swapping a record under the lock is enough
      to make every update atomic for readers. snapshot only copies
      references and never does I/O while the lock is held.

    stale_after
      None keeps every entry until the process exits. When set, entries not
      refreshed for that many seconds are hidden from snapshot, idents and
      len, and dropped by prune. prune does real work at most once per
      stale_after / 2 seconds.
    """

    def __init__(self, stale_after: Optional[float] = None):
        self.stale_after = stale_after
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[int, MetricRecord]] = {}
        self._updated: Dict[Tuple[str, int], float] = {}
        self._last_prune: Optional[float] = None

    def upsert(self, record: MetricRecord) -> None:
        """
        Insert or replace the record for (ident, exporter_id).
        """
        now = time.monotonic()
        with self._lock:
            self._records.setdefault(record.ident, {})[record.exporter_id] = record
            self._updated[record.key()] = now

    def snapshot(self) -> Dict[str, List[MetricRecord]]:
        """
        Point in time copy of ident -> records, ordered by exporter_id.
        """
        with self._lock:
            copied = {ident: dict(by_exporter) for ident, by_exporter in self._records.items()}
            updated = dict(self._updated) if self.stale_after is not None else None

        cutoff = self._cutoff()
        snap: Dict[str, List[MetricRecord]] = {}
        for ident, by_exporter in copied.items():
            records = [
                by_exporter[eid]
                for eid in sorted(by_exporter)
                if updated is None or updated[(ident, eid)] >= cutoff
            ]
            if records:
                snap[ident] = records
        return snap

    def get(self, ident: str, exporter_id: int) -> Optional[MetricRecord]:
        with self._lock:
            return self._records.get(ident, {}).get(exporter_id)

    def idents(self) -> List[str]:
        cutoff = self._cutoff()
        with self._lock:
            return sorted({ident for (ident, _eid), ts in self._updated.items() if ts >= cutoff})

    def prune(self) -> int:
        """
        Drop entries older than stale_after. Returns how many were removed.

        Calls within stale_after / 2 seconds of the last sweep return 0
        without scanning.
        """
        if self.stale_after is None:
            return 0

        now = time.monotonic()
        cutoff = now - self.stale_after
        removed = 0
        with self._lock:
            if self._last_prune is not None and now - self._last_prune < self.stale_after / 2:
                return 0
            self._last_prune = now
            for key, ts in list(self._updated.items()):
                if ts >= cutoff:
                    continue
                ident, eid = key
                del self._updated[key]
                by_exporter = self._records.get(ident, {})
                by_exporter.pop(eid, None)
                if not by_exporter:
                    self._records.pop(ident, None)
                removed += 1
        return removed

    def _cutoff(self) -> float:
        if self.stale_after is None:
            return float("-inf")
        return time.monotonic() - self.stale_after

    def __len__(self) -> int:
        cutoff = self._cutoff()
        with self._lock:
            return sum(1 for ts in self._updated.values() if ts >= cutoff)
