"""
Risk Engine - Lookup Indexes.

============================================================
PURPOSE
============================================================
Mutable in-memory indexes consulted by the scorers:

1. IdentityIndex: document number -> voter record ids
2. AddressIndex: normalized address -> voter record ids
3. VelocityIndex: origin address -> recent submission times
4. BoothDocumentIndex: booth id -> document numbers seen

No decision logic lives here. Every index owns a lock so
concurrent callers get one writer at a time per map.

============================================================
"""

import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Set


def normalize_address(address: Optional[str]) -> str:
    """Trim and case-fold an address. Empty input yields ''."""
    if not address:
        return ""
    return str(address).strip().casefold()


class _RecordIdIndex:
    """Shared shape of the key -> voter record ids indexes."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[str]] = defaultdict(list)
        self._lock = threading.Lock()

    def _key(self, value: str) -> str:
        return value

    def add(self, value: Optional[str], voter_record_id: str) -> None:
        """Index one record under value. Blank values are ignored."""
        key = self._key(value) if value else ""
        if not key:
            return
        with self._lock:
            ids = self._entries[key]
            if voter_record_id not in ids:
                ids.append(voter_record_id)

    def lookup(self, value: Optional[str]) -> List[str]:
        """Return a copy of the record ids held under value."""
        key = self._key(value) if value else ""
        if not key:
            return []
        with self._lock:
            return list(self._entries.get(key, ()))

    def count(self, value: Optional[str]) -> int:
        return len(self.lookup(value))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class IdentityIndex(_RecordIdIndex):
    """Document number -> voter record ids."""

    def _key(self, value: str) -> str:
        return str(value).strip()


class AddressIndex(_RecordIdIndex):
    """Normalized address -> voter record ids."""

    def _key(self, value: str) -> str:
        return normalize_address(value)


class VelocityIndex:
    """
    Per-origin sliding window of submission timestamps.

    record() prunes entries older than the window, appends the
    current time and returns the window occupancy, all under a
    single lock acquisition. Origins whose windows have emptied
    are dropped by a sweep run at most once per window length.
    """

    def __init__(self, window_seconds: float = 600.0) -> None:
        self._window = timedelta(seconds=window_seconds)
        self._windows: Dict[str, List[datetime]] = {}
        self._last_sweep: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window.total_seconds()

    def record(self, origin: str, now: datetime) -> int:
        with self._lock:
            self._sweep(now)
            recent = [t for t in self._windows.get(origin, []) if now - t < self._window]
            recent.append(now)
            self._windows[origin] = recent
            return len(recent)

    def occupancy(self, origin: str, now: datetime) -> int:
        """Window occupancy without recording a submission."""
        with self._lock:
            return sum(1 for t in self._windows.get(origin, []) if now - t < self._window)

    def tracked_origins(self) -> List[str]:
        with self._lock:
            return sorted(self._windows)

    def _sweep(self, now: datetime) -> None:
        # Caller holds the lock
        if self._last_sweep is not None and now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        stale = [
            origin for origin, times in self._windows.items()
            if not times or now - times[-1] >= self._window
        ]
        for origin in stale:
            del self._windows[origin]


class BoothDocumentIndex:
    """Booth id -> document numbers seen in ingested Form 17A entries."""

    def __init__(self) -> None:
        self._booths: Dict[str, Set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def add_documents(self, booth_id: str, epic_ids) -> Set[str]:
        """
        Add document numbers to a booth.

        Returns:
            The document numbers that were new for this booth
        """
        with self._lock:
            known = self._booths[booth_id]
            added = {e for e in epic_ids if e not in known}
            known.update(added)
            return added

    def documents_for(self, booth_id: str) -> Set[str]:
        with self._lock:
            return set(self._booths.get(booth_id, ()))

    def contains(self, booth_id: str, epic_id: str) -> bool:
        with self._lock:
            return epic_id in self._booths.get(booth_id, ())

    def snapshot(self) -> Mapping[str, Set[str]]:
        """Copy of the whole map, safe to iterate without the lock."""
        with self._lock:
            return {booth: set(epics) for booth, epics in self._booths.items()}

    def booths(self) -> List[str]:
        with self._lock:
            return sorted(self._booths)
