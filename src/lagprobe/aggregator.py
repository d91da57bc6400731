from __future__ import annotations

import threading
from collections import Counter

from lagprobe.common import Endpoint


class _Entry:
    __slots__ = ("lock", "counts")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.counts: Counter[str] = Counter()


class ResponseTable:
    """Counts how often each message was received from each endpoint.

    Every endpoint has its own lock, so probes against different endpoints
    never contend. The table lock is only taken to add an endpoint seen for
    the first time. Counts only grow and entries are never removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Endpoint, _Entry] = {}

    def _entry(self, endpoint: Endpoint) -> _Entry:
        entry = self._entries.get(endpoint)
        if entry is None:
            with self._lock:
                entry = self._entries.setdefault(endpoint, _Entry())
        return entry

    def record(self, endpoint: Endpoint, message: str) -> int:
        """Increment the count for ``(endpoint, message)`` and return the new value."""
        entry = self._entry(endpoint)
        with entry.lock:
            entry.counts[message] += 1
            return entry.counts[message]

    def count(self, endpoint: Endpoint, message: str) -> int:
        entry = self._entries.get(endpoint)
        if entry is None:
            return 0
        with entry.lock:
            return entry.counts[message]

    def endpoints(self) -> list[Endpoint]:
        with self._lock:
            return list(self._entries)

    def snapshot(self) -> dict[Endpoint, dict[str, int]]:
        with self._lock:
            entries = list(self._entries.items())
        snap = {}
        for endpoint, entry in entries:
            with entry.lock:
                snap[endpoint] = dict(entry.counts)
        return snap

    def __len__(self) -> int:
        return len(self._entries)
