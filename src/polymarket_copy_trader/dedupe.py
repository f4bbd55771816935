from __future__ import annotations

import threading
from collections import OrderedDict

DEFAULT_CAPACITY = 1000


class TxHashWindow:
    """Recency window of transaction hashes shared by every detection source.

    Once the window grows past ``capacity`` the oldest half is dropped in a
    single pass; recent hashes are the ones the polling overlap re-delivers.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, tx_hash: object) -> bool:
        return tx_hash in self._seen

    def seen(self, tx_hash: str | None) -> bool:
        if not tx_hash:
            return False
        with self._lock:
            return tx_hash in self._seen

    def mark(self, tx_hash: str | None) -> None:
        if not tx_hash:
            return
        with self._lock:
            self._insert(tx_hash)

    def check_and_mark(self, tx_hash: str | None) -> bool:
        """Return True the first time ``tx_hash`` is offered."""
        if not tx_hash:
            return True
        with self._lock:
            if tx_hash in self._seen:
                return False
            self._insert(tx_hash)
            return True

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()

    def _insert(self, tx_hash: str) -> None:
        self._seen[tx_hash] = None
        if len(self._seen) > self.capacity:
            for _ in range(self.capacity // 2):
                self._seen.popitem(last=False)
