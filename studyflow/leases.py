"""Per-key in-flight leases.

All mutation happens on one event loop, so a plain set is a sufficient
mutex: checking and taking a lease never yields.  A threaded host would
need a real lock per key instead.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLeases:
    """Set of keys currently held by an in-flight operation."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def is_held(self, key: str) -> bool:
        return key in self._held

    def acquire(self, key: str) -> bool:
        """Take the lease for *key*; False if it is already held."""
        if key in self._held:
            return False
        self._held.add(key)
        return True

    def release(self, key: str) -> None:
        self._held.discard(key)

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        """Hold *key* for the duration of the block, releasing on exit.

        Yields False (and releases nothing) when the key was already held.
        """
        acquired = self.acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    def __len__(self) -> int:
        return len(self._held)
