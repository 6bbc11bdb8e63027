"""Per-connection memoized introspection results.

Each connection has two slots (see ``CacheSlot``). A slot is filled at most
once and stays filled until the connection is torn down; changes to the
interpreter's name set are not picked up before a reconnect.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable
from typing import Any, Callable

from snail_client.helpers import MISS, NO_VALUE, CacheSlot, Sentinel

logger = logging.getLogger(__name__)


class NameListCache:
    """Name-list slots keyed by connection."""

    def __init__(self):
        self._slots: dict[Hashable, dict[CacheSlot, list[str]]] = {}
        self._fetching: dict[tuple[Hashable, CacheSlot], threading.Lock] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable, slot: CacheSlot) -> list[str] | Sentinel:
        """Return the cached list, or ``MISS``."""
        with self._lock:
            return self._slots.get(key, {}).get(CacheSlot(slot), MISS)

    def put(self, key: Hashable, slot: CacheSlot, names: list[str]) -> None:
        """Fill a slot. A slot that is already filled keeps its value."""
        with self._lock:
            self._slots.setdefault(key, {}).setdefault(CacheSlot(slot), list(names))

    def get_or_fetch(
        self,
        key: Hashable,
        slot: CacheSlot,
        fetch: Callable[[], Any],
    ) -> list[str] | Sentinel:
        """Return the cached list, calling ``fetch`` to fill the slot on a miss.

        Only one fetch per slot runs at a time; concurrent callers for the
        same slot wait for it, and other slots and connections are not
        blocked. A ``NO_VALUE`` result (for example a timed-out query) is
        passed through without being cached, and so is a result that
        arrives after the connection was evicted.
        """
        slot = CacheSlot(slot)
        with self._lock:
            cached = self.get(key, slot)
            if cached is not MISS:
                return cached
            fetching = self._fetching.setdefault((key, slot), threading.Lock())

        with fetching:
            cached = self.get(key, slot)
            if cached is not MISS:
                return cached
            names = fetch()
            if names is NO_VALUE:
                logger.debug("Not caching %s for %s: no value", slot.value, key)
                return NO_VALUE
            with self._lock:
                if self._fetching.get((key, slot)) is not fetching:
                    logger.debug("Not caching %s for %s: evicted during fetch", slot.value, key)
                    return list(names)
                self.put(key, slot, names)
                return self.get(key, slot)

    def evict(self, key: Hashable) -> None:
        """Drop both slots of a connection. Never waits for a running fetch."""
        with self._lock:
            self._slots.pop(key, None)
            for entry in [entry for entry in self._fetching if entry[0] == key]:
                del self._fetching[entry]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._slots
