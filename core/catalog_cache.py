from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from core.models import MediaItem

DEFAULT_TTL = 300.0


@dataclass
class _Entry:
    items: List[MediaItem] = field(default_factory=list)
    last_refresh: Optional[float] = None


class CatalogCache:
    """
    Process-wide, in-memory cache of library listings keyed by library id.

    An entry is valid while ``now - last_refresh < ttl``. Callers hold ``lock`` only long enough
    to read or swap entries; never across network I/O.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self.lock = asyncio.Lock()

    def is_valid(self, library_id: str) -> bool:
        entry = self._entries.get(library_id)
        if entry is None or entry.last_refresh is None:
            return False
        return self._clock() - entry.last_refresh < self.ttl

    def get(self, library_id: str) -> Optional[List[MediaItem]]:
        if not self.is_valid(library_id):
            return None
        return list(self._entries[library_id].items)

    def update(self, library_id: str, items: List[MediaItem]) -> None:
        self._entries[library_id] = _Entry(items=list(items), last_refresh=self._clock())

    def invalidate(self, library_id: Optional[str] = None) -> None:
        """Mark one library (or every library when ``library_id`` is None) as stale."""
        targets = [library_id] if library_id is not None else list(self._entries)
        for key in targets:
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_refresh = None

    async def aget(self, library_id: str) -> Optional[List[MediaItem]]:
        async with self.lock:
            return self.get(library_id)

    async def aupdate(self, library_id: str, items: List[MediaItem]) -> None:
        async with self.lock:
            self.update(library_id, items)

    async def ainvalidate(self, library_id: Optional[str] = None) -> None:
        async with self.lock:
            self.invalidate(library_id)
