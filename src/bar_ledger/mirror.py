"""Persistence mirror: copies every store and target change into the cache.

Writes are best-effort. The offline cache is a convenience fallback rather
than a durability guarantee, so storage failures are logged and counted but
never propagated to the caller that changed the store.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from . import log
from .constants import CacheKey
from .data_manager import OfflineCache
from .record_store import RecordStore, Snapshot
from .records import TargetConfiguration, sale_to_mapping, targets_from_mapping, targets_to_mapping


class PersistenceMirror:
    """Listens to a :class:`RecordStore` and mirrors it into an offline cache."""

    def __init__(self, store: RecordStore, cache: OfflineCache) -> None:
        self.store = store
        self.cache = cache
        self.write_count = 0
        self.failure_count = 0
        self._detach: Optional[Callable[[], None]] = None

    def attach(self) -> None:
        if self._detach is None:
            self._detach = self.store.add_listener(self.mirror_snapshot)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def _write(self, key: CacheKey, value: Any) -> bool:
        try:
            self.cache.write(key.value, value)
        except (OSError, ValueError, TypeError) as exc:
            self.failure_count += 1
            log.warning("Offline cache write for '%s' failed: %s", key.value, exc)
            return False
        self.write_count += 1
        return True

    def mirror_snapshot(self, snapshot: Snapshot) -> bool:
        """Serialize ``snapshot`` under the sales key; ``False`` on failure."""

        return self._write(CacheKey.SALES_SNAPSHOT, [sale_to_mapping(sale) for sale in snapshot])

    def mirror_targets(self, targets: TargetConfiguration) -> bool:
        return self._write(CacheKey.TARGETS, targets_to_mapping(targets))

    def restore_targets(self, fallback: TargetConfiguration) -> TargetConfiguration:
        """Return the cached targets, or ``fallback`` when none are usable."""

        try:
            cached = targets_from_mapping(self.cache.read(CacheKey.TARGETS.value))
        except (OSError, ValueError, KeyError) as exc:
            log.warning("Offline cache targets unreadable: %s", exc)
            cached = None
        return cached if cached is not None else fallback


__all__ = ["PersistenceMirror"]
