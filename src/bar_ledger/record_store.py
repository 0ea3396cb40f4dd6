"""In-memory record store holding the session's canonical sales collection.

The store is keyed by sale ``id``. Only the sync coordinator (bulk loads and
push events) and the mutation coordinator write into it; every reader works
from :meth:`RecordStore.snapshot`, an immutable tuple that never aliases the
internal containers.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Tuple

from . import log
from .records import Sale


Snapshot = Tuple[Sale, ...]
ChangeListener = Callable[[Snapshot], None]


class RecordStore:
    """Identity-keyed, insertion-ordered collection of :class:`Sale` rows."""

    def __init__(self, records: Iterable[Sale] = ()) -> None:
        self._order: List[str] = []
        self._by_id: Dict[str, Sale] = {}
        self._listeners: List[ChangeListener] = []
        self._load(records)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, sale_id: object) -> bool:
        return sale_id in self._by_id

    def get(self, sale_id: str) -> Optional[Sale]:
        return self._by_id.get(sale_id)

    def snapshot(self) -> Snapshot:
        """Return a point-in-time, immutable copy of the collection.

        Returns:
            tuple[Sale, ...]: Records in store order. ``Sale`` instances are
                frozen, so the tuple can be shared freely with analytics code.
        """

        return tuple(self._by_id[sale_id] for sale_id in self._order)

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener`` for post-mutation notifications.

        Args:
            listener (Callable[[tuple[Sale, ...]], None]): Invoked with the new
                snapshot after every completed mutation.

        Returns:
            Callable[[], None]: Function that unregisters the listener.
        """

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def replace_all(self, records: Iterable[Sale]) -> None:
        """Swap the entire collection in a single step.

        Duplicate ids inside ``records`` collapse to the last occurrence,
        which keeps the position of the first one.

        Args:
            records (Iterable[Sale]): New contents, typically a bulk fetch or a
                cache restore.
        """

        self._load(records)
        log.debug("Record store replaced with %d records", len(self._order))
        self._notify()

    def upsert(self, record: Sale) -> None:
        """Insert ``record`` or replace the stored record with the same id."""

        if record.id in self._by_id:
            log.debug("Replacing sale '%s'", record.id)
        else:
            log.debug("Inserting sale '%s'", record.id)
            self._order.append(record.id)
        self._by_id[record.id] = record
        self._notify()

    def remove_by_id(self, sale_id: str) -> bool:
        """Remove the record with ``sale_id``.

        Push events may arrive after a local delete already happened, so an
        unknown id is not an error.

        Args:
            sale_id (str): Identity of the record to drop.

        Returns:
            bool: ``True`` when a record was removed, ``False`` for a no-op.
        """

        if sale_id not in self._by_id:
            log.debug("Ignoring removal of unknown sale '%s'", sale_id)
            return False
        del self._by_id[sale_id]
        self._order.remove(sale_id)
        log.debug("Removed sale '%s'", sale_id)
        self._notify()
        return True

    def _load(self, records: Iterable[Sale]) -> None:
        order: List[str] = []
        by_id: Dict[str, Sale] = {}
        for record in records:
            if record.id not in by_id:
                order.append(record.id)
            by_id[record.id] = record
        self._order = order
        self._by_id = by_id

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                log.exception("Record store listener %r failed", listener)


__all__ = ["RecordStore", "Snapshot", "ChangeListener"]
