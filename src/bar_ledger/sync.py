"""Sync coordinator: seeds the record store and routes push events into it.

State machine::

    uninitialized -> loading -> online | offline
                        ^            |
                        +-- force_sync

Every entry into ``loading`` takes a fresh generation token. A fetch result
is applied only while its token is still the latest, so a slow response can
never overwrite the outcome of a newer sync.

Push events are queued on an :class:`EventChannel` and drained one at a time.
A delivery that arrives while an earlier event is still being applied (for
example from a store listener) is queued behind it instead of nesting.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Deque, Iterable, List, Mapping, Optional

from . import log
from .constants import CacheKey, ChangeType, Connectivity, SyncState
from .data_manager import OfflineCache
from .record_store import RecordStore
from .records import Sale, sale_from_mapping
from .remote import RemoteLedgerClient, Subscription


@dataclass(frozen=True)
class ChangeEvent:
    """Normalized push event."""

    change_type: ChangeType
    sale_id: str
    record: Optional[Sale] = None


def parse_change_event(payload: Mapping[str, Any]) -> ChangeEvent:
    """Translate a raw ``{"eventType", "new", "old"}`` payload.

    Args:
        payload (Mapping[str, Any]): Event as emitted by the remote ledger.

    Returns:
        ChangeEvent: Event carrying the full record for inserts and updates,
            and only the identity for deletions.

    Raises:
        ValueError: If the event type is unknown or the payload lacks the
            record (or id) the event type requires.
    """

    if not isinstance(payload, Mapping):
        raise ValueError(f"Change payload must be a mapping, got {type(payload).__name__}")
    change_type = ChangeType(payload.get("eventType"))
    if change_type is ChangeType.DELETE:
        old = payload.get("old") or {}
        sale_id = old.get("id") if isinstance(old, Mapping) else None
        if sale_id is None or str(sale_id) == "":
            raise ValueError("DELETE event is missing old.id")
        return ChangeEvent(change_type=change_type, sale_id=str(sale_id))

    record = sale_from_mapping(payload.get("new"))
    return ChangeEvent(change_type=change_type, sale_id=record.id, record=record)


class EventChannel:
    """FIFO queue with a single consumer."""

    def __init__(self) -> None:
        self._queue: Deque[Mapping[str, Any]] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    def put(self, payload: Mapping[str, Any]) -> None:
        self._queue.append(payload)

    def get(self) -> Mapping[str, Any]:
        return self._queue.popleft()

    def clear(self) -> None:
        self._queue.clear()


def records_from_rows(rows: Iterable[Any], *, source: str) -> List[Sale]:
    """Convert wire rows to sales, skipping (and logging) malformed ones."""

    records: List[Sale] = []
    for row in rows:
        try:
            records.append(sale_from_mapping(row))
        except ValueError as exc:
            log.warning("Skipping malformed sale from %s: %s", source, exc)
    return records


class SyncCoordinator:
    """Owns connectivity and keeps the record store fed from remote or cache."""

    def __init__(self, store: RecordStore, remote: RemoteLedgerClient, cache: OfflineCache) -> None:
        self.store = store
        self.remote = remote
        self.cache = cache
        self.state = SyncState.UNINITIALIZED
        self.connectivity = Connectivity.OFFLINE
        self.last_synced: Optional[datetime] = None
        self.subscription_error: Optional[Exception] = None
        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self._channel = EventChannel()
        self._draining = False
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def is_online(self) -> bool:
        return self.connectivity is Connectivity.ONLINE

    def start(self) -> SyncState:
        """Run the initial load and open the session's push subscription.

        Returns:
            SyncState: ``ONLINE`` when the remote fetch succeeded, ``OFFLINE``
                when the store was seeded from the offline cache instead.
        """

        if self.state is not SyncState.UNINITIALIZED:
            log.warning("Sync coordinator already started (state=%s)", self.state.value)
            return self.state
        state = self._load()
        self._subscribe()
        return state

    def force_sync(self) -> SyncState:
        """Re-enter ``loading``; the usual way back from ``offline``.

        A push subscription that failed earlier is attempted again once the
        fetch settles.
        """

        log.info("Force sync requested")
        state = self._load()
        self._subscribe()
        return state

    def mark_online(self) -> None:
        if self.connectivity is not Connectivity.ONLINE:
            log.info("Connectivity changed to online")
        self.connectivity = Connectivity.ONLINE
        self.state = SyncState.ONLINE

    def mark_offline(self) -> None:
        if self.connectivity is not Connectivity.OFFLINE:
            log.warning("Connectivity changed to offline")
        self.connectivity = Connectivity.OFFLINE
        self.state = SyncState.OFFLINE

    def _load(self) -> SyncState:
        self._generation += 1
        token = self._generation
        self.state = SyncState.LOADING
        log.info("Loading sales from remote ledger (generation %d)", token)
        try:
            rows = self.remote.fetch_all()
        except Exception as exc:  # any rejection counts as a remote failure
            if token != self._generation:
                log.info("Discarding failed fetch from stale generation %d", token)
                return self.state
            log.warning("Remote fetch failed, falling back to offline cache: %s", exc)
            return self._restore_from_cache()

        if token != self._generation:
            log.info(
                "Discarding fetch from stale generation %d (latest is %d)",
                token,
                self._generation,
            )
            return self.state
        return self._apply_fetch(records_from_rows(rows, source="remote"))

    def _apply_fetch(self, records: List[Sale]) -> SyncState:
        fetched_ids = {record.id for record in records}
        discarded = [
            sale for sale in self.store.snapshot() if sale.is_local and sale.id not in fetched_ids
        ]
        if discarded:
            log.warning(
                "Full resync replaced %d local-only records: %s",
                len(discarded),
                ", ".join(sale.id for sale in discarded),
            )
        self.store.replace_all(records)
        self.last_synced = datetime.now(UTC)
        self.mark_online()
        log.info("Synced %d sales from remote ledger", len(records))
        return self.state

    def _restore_from_cache(self) -> SyncState:
        try:
            rows = self.cache.read(CacheKey.SALES_SNAPSHOT.value)
        except (OSError, ValueError, KeyError) as exc:
            log.warning("Offline cache unreadable, starting empty: %s", exc)
            rows = None
        if not isinstance(rows, list):
            if rows is not None:
                log.warning("Ignoring offline cache snapshot of type %s", type(rows).__name__)
            rows = []
        records = records_from_rows(rows, source="offline cache")
        self.store.replace_all(records)
        self.mark_offline()
        log.info("Restored %d sales from offline cache", len(records))
        return self.state

    def _subscribe(self) -> None:
        if self._subscription is not None or self._closed:
            return
        try:
            self._subscription = self.remote.subscribe_to_changes(self.deliver)
        except Exception as exc:  # subscription failures never change connectivity
            self.report_subscription_error(exc)
            return
        self.subscription_error = None
        log.info("Subscribed to remote sales changes")

    def report_subscription_error(self, error: Exception) -> None:
        """Record a push-channel failure without touching connectivity.

        The subscription is not retried automatically; an explicit re-sync
        (or a new session) is required.
        """

        self.subscription_error = error
        log.error("Sales change subscription failed: %s", error)

    def deliver(self, payload: Mapping[str, Any]) -> None:
        """Queue a push event and drain the channel unless already draining."""

        if self._closed:
            log.debug("Dropping change event delivered after teardown")
            return
        self._channel.put(payload)
        if self._draining:
            return
        self._draining = True
        try:
            while len(self._channel):
                self._apply_event(self._channel.get())
        finally:
            self._draining = False

    def _apply_event(self, payload: Mapping[str, Any]) -> None:
        try:
            event = parse_change_event(payload)
        except ValueError as exc:
            log.warning("Ignoring malformed change event: %s", exc)
            return

        if event.change_type is ChangeType.DELETE:
            self.store.remove_by_id(event.sale_id)
        else:
            self.store.upsert(event.record)
        log.debug("Applied %s event for sale '%s'", event.change_type.value, event.sale_id)

    def close(self) -> None:
        """Cancel the push subscription exactly once; safe to call again."""

        if self._closed:
            return
        self._closed = True
        self._channel.clear()
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            subscription.cancel()
        except Exception as exc:
            log.warning("Cancelling the change subscription failed: %s", exc)
        else:
            log.info("Change subscription cancelled")


__all__ = [
    "ChangeEvent",
    "parse_change_event",
    "EventChannel",
    "records_from_rows",
    "SyncCoordinator",
]
