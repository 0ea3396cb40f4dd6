"""Session wiring for the bar ledger.

A :class:`LedgerSession` owns one record store and injects it, together with
the remote client and the offline cache, into the sync coordinator, the
mutation coordinator and the persistence mirror. Nothing is global: tests and
alternative front-ends build as many independent sessions as they need.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Optional

from . import data_manager, log
from .analytics import Dashboard, compute_dashboard
from .constants import DEFAULT_WEEK_START, Connectivity, SyncState
from .data_manager import ConfigSettings, MemoryCache, OfflineCache, WorkbookCache
from .export import write_csv
from .mirror import PersistenceMirror
from .mutations import MutationCoordinator
from .record_store import RecordStore
from .records import TargetConfiguration
from .remote import RemoteLedgerClient, RestLedgerClient, UnavailableLedgerClient
from .sync import SyncCoordinator


@dataclass
class LedgerSession:
    """One operator session: store, collaborators and coordinators.

    Construct it with explicit collaborators, call :meth:`start`, and always
    :meth:`close` it so the push subscription is cancelled.
    """

    settings: ConfigSettings
    remote: RemoteLedgerClient
    cache: OfflineCache
    store: RecordStore = field(default_factory=RecordStore)
    week_start: int = DEFAULT_WEEK_START
    targets: TargetConfiguration = field(init=False)
    sync: SyncCoordinator = field(init=False)
    mutations: MutationCoordinator = field(init=False)
    mirror: PersistenceMirror = field(init=False)

    def __post_init__(self) -> None:
        self.sync = SyncCoordinator(self.store, self.remote, self.cache)
        self.mutations = MutationCoordinator(
            self.store,
            self.remote,
            self.sync,
            default_updated_by=self.settings.default_updated_by,
        )
        self.mirror = PersistenceMirror(self.store, self.cache)
        self.targets = self.settings.targets

    @property
    def connectivity(self) -> Connectivity:
        return self.sync.connectivity

    def start(self) -> SyncState:
        """Restore targets, load sales, and begin mirroring to the cache.

        Cached targets take precedence over the ``[Targets]`` section.

        Returns:
            SyncState: ``ONLINE`` or ``OFFLINE`` depending on the remote fetch.
        """

        self.targets = self.mirror.restore_targets(self.settings.targets)
        state = self.sync.start()
        # an offline start restored this snapshot from the cache already
        if state is SyncState.ONLINE:
            self.mirror.mirror_snapshot(self.store.snapshot())
        self.mirror.attach()
        log.info(
            "Session for '%s' started %s with %d sales",
            self.settings.store_name,
            state.value,
            len(self.store),
        )
        return state

    def force_sync(self) -> SyncState:
        return self.sync.force_sync()

    def set_targets(self, targets: TargetConfiguration) -> None:
        self.targets = targets
        self.mirror.mirror_targets(targets)
        log.info(
            "Targets updated (daily=%s, weekly=%s, monthly=%s)",
            targets.daily,
            targets.weekly,
            targets.monthly,
        )

    def dashboard(self, now: Optional[datetime | date] = None) -> Dashboard:
        """Compute analytics over the current snapshot."""

        reference = now if now is not None else datetime.now(UTC)
        return compute_dashboard(self.store.snapshot(), self.targets, reference, week_start=self.week_start)

    def export_csv(self, directory: Path, *, today: Optional[date] = None) -> Path:
        return write_csv(self.store.snapshot(), directory, today=today or datetime.now(UTC).date())

    def close(self) -> None:
        """Cancel the subscription and stop mirroring; safe to call twice."""

        self.sync.close()
        self.mirror.detach()


def build_cache(settings: ConfigSettings) -> OfflineCache:
    if settings.cache_file is None:
        log.warning("No CacheFile configured; offline cache will not survive restarts")
        return MemoryCache()
    return WorkbookCache(settings.cache_file)


def build_remote(settings: ConfigSettings) -> RemoteLedgerClient:
    if settings.remote is None:
        log.info("No [Remote] section configured; running from the offline cache")
        return UnavailableLedgerClient()
    return RestLedgerClient(settings.remote)


def load_runtime_context(config_path: Optional[Path] = None) -> LedgerSession:
    """Build a :class:`LedgerSession` from ``config.ini``.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        LedgerSession: Session wired with the configured cache and remote
            client, not yet started.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    log.info("Loaded configuration '%s' for store '%s'", resolved_config, settings.store_name)
    return LedgerSession(settings=settings, remote=build_remote(settings), cache=build_cache(settings))


__all__ = ["LedgerSession", "build_cache", "build_remote", "load_runtime_context"]
