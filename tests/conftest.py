"""Shared pytest fixtures and utilities for bar ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from bar_ledger import cli, data_manager  # noqa: E402
from bar_ledger.core_logic import LedgerSession  # noqa: E402
from bar_ledger.record_store import RecordStore  # noqa: E402
from bar_ledger.records import Sale, TargetConfiguration  # noqa: E402
from bar_ledger.remote import RemoteLedgerError  # noqa: E402
from bar_ledger.sync import SyncCoordinator  # noqa: E402

_CONFIG_TEMPLATE = (
    "[System]\n"
    "StoreName = {store_name}\n"
    "CacheFile = {cache_file}\n\n"
    "[Targets]\n"
    "Daily = 100000\n"
    "Weekly = 700000\n"
    "Monthly = 3000000\n\n"
    "[Defaults]\n"
    "UpdatedBy = {updated_by}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    cache_path: Path
    store_name: str


class FakeSubscription:
    """Subscription handle that records how often it was cancelled."""

    def __init__(self) -> None:
        self.cancel_count = 0

    def cancel(self) -> None:
        self.cancel_count += 1


class FakeLedgerClient:
    """In-memory remote ledger with switchable failures.

    Rows are stored as wire mappings. ``fail`` makes every call raise
    :class:`RemoteLedgerError`; ``subscribe_error`` makes only the
    subscription fail. The callback handed to ``subscribe_to_changes`` is
    kept on ``callback`` so tests can push events.
    """

    def __init__(self, rows: Optional[List[Mapping[str, Any]]] = None) -> None:
        self.rows: List[Dict[str, Any]] = [dict(row) for row in rows or []]
        self.fail = False
        self.subscribe_error: Optional[Exception] = None
        self.callback: Optional[Callable[[Mapping[str, Any]], None]] = None
        self.subscription = FakeSubscription()
        self.calls: List[tuple] = []
        self._next_id = 1

    def _check(self, name: str) -> None:
        self.calls.append((name,))
        if self.fail:
            raise RemoteLedgerError(f"{name} unavailable")

    def fetch_all(self) -> List[Mapping[str, Any]]:
        self._check("fetch_all")
        return [dict(row) for row in self.rows]

    def create(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        self._check("create")
        row = {
            **payload,
            "id": f"remote-{self._next_id}",
            "created_at": "2024-05-01T00:00:00+00:00",
            "updated_at": "2024-05-01T00:00:00+00:00",
        }
        self._next_id += 1
        self.rows.insert(0, row)
        return dict(row)

    def update(self, sale_id: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        self._check("update")
        for index, row in enumerate(self.rows):
            if row["id"] == sale_id:
                self.rows[index] = {**row, **payload, "updated_at": "2024-05-02T00:00:00+00:00"}
                return dict(self.rows[index])
        raise RemoteLedgerError(f"no sale {sale_id}")

    def delete(self, sale_id: str) -> None:
        self._check("delete")
        self.rows = [row for row in self.rows if row["id"] != sale_id]

    def subscribe_to_changes(self, callback):
        self.calls.append(("subscribe_to_changes",))
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.callback = callback
        return self.subscription


def make_sale(sale_id: str = "s1", **overrides: Any) -> Sale:
    """Return a fully populated sale; ``overrides`` replace any field."""

    values: Dict[str, Any] = {
        "date": date(2024, 5, 6),
        "day_of_week": "月曜日",
        "group_count": 4,
        "total_sales": Decimal("40000"),
        "card_sales": Decimal("10000"),
        "paypay_sales": Decimal("5000"),
        "cash_sales": Decimal("25000"),
        "expenses": Decimal("8000"),
        "profit": Decimal("32000"),
        "average_spend": Decimal("10000"),
        "event": None,
        "notes": None,
        "updated_by": "mika",
        "created_at": "2024-05-06T12:00:00+00:00",
        "updated_at": "2024-05-06T12:00:00+00:00",
    }
    values.update(overrides)
    return Sale(id=sale_id, **values)


def make_row(sale_id: str = "s1", **overrides: Any) -> Dict[str, Any]:
    """Return a wire mapping as the remote ledger would deliver it."""

    row: Dict[str, Any] = {
        "id": sale_id,
        "date": "2024-05-06",
        "day_of_week": "月曜日",
        "group_count": 4,
        "total_sales": 40000,
        "card_sales": 10000,
        "paypay_sales": 5000,
        "cash_sales": 25000,
        "expenses": 8000,
        "profit": 32000,
        "average_spend": 10000,
        "event": None,
        "notes": None,
        "updated_by": "mika",
        "created_at": "2024-05-06T12:00:00+00:00",
        "updated_at": "2024-05-06T12:00:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def remote() -> FakeLedgerClient:
    """Reachable fake remote holding two sales."""

    return FakeLedgerClient([make_row("s2", date="2024-05-07", day_of_week="火曜日"), make_row("s1")])


@pytest.fixture
def cache() -> data_manager.MemoryCache:
    return data_manager.MemoryCache()


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def sync(store: RecordStore, remote: FakeLedgerClient, cache: data_manager.MemoryCache) -> SyncCoordinator:
    return SyncCoordinator(store, remote, cache)


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide configuration settings without a cache file."""

    return data_manager.ConfigSettings(
        cache_file=None,
        store_name="Test Bar",
        targets=TargetConfiguration(
            daily=Decimal("100000"), weekly=Decimal("700000"), monthly=Decimal("3000000")
        ),
        default_updated_by="staff",
    )


@pytest.fixture
def session(
    settings: data_manager.ConfigSettings,
    remote: FakeLedgerClient,
    cache: data_manager.MemoryCache,
) -> Iterator[LedgerSession]:
    """Unstarted session wired to the fake remote and an in-memory cache."""

    ledger = LedgerSession(settings=settings, remote=remote, cache=cache)
    try:
        yield ledger
    finally:
        ledger.close()


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that writes config.ini bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Bar",
        updated_by: str = "staff",
        create_cache: bool = True,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        cache_path = bundle_dir / "offline_cache.xlsx"
        if create_cache:
            data_manager.create_cache_workbook(cache_path)
        cache_entry = cache_path.name if make_relative else str(cache_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(store_name=store_name, cache_file=cache_entry, updated_by=updated_by),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            cache_path=cache_path,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="bar-ledger", description="Bar ledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


@pytest.fixture
def mock_session() -> Mock:
    """Return a mock ledger session for CLI executor tests."""

    return Mock(name="session")


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[Any, datetime], datetime]:
    """Patch ``module.datetime`` so ``now(UTC)`` returns a predetermined moment."""

    def _apply(module: Any, moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(module, "datetime", _FixedDateTime)
        return moment

    return _apply


@pytest.fixture
def sale_factory() -> Callable[..., Sale]:
    return make_sale


@pytest.fixture
def row_factory() -> Callable[..., Dict[str, Any]]:
    return make_row
