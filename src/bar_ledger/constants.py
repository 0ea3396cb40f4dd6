"""Enumerations and fixed values shared across the bar ledger modules.

Keeps the wire identifiers (change events, cache keys) and the analytics
defaults in one place so the store, the sync layer, and the reporting code
agree on them.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


class Connectivity(str, Enum):
    """Whether the last sync or mutation reached the remote ledger."""

    ONLINE = "online"
    OFFLINE = "offline"


class SyncState(str, Enum):
    """Lifecycle states of the sync coordinator."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    ONLINE = "online"
    OFFLINE = "offline"


class ChangeType(str, Enum):
    """Event kinds emitted by the remote push subscription."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class CacheKey(str, Enum):
    """Keys stored in the offline cache."""

    SALES_SNAPSHOT = "sales_snapshot"
    TARGETS = "targets"


class Period(str, Enum):
    """Reporting periods used for averages, targets and comparisons."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Fallback targets (JPY) used when a configured target is unset or zero.
DEFAULT_TARGETS: dict[Period, Decimal] = {
    Period.DAILY: Decimal("100000"),
    Period.WEEKLY: Decimal("700000"),
    Period.MONTHLY: Decimal("3000000"),
}

# Indexed by ``date.weekday()`` (Monday == 0).
WEEKDAY_LABELS: tuple[str, ...] = (
    "月曜日",
    "火曜日",
    "水曜日",
    "木曜日",
    "金曜日",
    "土曜日",
    "日曜日",
)

# ja-JP calendars start the week on Sunday.
DEFAULT_WEEK_START = 6

LOCAL_ID_PREFIX = "local-"

CSV_HEADER: tuple[str, ...] = (
    "日付",
    "曜日",
    "組数",
    "売上",
    "平均単価",
    "カード決済",
    "PayPay決済",
    "現金",
    "経費",
    "利益",
    "イベント",
    "メモ",
    "更新者",
)

CSV_FILE_TEMPLATE = "bar_sales_data_{day}.csv"


__all__ = [
    "Connectivity",
    "SyncState",
    "ChangeType",
    "CacheKey",
    "Period",
    "DEFAULT_TARGETS",
    "WEEKDAY_LABELS",
    "DEFAULT_WEEK_START",
    "LOCAL_ID_PREFIX",
    "CSV_HEADER",
    "CSV_FILE_TEMPLATE",
]
