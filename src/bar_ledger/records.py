"""Sale records, target thresholds, and their wire representation.

Every collaborator (remote ledger, offline cache, CSV export) exchanges sales
as plain snake_case mappings. This module converts those mappings into
immutable dataclasses and back, tolerating the malformed values that can
arrive from an old cache file or a hand-edited backend row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Context, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from .constants import DEFAULT_TARGETS, LOCAL_ID_PREFIX, WEEKDAY_LABELS, Period


ZERO = Decimal("0")

# Amounts at or above 10**15 are treated as unusable. Digits past the 30th
# decimal place are rounded away.
MAX_INTEGER_DIGITS = 15
MAX_FRACTION_DIGITS = 30
FRACTION_QUANTUM = Decimal(1).scaleb(-MAX_FRACTION_DIGITS)
_QUANTIZE_CONTEXT = Context(prec=MAX_INTEGER_DIGITS + MAX_FRACTION_DIGITS)

MONEY_FIELDS: tuple[str, ...] = (
    "total_sales",
    "card_sales",
    "paypay_sales",
    "cash_sales",
    "expenses",
    "profit",
    "average_spend",
)
TEXT_FIELDS: tuple[str, ...] = ("day_of_week", "event", "notes", "updated_by", "created_at", "updated_at")


@dataclass(frozen=True)
class Sale:
    """One recorded business day."""

    id: str
    date: Optional[date] = None
    day_of_week: Optional[str] = None
    group_count: Optional[int] = None
    total_sales: Optional[Decimal] = None
    card_sales: Optional[Decimal] = None
    paypay_sales: Optional[Decimal] = None
    cash_sales: Optional[Decimal] = None
    expenses: Optional[Decimal] = None
    profit: Optional[Decimal] = None
    average_spend: Optional[Decimal] = None
    event: Optional[str] = None
    notes: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_local(self) -> bool:
        """``True`` for records synthesized while the remote was unreachable."""

        return self.id.startswith(LOCAL_ID_PREFIX)


@dataclass(frozen=True)
class TargetConfiguration:
    """Daily, weekly and monthly sales targets."""

    daily: Decimal = ZERO
    weekly: Decimal = ZERO
    monthly: Decimal = ZERO

    def configured(self, period: Period) -> Decimal:
        return {
            Period.DAILY: self.daily,
            Period.WEEKLY: self.weekly,
            Period.MONTHLY: self.monthly,
        }[Period(period)]

    def effective(self, period: Period) -> Decimal:
        """Return the configured target, or the default when unset or zero.

        Args:
            period (Period): Reporting period whose threshold is requested.

        Returns:
            Decimal: A strictly positive threshold usable as a divisor.
        """

        value = self.configured(period)
        if value is None or value <= 0:
            return DEFAULT_TARGETS[Period(period)]
        return value


def parse_decimal(raw: Any) -> Optional[Decimal]:
    """Coerce ``raw`` into a finite :class:`~decimal.Decimal`.

    Blank strings, booleans, non-numeric text, non-finite values
    (``NaN``/``Infinity``) and magnitudes of ``10**15`` or more all yield
    ``None`` so callers can apply their own defaulting policy. Digits beyond
    thirty decimal places are rounded off.

    Args:
        raw (Any): Value read from a form, a cache file or a remote payload.

    Returns:
        Decimal | None: Parsed value, or ``None`` when nothing usable exists.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        value = raw
    else:
        text = str(raw).strip().replace(",", "")
        if not text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation:
            return None
    if not value.is_finite():
        return None
    if value.is_zero():
        return ZERO
    if value.adjusted() >= MAX_INTEGER_DIGITS:
        return None
    if value.as_tuple().exponent < FRACTION_QUANTUM.as_tuple().exponent:
        value = value.quantize(FRACTION_QUANTUM, context=_QUANTIZE_CONTEXT)
    return value


def parse_int(raw: Any) -> Optional[int]:
    """Truncate a parsed decimal toward zero; ``None`` when unusable."""

    value = parse_decimal(raw)
    return int(value) if value is not None else None


def parse_date(raw: Any) -> Optional[date]:
    """Read an ISO calendar date, accepting full timestamps as well."""

    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def day_of_week_for(day: date) -> str:
    """Return the Japanese weekday label stored alongside a sale."""

    return WEEKDAY_LABELS[day.weekday()]


def _optional_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text if text != "" else None


def sale_from_mapping(mapping: Mapping[str, Any]) -> Sale:
    """Build a :class:`Sale` from its snake_case wire mapping.

    Unknown keys are ignored and malformed values become ``None``; the only
    hard requirement is a non-empty ``id`` because identity drives every
    merge in the record store.

    Args:
        mapping (Mapping[str, Any]): Row as delivered by the remote ledger or
            stored in the offline cache.

    Returns:
        Sale: Normalized record.

    Raises:
        ValueError: If ``mapping`` is not a mapping or lacks an ``id``.
    """

    if not isinstance(mapping, Mapping):
        raise ValueError(f"Sale payload must be a mapping, got {type(mapping).__name__}")
    raw_id = mapping.get("id")
    if raw_id is None or str(raw_id) == "":
        raise ValueError("Sale payload is missing an id")

    money = {name: parse_decimal(mapping.get(name)) for name in MONEY_FIELDS}
    text = {name: _optional_text(mapping.get(name)) for name in TEXT_FIELDS}
    return Sale(
        id=str(raw_id),
        date=parse_date(mapping.get("date")),
        group_count=parse_int(mapping.get("group_count")),
        **money,
        **text,
    )


def number_to_wire(value: Optional[Decimal]) -> Optional[int | str]:
    """Render integral amounts as JSON integers and fractions as exact text."""

    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return str(value)


def sale_to_mapping(sale: Sale, *, include_identity: bool = True) -> dict[str, Any]:
    """Serialize a sale into its JSON-compatible wire mapping.

    Args:
        sale (Sale): Record to serialize.
        include_identity (bool): When ``False`` the ``id`` and timestamp
            columns are omitted, which is the shape the remote ledger expects
            for create and update payloads.

    Returns:
        dict[str, Any]: Mapping using the backend's column names.
    """

    payload: dict[str, Any] = {
        "date": sale.date.isoformat() if sale.date is not None else None,
        "day_of_week": sale.day_of_week,
        "group_count": sale.group_count,
    }
    for name in MONEY_FIELDS:
        payload[name] = number_to_wire(getattr(sale, name))
    payload["event"] = sale.event
    payload["notes"] = sale.notes
    payload["updated_by"] = sale.updated_by
    if include_identity:
        payload = {"id": sale.id, **payload, "created_at": sale.created_at, "updated_at": sale.updated_at}
    return payload


def targets_from_mapping(mapping: Optional[Mapping[str, Any]]) -> Optional[TargetConfiguration]:
    if not isinstance(mapping, Mapping):
        return None
    values = {}
    for period in Period:
        parsed = parse_decimal(mapping.get(period.value))
        values[period.value] = parsed if parsed is not None and parsed > 0 else ZERO
    return TargetConfiguration(**values)


def targets_to_mapping(targets: TargetConfiguration) -> dict[str, Any]:
    return {period.value: number_to_wire(targets.configured(period)) for period in Period}


__all__ = [
    "Sale",
    "TargetConfiguration",
    "ZERO",
    "parse_decimal",
    "parse_int",
    "parse_date",
    "day_of_week_for",
    "sale_from_mapping",
    "sale_to_mapping",
    "number_to_wire",
    "targets_from_mapping",
    "targets_to_mapping",
]
