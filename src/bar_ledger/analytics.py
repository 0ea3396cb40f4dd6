"""Derived sales analytics.

Everything here is a pure function of ``(records, targets, now)``: no module
state, no clock reads, no I/O. Results are frozen dataclasses of
:class:`~decimal.Decimal` values, so two calls with the same input compare
equal. Every ratio is guarded so empty or malformed data yields ``0`` rather
than raising or producing NaN/Infinity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .constants import DEFAULT_WEEK_START, WEEKDAY_LABELS, Period
from .records import ZERO, Sale, TargetConfiguration, parse_decimal, parse_int


HUNDRED = Decimal("100")
Reference = Union[date, datetime]


@dataclass(frozen=True)
class SalesSummary:
    """Aggregate totals, averages, achievement rates and payment mix."""

    record_count: int
    day_count: int
    total_sales: Decimal
    total_card: Decimal
    total_paypay: Decimal
    total_cash: Decimal
    total_expenses: Decimal
    total_groups: int
    total_profit: Decimal
    overall_profit_rate: Decimal
    average_spend: Decimal
    daily_average: Decimal
    weekly_average: Decimal
    monthly_average: Decimal
    daily_achievement: Decimal
    weekly_achievement: Decimal
    monthly_achievement: Decimal
    card_ratio: Decimal
    paypay_ratio: Decimal
    cash_ratio: Decimal


@dataclass(frozen=True)
class WeekdayStats:
    """Per-weekday totals and per-record averages."""

    label: str
    record_count: int
    total_sales: Decimal
    total_groups: int
    average_sales: Decimal
    average_groups: Decimal
    average_spend: Decimal


@dataclass(frozen=True)
class PeriodComparison:
    """Current calendar period (to date) against the previous full one."""

    period: Period
    current_start: date
    current_end: date
    previous_start: date
    previous_end: date
    current_sales: Decimal
    previous_sales: Decimal
    current_profit: Decimal
    previous_profit: Decimal
    sales_change: Decimal
    profit_change: Decimal
    current_profit_rate: Decimal
    previous_profit_rate: Decimal


@dataclass(frozen=True)
class Dashboard:
    """Everything the reporting views need, computed from one snapshot."""

    reference_day: date
    summary: SalesSummary
    weekdays: Tuple[WeekdayStats, ...]
    weekly: PeriodComparison
    monthly: PeriodComparison
    series: Tuple[Sale, ...]


def _amount(value: Any) -> Decimal:
    parsed = parse_decimal(value)
    return parsed if parsed is not None else ZERO


def _groups(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    parsed = parse_int(value)
    return parsed if parsed is not None else 0


def _ratio(numerator: Decimal, denominator: Union[Decimal, int]) -> Decimal:
    if not denominator:
        return ZERO
    return numerator / denominator


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return _ratio(part, whole) * HUNDRED


def _profit_of(sale: Sale) -> Decimal:
    if sale.profit is not None:
        return _amount(sale.profit)
    return _amount(sale.total_sales) - _amount(sale.expenses)


def _reference_day(now: Reference) -> date:
    return now.date() if isinstance(now, datetime) else now


def summarize(records: Iterable[Sale], targets: TargetConfiguration) -> SalesSummary:
    """Compute totals, period averages and achievement rates.

    ``day_count`` is the number of distinct dates (at least 1), so the
    averages are per trading day rather than per calendar day; the weekly and
    monthly averages scale the daily figure to 7 and 30 trading days.

    Args:
        records (Iterable[Sale]): Snapshot of the record store.
        targets (TargetConfiguration): Thresholds; unset or zero values fall
            back to the defaults.

    Returns:
        SalesSummary: Aggregates. All values are ``0`` for an empty input.
    """

    records = list(records)
    total_sales = sum((_amount(sale.total_sales) for sale in records), ZERO)
    total_card = sum((_amount(sale.card_sales) for sale in records), ZERO)
    total_paypay = sum((_amount(sale.paypay_sales) for sale in records), ZERO)
    total_cash = sum((_amount(sale.cash_sales) for sale in records), ZERO)
    total_expenses = sum((_amount(sale.expenses) for sale in records), ZERO)
    total_groups = sum(_groups(sale.group_count) for sale in records)
    total_profit = total_sales - total_expenses

    day_count = max(len({sale.date for sale in records if sale.date is not None}), 1)
    daily_average = total_sales / day_count
    weekly_average = _ratio(total_sales, Decimal(day_count) / 7)
    monthly_average = _ratio(total_sales, Decimal(day_count) / 30)

    return SalesSummary(
        record_count=len(records),
        day_count=day_count,
        total_sales=total_sales,
        total_card=total_card,
        total_paypay=total_paypay,
        total_cash=total_cash,
        total_expenses=total_expenses,
        total_groups=total_groups,
        total_profit=total_profit,
        overall_profit_rate=_percent(total_profit, total_sales),
        average_spend=_ratio(total_sales, total_groups),
        daily_average=daily_average,
        weekly_average=weekly_average,
        monthly_average=monthly_average,
        daily_achievement=_percent(daily_average, targets.effective(Period.DAILY)),
        weekly_achievement=_percent(weekly_average, targets.effective(Period.WEEKLY)),
        monthly_achievement=_percent(monthly_average, targets.effective(Period.MONTHLY)),
        card_ratio=_percent(total_card, total_sales),
        paypay_ratio=_percent(total_paypay, total_sales),
        cash_ratio=_percent(total_cash, total_sales),
    )


def weekday_breakdown(records: Iterable[Sale]) -> Tuple[WeekdayStats, ...]:
    """Group records by their stored weekday label.

    Args:
        records (Iterable[Sale]): Snapshot of the record store.

    Returns:
        tuple[WeekdayStats, ...]: One entry per label present, Monday first;
            labels outside the standard set follow in first-seen order.
    """

    buckets: Dict[str, List[Sale]] = {}
    for sale in records:
        label = sale.day_of_week or ""
        buckets.setdefault(label, []).append(sale)

    def _order(label: str) -> Tuple[int, int]:
        if label in WEEKDAY_LABELS:
            return (0, WEEKDAY_LABELS.index(label))
        return (1, list(buckets).index(label))

    stats = []
    for label in sorted(buckets, key=_order):
        group = buckets[label]
        total_sales = sum((_amount(sale.total_sales) for sale in group), ZERO)
        total_groups = sum(_groups(sale.group_count) for sale in group)
        count = len(group)
        stats.append(
            WeekdayStats(
                label=label,
                record_count=count,
                total_sales=total_sales,
                total_groups=total_groups,
                average_sales=_ratio(total_sales, count),
                average_groups=_ratio(Decimal(total_groups), count),
                average_spend=_ratio(total_sales, total_groups),
            )
        )
    return tuple(stats)


def period_bounds(
    period: Period, reference: date, *, week_start: int = DEFAULT_WEEK_START
) -> Tuple[date, date, date]:
    """Return ``(current_start, previous_start, previous_end)`` for ``period``.

    Weeks are calendar weeks beginning on ``week_start`` (``date.weekday()``
    numbering, Sunday by default); months are calendar months. The previous
    period is the adjacent full period, not a rolling window.
    """

    period = Period(period)
    if period is Period.DAILY:
        previous = reference - timedelta(days=1)
        return reference, previous, previous
    if period is Period.WEEKLY:
        current_start = reference - timedelta(days=(reference.weekday() - week_start) % 7)
        return current_start, current_start - timedelta(days=7), current_start - timedelta(days=1)
    current_start = reference.replace(day=1)
    previous_end = current_start - timedelta(days=1)
    return current_start, previous_end.replace(day=1), previous_end


def compare_periods(
    records: Iterable[Sale],
    period: Period,
    now: Reference,
    *,
    week_start: int = DEFAULT_WEEK_START,
) -> PeriodComparison:
    """Compare the current period to date with the previous full period.

    Args:
        records (Iterable[Sale]): Snapshot of the record store.
        period (Period): ``WEEKLY`` or ``MONTHLY`` (``DAILY`` compares today
            with yesterday).
        now (date | datetime): Reference moment; only its date is used.
        week_start (int): First weekday of a calendar week.

    Returns:
        PeriodComparison: Sums, percent changes and profit rates. A change
            against an empty previous period is ``0``, never infinite.
    """

    reference = _reference_day(now)
    current_start, previous_start, previous_end = period_bounds(period, reference, week_start=week_start)
    current_sales = previous_sales = current_profit = previous_profit = ZERO

    for sale in records:
        if sale.date is None:
            continue
        if current_start <= sale.date <= reference:
            current_sales += _amount(sale.total_sales)
            current_profit += _profit_of(sale)
        elif previous_start <= sale.date <= previous_end:
            previous_sales += _amount(sale.total_sales)
            previous_profit += _profit_of(sale)

    return PeriodComparison(
        period=Period(period),
        current_start=current_start,
        current_end=reference,
        previous_start=previous_start,
        previous_end=previous_end,
        current_sales=current_sales,
        previous_sales=previous_sales,
        current_profit=current_profit,
        previous_profit=previous_profit,
        sales_change=_percent(current_sales - previous_sales, previous_sales),
        profit_change=_percent(current_profit - previous_profit, previous_profit),
        current_profit_rate=_percent(current_profit, current_sales),
        previous_profit_rate=_percent(previous_profit, previous_sales),
    )


def time_series(records: Iterable[Sale]) -> Tuple[Sale, ...]:
    """Records in ascending date order; ties keep input order, undated last."""

    return tuple(sorted(records, key=lambda sale: (sale.date is None, sale.date or date.min)))


def compute_dashboard(
    records: Sequence[Sale],
    targets: TargetConfiguration,
    now: Reference,
    *,
    week_start: Optional[int] = None,
) -> Dashboard:
    """Bundle every derived view for one snapshot.

    Args:
        records (Sequence[Sale]): Snapshot of the record store.
        targets (TargetConfiguration): Configured thresholds.
        now (date | datetime): Reference moment for the period comparisons.
        week_start (int | None): First weekday of a week; Sunday when omitted.

    Returns:
        Dashboard: Summary, weekday breakdown, week and month comparisons and
            the chronological series.
    """

    records = tuple(records)
    start = DEFAULT_WEEK_START if week_start is None else week_start
    return Dashboard(
        reference_day=_reference_day(now),
        summary=summarize(records, targets),
        weekdays=weekday_breakdown(records),
        weekly=compare_periods(records, Period.WEEKLY, now, week_start=start),
        monthly=compare_periods(records, Period.MONTHLY, now, week_start=start),
        series=time_series(records),
    )


__all__ = [
    "SalesSummary",
    "WeekdayStats",
    "PeriodComparison",
    "Dashboard",
    "summarize",
    "weekday_breakdown",
    "period_bounds",
    "compare_periods",
    "time_series",
    "compute_dashboard",
]
