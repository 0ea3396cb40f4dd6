"""CSV export of the record store.

The column layout is a compatibility surface shared with spreadsheets the
venue already keeps, so header text, column order and number rendering are
fixed.
"""

from __future__ import annotations

import csv
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Iterable, List, Optional

from . import log
from .constants import CSV_FILE_TEMPLATE, CSV_HEADER
from .records import Sale


def export_filename(today: date) -> str:
    return CSV_FILE_TEMPLATE.format(day=today.isoformat())


def format_number(value: Optional[Decimal | int]) -> str:
    """Render a number without exponent notation; ``None`` renders as ``0``."""

    if value is None:
        return "0"
    value = Decimal(value)
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def format_rounded(value: Optional[Decimal]) -> str:
    if value is None:
        return "0"
    return str(int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def sale_to_row(sale: Sale) -> List[str]:
    """Convert one sale into the export column order."""

    return [
        sale.date.isoformat() if sale.date is not None else "",
        sale.day_of_week or "",
        format_number(sale.group_count),
        format_number(sale.total_sales),
        format_rounded(sale.average_spend),
        format_number(sale.card_sales),
        format_number(sale.paypay_sales),
        format_number(sale.cash_sales),
        format_number(sale.expenses),
        format_number(sale.profit),
        sale.event or "",
        sale.notes or "",
        sale.updated_by or "",
    ]


def build_rows(records: Iterable[Sale]) -> List[List[str]]:
    """Header row followed by one row per record, in store order."""

    return [list(CSV_HEADER), *(sale_to_row(sale) for sale in records)]


def write_csv(records: Iterable[Sale], directory: Path, *, today: date) -> Path:
    """Write ``bar_sales_data_<today>.csv`` into ``directory``.

    The file is UTF-8 with a byte-order mark so spreadsheet tools detect the
    encoding of the Japanese headers.

    Args:
        records (Iterable[Sale]): Records in the order they should appear.
        directory (Path): Destination folder, created when missing.
        today (date): Date embedded in the file name.

    Returns:
        Path: Location of the written file.
    """

    directory = Path(directory).expanduser().resolve()
    directory.mkdir(parents=True, exist_ok=True)
    destination = directory / export_filename(today)
    rows = build_rows(records)
    with destination.open("w", encoding="utf-8-sig", newline="") as handle:
        csv.writer(handle).writerows(rows)
    log.info("Exported %d sales to '%s'", len(rows) - 1, destination)
    return destination


__all__ = ["export_filename", "format_number", "format_rounded", "sale_to_row", "build_rows", "write_csv"]
