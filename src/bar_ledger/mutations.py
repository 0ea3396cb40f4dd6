"""Mutation coordinator for operator-initiated create, update and delete.

Each operation validates the raw form, derives the computed columns
(weekday, cash, profit, average spend) and then tries the remote ledger.
When the remote rejects the call, or the session is already offline, the
mutation is applied to the local record store instead so the operator can
keep working; connectivity is then reported as offline until a forced sync
succeeds.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from . import log
from .constants import LOCAL_ID_PREFIX
from .record_store import RecordStore
from .records import (
    ZERO,
    Sale,
    day_of_week_for,
    parse_date,
    parse_decimal,
    parse_int,
    sale_from_mapping,
    sale_to_mapping,
)
from .remote import RemoteLedgerClient
from .sync import SyncCoordinator


class SaleValidationError(ValueError):
    """Raised when a submitted form is missing required numeric fields."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: Dict[str, str] = dict(errors)
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))


@dataclass(frozen=True)
class SaleForm:
    """Raw operator input, one string per form field."""

    group_count: str = ""
    total_sales: str = ""
    date: str = ""
    card_sales: str = ""
    paypay_sales: str = ""
    expenses: str = ""
    event: str = ""
    notes: str = ""
    updated_by: str = ""


def validate_form(form: SaleForm) -> None:
    """Reject forms whose required numeric fields are blank or not numbers.

    Numbers of ``10**15`` or more count as not numbers, and ``group_count``
    must also be whole.

    Args:
        form (SaleForm): Submitted values.

    Raises:
        SaleValidationError: Listing every offending field.
    """

    errors: Dict[str, str] = {}
    for field_name in ("group_count", "total_sales"):
        raw = getattr(form, field_name)
        if raw is None or str(raw).strip() == "":
            errors[field_name] = "required"
        elif parse_decimal(raw) is None:
            errors[field_name] = "must be a number"
    groups = parse_decimal(form.group_count)
    if "group_count" not in errors and groups != groups.to_integral_value():
        errors["group_count"] = "must be a whole number"
    if str(form.date or "").strip() and parse_date(form.date) is None:
        errors["date"] = "must be an ISO date (YYYY-MM-DD)"
    if errors:
        log.error("Sale form validation failed: %s", errors)
        raise SaleValidationError(errors)


def _amount_or_zero(raw: Any) -> Decimal:
    value = parse_decimal(raw)
    return value if value is not None else ZERO


def _text_or_none(raw: Any) -> Optional[str]:
    text = str(raw).strip() if raw is not None else ""
    return text or None


def build_sale(
    form: SaleForm,
    *,
    sale_id: str = "",
    today: Optional[date] = None,
    default_updated_by: Optional[str] = None,
) -> Sale:
    """Materialize a validated form into a :class:`Sale` with derived fields.

    Args:
        form (SaleForm): Form that already passed :func:`validate_form`.
        sale_id (str): Identity to stamp on the record; empty for a record
            that has not been stored anywhere yet.
        today (date | None): Date used when the form leaves ``date`` blank.
        default_updated_by (str | None): Fallback for a blank ``updated_by``.

    Returns:
        Sale: Record whose ``cash_sales`` is ``total - card - paypay`` (which
            may be negative), ``profit`` is ``total - expenses`` and
            ``average_spend`` is ``total / groups`` or ``0`` for zero groups.
    """

    validate_form(form)
    sale_date = parse_date(form.date) or today or datetime.now(UTC).date()
    group_count = parse_int(form.group_count)
    total_sales = parse_decimal(form.total_sales)
    card_sales = _amount_or_zero(form.card_sales)
    paypay_sales = _amount_or_zero(form.paypay_sales)
    expenses = _amount_or_zero(form.expenses)
    average_spend = total_sales / group_count if group_count else ZERO

    return Sale(
        id=sale_id,
        date=sale_date,
        day_of_week=day_of_week_for(sale_date),
        group_count=group_count,
        total_sales=total_sales,
        card_sales=card_sales,
        paypay_sales=paypay_sales,
        cash_sales=total_sales - card_sales - paypay_sales,
        expenses=expenses,
        profit=total_sales - expenses,
        average_spend=average_spend,
        event=_text_or_none(form.event),
        notes=_text_or_none(form.notes),
        updated_by=_text_or_none(form.updated_by) or default_updated_by,
    )


def generate_local_id() -> str:
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"


class MutationCoordinator:
    """Applies operator mutations remotely first, locally as a fallback."""

    def __init__(
        self,
        store: RecordStore,
        remote: RemoteLedgerClient,
        sync: SyncCoordinator,
        *,
        default_updated_by: Optional[str] = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.sync = sync
        self.default_updated_by = default_updated_by

    def _build(self, form: SaleForm, *, sale_id: str = "") -> Sale:
        return build_sale(form, sale_id=sale_id, default_updated_by=self.default_updated_by)

    def submit_create(self, form: SaleForm) -> Sale:
        """Record a new business day.

        Args:
            form (SaleForm): Raw operator input.

        Returns:
            Sale: The stored record. Its id is the remote ledger's id when the
                remote accepted the create, otherwise a ``local-`` id.

        Raises:
            SaleValidationError: Before any state change when required fields
                are missing or not numeric.
        """

        draft = self._build(form)
        if self.sync.is_online:
            try:
                row = self.remote.create(sale_to_mapping(draft, include_identity=False))
                stored = sale_from_mapping(row)
            except Exception as exc:  # any rejection counts as a remote failure
                log.warning("Remote create failed, keeping the sale locally: %s", exc)
            else:
                self.store.upsert(stored)
                self.sync.mark_online()
                log.info("Created sale '%s' for %s", stored.id, stored.date)
                return stored

        now = datetime.now(UTC).isoformat()
        local = replace(draft, id=generate_local_id(), created_at=now, updated_at=now)
        self.store.upsert(local)
        self.sync.mark_offline()
        log.info("Created local-only sale '%s' for %s", local.id, local.date)
        return local

    def submit_update(self, sale_id: str, form: SaleForm) -> Sale:
        """Replace the record ``sale_id`` with a recomputed one.

        Raises:
            SaleValidationError: When the form is invalid.
        """

        draft = self._build(form, sale_id=sale_id)
        if self.sync.is_online:
            try:
                row = self.remote.update(sale_id, sale_to_mapping(draft, include_identity=False))
                stored = sale_from_mapping(row)
            except Exception as exc:  # any rejection counts as a remote failure
                log.warning("Remote update of '%s' failed, applying locally: %s", sale_id, exc)
            else:
                self.store.upsert(stored)
                self.sync.mark_online()
                log.info("Updated sale '%s'", stored.id)
                return stored

        existing = self.store.get(sale_id)
        now = datetime.now(UTC).isoformat()
        local = replace(
            draft,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self.store.upsert(local)
        self.sync.mark_offline()
        log.info("Updated sale '%s' locally", sale_id)
        return local

    def submit_delete(self, sale_id: str) -> None:
        """Delete ``sale_id``; the local removal happens even if the remote fails."""

        if self.sync.is_online:
            try:
                self.remote.delete(sale_id)
            except Exception as exc:  # any rejection counts as a remote failure
                log.warning("Remote delete of '%s' failed, removing locally: %s", sale_id, exc)
                self.sync.mark_offline()
            else:
                self.sync.mark_online()
        self.store.remove_by_id(sale_id)
        log.info("Deleted sale '%s'", sale_id)


__all__ = [
    "SaleValidationError",
    "SaleForm",
    "validate_form",
    "build_sale",
    "generate_local_id",
    "MutationCoordinator",
]
