"""Unit tests for form validation and the mutation coordinator."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from bar_ledger import mutations as mutations_module
from bar_ledger.constants import Connectivity
from bar_ledger.mutations import (
    MutationCoordinator,
    SaleForm,
    SaleValidationError,
    build_sale,
    generate_local_id,
    validate_form,
)


FORM = SaleForm(
    group_count="10",
    total_sales="50000",
    card_sales="20000",
    paypay_sales="15000",
    expenses="5000",
    date="2024-05-10",
)


@pytest.fixture
def coordinator(store, remote, sync) -> MutationCoordinator:
    sync.start()
    return MutationCoordinator(store, remote, sync, default_updated_by="staff")


def test_build_sale_derives_computed_columns():
    sale = build_sale(FORM)

    assert sale.cash_sales == Decimal("15000")
    assert sale.profit == Decimal("45000")
    assert sale.average_spend == Decimal("5000")
    assert sale.day_of_week == "金曜日"
    assert sale.group_count == 10


def test_build_sale_zero_groups_has_zero_average():
    sale = build_sale(SaleForm(group_count="0", total_sales="30000"), today=date(2024, 5, 10))

    assert sale.average_spend == Decimal("0")
    assert sale.average_spend.is_finite()


def test_build_sale_allows_negative_cash():
    sale = build_sale(SaleForm(group_count="1", total_sales="1000", card_sales="1500"), today=date(2024, 5, 10))

    assert sale.cash_sales == Decimal("-500")


def test_build_sale_blank_date_uses_today_and_blank_text_is_none():
    sale = build_sale(
        SaleForm(group_count="2", total_sales="8000", event="  ", notes=""),
        today=date(2024, 5, 12),
        default_updated_by="staff",
    )

    assert sale.date == date(2024, 5, 12)
    assert sale.day_of_week == "日曜日"
    assert sale.event is None
    assert sale.notes is None
    assert sale.updated_by == "staff"


@pytest.mark.parametrize(
    "form, fields",
    [
        (SaleForm(total_sales="1000"), {"group_count"}),
        (SaleForm(group_count="2"), {"total_sales"}),
        (SaleForm(group_count="two", total_sales="1,000"), {"group_count"}),
        (SaleForm(group_count="2.5", total_sales="1000"), {"group_count"}),
        (SaleForm(group_count="1e2000000000", total_sales="1e20"), {"group_count", "total_sales"}),
        (SaleForm(group_count="2", total_sales="1000", date="yesterday"), {"date"}),
        (SaleForm(), {"group_count", "total_sales"}),
    ],
)
def test_validate_form_lists_offending_fields(form, fields):
    with pytest.raises(SaleValidationError) as excinfo:
        validate_form(form)

    assert set(excinfo.value.errors) == fields


def test_build_sale_rejects_enormous_group_count():
    with pytest.raises(SaleValidationError) as excinfo:
        build_sale(SaleForm(group_count="1e2000000000", total_sales="1000"))

    assert excinfo.value.errors == {"group_count": "must be a number"}


def test_build_sale_accepts_whole_number_in_decimal_notation():
    sale = build_sale(SaleForm(group_count="4.0", total_sales="8000"), today=date(2024, 5, 10))

    assert sale.group_count == 4
    assert sale.average_spend == Decimal("2000")


def test_generate_local_id_is_prefixed_and_unique():
    first, second = generate_local_id(), generate_local_id()

    assert first.startswith("local-")
    assert first != second


def test_submit_create_online_stores_remote_row(coordinator, store, remote):
    sale = coordinator.submit_create(FORM)

    assert sale.id == "remote-1"
    assert sale.cash_sales == Decimal("15000")
    assert sale.profit == Decimal("45000")
    assert sale.average_spend == Decimal("5000")
    assert sale.updated_by == "staff"
    assert store.get("remote-1") == sale
    assert remote.rows[0]["id"] == "remote-1"
    assert coordinator.sync.connectivity is Connectivity.ONLINE


def test_submit_create_sends_payload_without_identity(coordinator, remote, monkeypatch):
    captured = {}
    original = remote.create

    def spy(payload):
        captured.update(payload)
        return original(payload)

    monkeypatch.setattr(remote, "create", spy)
    coordinator.submit_create(FORM)

    assert "id" not in captured
    assert captured["cash_sales"] == 15000
    assert captured["date"] == "2024-05-10"


def test_submit_create_remote_failure_keeps_local_record(coordinator, store, remote, set_fixed_datetime):
    moment = set_fixed_datetime(mutations_module, datetime(2024, 5, 10, 15, 0, tzinfo=UTC))
    remote.fail = True

    sale = coordinator.submit_create(FORM)

    assert sale.is_local
    assert sale.created_at == moment.isoformat()
    assert store.get(sale.id) == sale
    assert coordinator.sync.connectivity is Connectivity.OFFLINE


def test_submit_create_while_offline_skips_remote(coordinator, store, remote):
    coordinator.sync.mark_offline()

    sale = coordinator.submit_create(FORM)

    assert sale.is_local
    assert ("create",) not in remote.calls
    assert coordinator.sync.connectivity is Connectivity.OFFLINE


def test_submit_create_invalid_form_changes_nothing(coordinator, store, remote):
    before = store.snapshot()

    with pytest.raises(SaleValidationError):
        coordinator.submit_create(SaleForm(group_count="", total_sales="1000"))

    assert store.snapshot() == before
    assert ("create",) not in remote.calls
    assert coordinator.sync.connectivity is Connectivity.ONLINE


def test_submit_update_online_replaces_record(coordinator, store):
    sale = coordinator.submit_update("s1", FORM)

    assert sale.id == "s1"
    assert store.get("s1").total_sales == Decimal("50000")
    assert [record.id for record in store.snapshot()] == ["s2", "s1"]


def test_submit_update_remote_failure_keeps_id_and_created_at(coordinator, store, remote):
    created_at = store.get("s1").created_at
    remote.fail = True

    sale = coordinator.submit_update("s1", FORM)

    assert sale.id == "s1"
    assert sale.created_at == created_at
    assert sale.updated_at != created_at
    assert store.get("s1").profit == Decimal("45000")
    assert coordinator.sync.connectivity is Connectivity.OFFLINE


def test_submit_delete_online_removes_remotely_and_locally(coordinator, store, remote):
    assert coordinator.submit_delete("s1") is None

    assert "s1" not in store
    assert all(row["id"] != "s1" for row in remote.rows)


def test_submit_delete_remote_failure_still_removes_locally(coordinator, store, remote):
    remote.fail = True

    coordinator.submit_delete("s2")

    assert "s2" not in store
    assert coordinator.sync.connectivity is Connectivity.OFFLINE


def test_submit_delete_unknown_id_is_harmless(coordinator, store):
    before = store.snapshot()

    coordinator.submit_delete("missing")

    assert store.snapshot() == before


def test_offline_session_returns_online_only_after_force_sync(coordinator, remote):
    remote.fail = True
    coordinator.submit_create(FORM)
    remote.fail = False

    coordinator.submit_create(FORM)
    assert coordinator.sync.connectivity is Connectivity.OFFLINE

    coordinator.sync.force_sync()
    assert coordinator.sync.connectivity is Connectivity.ONLINE
