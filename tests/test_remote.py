"""Unit tests for the REST remote ledger client."""

from __future__ import annotations

from unittest.mock import Mock

import pytest
import requests

from bar_ledger.data_manager import RemoteSettings
from bar_ledger.remote import RemoteLedgerError, RestLedgerClient, UnavailableLedgerClient


SETTINGS = RemoteSettings(url="https://bar.example.co", api_key="anon-key", table="sales", timeout=3.0)
ENDPOINT = "https://bar.example.co/rest/v1/sales"


def _response(body=None, *, content=b"x", status_error=None, json_error=None) -> Mock:
    response = Mock(name="response")
    response.content = content
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def http_session() -> Mock:
    session = Mock(name="http_session")
    session.headers = {}
    return session


@pytest.fixture
def client(http_session: Mock) -> RestLedgerClient:
    return RestLedgerClient(SETTINGS, session=http_session)


def test_client_installs_auth_headers(client, http_session):
    assert http_session.headers["apikey"] == "anon-key"
    assert http_session.headers["Authorization"] == "Bearer anon-key"


def test_fetch_all_orders_newest_first(client, http_session, row_factory):
    http_session.request.return_value = _response([row_factory("a")])

    rows = client.fetch_all()

    assert rows == [row_factory("a")]
    http_session.request.assert_called_once_with(
        "GET",
        ENDPOINT,
        params={"select": "*", "order": "date.desc"},
        json=None,
        headers=None,
        timeout=3.0,
    )


def test_fetch_all_rejects_non_list_body(client, http_session):
    http_session.request.return_value = _response({"message": "oops"})

    with pytest.raises(RemoteLedgerError):
        client.fetch_all()


def test_create_returns_first_representation_row(client, http_session, row_factory):
    http_session.request.return_value = _response([row_factory("new-id")])

    row = client.create({"total_sales": 1000})

    assert row["id"] == "new-id"
    method, url = http_session.request.call_args.args
    assert (method, url) == ("POST", ENDPOINT)
    assert http_session.request.call_args.kwargs["headers"] == {"Prefer": "return=representation"}


def test_update_filters_by_id(client, http_session, row_factory):
    http_session.request.return_value = _response(row_factory("s1"))

    client.update("s1", {"notes": "late night"})

    kwargs = http_session.request.call_args.kwargs
    assert http_session.request.call_args.args[0] == "PATCH"
    assert kwargs["params"] == {"id": "eq.s1"}
    assert kwargs["json"] == {"notes": "late night"}


def test_create_without_row_raises(client, http_session):
    http_session.request.return_value = _response([])

    with pytest.raises(RemoteLedgerError):
        client.create({"total_sales": 1000})


def test_delete_accepts_empty_body(client, http_session):
    http_session.request.return_value = _response(content=b"")

    assert client.delete("s1") is None
    assert http_session.request.call_args.kwargs["params"] == {"id": "eq.s1"}


def test_http_error_becomes_remote_error(client, http_session):
    http_session.request.return_value = _response(status_error=requests.HTTPError("503 Service Unavailable"))

    with pytest.raises(RemoteLedgerError):
        client.fetch_all()


def test_connection_error_becomes_remote_error(client, http_session):
    http_session.request.side_effect = requests.ConnectionError("offline")

    with pytest.raises(RemoteLedgerError):
        client.delete("s1")


def test_invalid_json_becomes_remote_error(client, http_session):
    http_session.request.return_value = _response(json_error=ValueError("bad json"))

    with pytest.raises(RemoteLedgerError):
        client.fetch_all()


def test_rest_client_has_no_push_channel(client):
    with pytest.raises(RemoteLedgerError):
        client.subscribe_to_changes(lambda payload: None)


def test_unavailable_client_fails_every_call():
    client = UnavailableLedgerClient("not configured")

    for call in (
        client.fetch_all,
        lambda: client.create({}),
        lambda: client.update("a", {}),
        lambda: client.delete("a"),
        lambda: client.subscribe_to_changes(lambda payload: None),
    ):
        with pytest.raises(RemoteLedgerError, match="not configured"):
            call()
