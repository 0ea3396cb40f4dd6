"""Clients for the remote ledger backend.

The sync and mutation coordinators only depend on the
:class:`RemoteLedgerClient` protocol. Two implementations ship with the
package: :class:`RestLedgerClient`, which talks to the backend's PostgREST
style ``/rest/v1/<table>`` endpoint over ``requests``, and
:class:`UnavailableLedgerClient`, used when no remote is configured so the
session runs purely from the offline cache.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import requests

from . import log
from .data_manager import RemoteSettings


ChangeCallback = Callable[[Mapping[str, Any]], None]


class RemoteLedgerError(Exception):
    """Raised when a call to the remote ledger fails for any reason."""


class Subscription(Protocol):
    """Handle returned by :meth:`RemoteLedgerClient.subscribe_to_changes`."""

    def cancel(self) -> None:
        """Stop delivering change events."""


class RemoteLedgerClient(Protocol):
    """Boundary contract of the remote sales ledger."""

    def fetch_all(self) -> List[Mapping[str, Any]]:
        """Return every sale row, conventionally newest first."""

    def create(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        """Store a new sale and return the authoritative row."""

    def update(self, sale_id: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        """Replace the sale ``sale_id`` and return the stored row."""

    def delete(self, sale_id: str) -> None:
        """Delete the sale ``sale_id``."""

    def subscribe_to_changes(self, callback: ChangeCallback) -> Subscription:
        """Deliver ``{"eventType", "new", "old"}`` payloads to ``callback``."""


class RestLedgerClient:
    """``requests`` based client for a PostgREST ``sales`` table.

    Every call applies the configured timeout; connection problems, HTTP
    error statuses and undecodable bodies are all re-raised as
    :class:`RemoteLedgerError` so callers only handle one failure type.
    """

    def __init__(self, settings: RemoteSettings, *, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update(self._get_headers())

    def _get_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.settings.api_key,
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _get_api_endpoint(self) -> str:
        return f"{self.settings.url}/rest/v1/{self.settings.table}"

    def _request(self, method: str, *, params: Optional[Dict[str, str]] = None,
                 json: Any = None, headers: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = self.session.request(
                method,
                self._get_api_endpoint(),
                params=params,
                json=json,
                headers=headers,
                timeout=self.settings.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise RemoteLedgerError(f"{method} {self.settings.table} failed: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteLedgerError(f"{method} {self.settings.table} returned invalid JSON") from exc

    @staticmethod
    def _single_row(body: Any, action: str) -> Mapping[str, Any]:
        # PostgREST answers ``return=representation`` with an array of rows.
        if isinstance(body, list) and body and isinstance(body[0], Mapping):
            return body[0]
        if isinstance(body, Mapping):
            return body
        raise RemoteLedgerError(f"{action} returned no row")

    def fetch_all(self) -> List[Mapping[str, Any]]:
        body = self._request("GET", params={"select": "*", "order": "date.desc"})
        if not isinstance(body, list):
            raise RemoteLedgerError("fetch returned a non-list body")
        log.debug("Fetched %d rows from '%s'", len(body), self.settings.table)
        return body

    def create(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        body = self._request("POST", json=dict(payload), headers={"Prefer": "return=representation"})
        return self._single_row(body, "create")

    def update(self, sale_id: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        body = self._request(
            "PATCH",
            params={"id": f"eq.{sale_id}"},
            json=dict(payload),
            headers={"Prefer": "return=representation"},
        )
        return self._single_row(body, "update")

    def delete(self, sale_id: str) -> None:
        self._request("DELETE", params={"id": f"eq.{sale_id}"})

    def subscribe_to_changes(self, callback: ChangeCallback) -> Subscription:
        raise RemoteLedgerError(
            "push updates require the realtime channel, which the REST transport does not provide"
        )


class UnavailableLedgerClient:
    """Stand-in used when ``config.ini`` has no ``[Remote]`` section."""

    def __init__(self, reason: str = "no remote ledger configured") -> None:
        self.reason = reason

    def _fail(self) -> RemoteLedgerError:
        return RemoteLedgerError(self.reason)

    def fetch_all(self) -> List[Mapping[str, Any]]:
        raise self._fail()

    def create(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        raise self._fail()

    def update(self, sale_id: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        raise self._fail()

    def delete(self, sale_id: str) -> None:
        raise self._fail()

    def subscribe_to_changes(self, callback: ChangeCallback) -> Subscription:
        raise self._fail()


__all__ = [
    "ChangeCallback",
    "RemoteLedgerError",
    "Subscription",
    "RemoteLedgerClient",
    "RestLedgerClient",
    "UnavailableLedgerClient",
]
