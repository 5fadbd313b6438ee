from __future__ import annotations

import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from proxima.gateway.client import GatewayClient
from proxima.services.dashboard import DashboardController
from proxima.tickets.models import Ticket

BASE_URL = "https://proxima.test"
API_KEY = "anon-key"
_RESERVED_PARAMS = {"select", "order", "limit"}


def _as_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class FakeBackend:
    """In-memory stand-in for the auth and table APIs, served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            "profiles": [],
            "tickets": [],
            "comments": [],
            "notifications": [],
        }
        self.users: dict[str, tuple[str, str]] = {}
        self.requests: list[httpx.Request] = []
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    # Seeding helpers
    def tick(self) -> str:
        self._clock += timedelta(minutes=1)
        return self._clock.isoformat()

    def add_user(self, email: str, password: str, *, username: str, role: str | None) -> str:
        user_id = f"user-{next(self._ids)}"
        self.users[email] = (password, user_id)
        if role is not None:
            self.tables["profiles"].append(
                {"id": user_id, "username": username, "role": role, "email_notifications": True}
            )
        return user_id

    def add_ticket(self, **fields: Any) -> dict[str, Any]:
        row = {
            "id": next(self._ids),
            "title": "Untitled",
            "type": "Incident",
            "category": "Apps",
            "priority": "Medium",
            "status": "Open",
            "description": "",
            "created_by": None,
            "created_at": self.tick(),
        }
        row.update(fields)
        self.tables["tickets"].append(row)
        return row

    def add_notification(self, user_id: str, text: str, *, ticket_id: int | None = None, is_read: bool = False) -> dict[str, Any]:
        row = {
            "id": next(self._ids),
            "user_id": user_id,
            "ticket_id": ticket_id,
            "text": text,
            "is_read": is_read,
            "created_at": self.tick(),
        }
        self.tables["notifications"].append(row)
        return row

    def fail(self, method: str, path: str, *, status: int = 500, message: str = "backend unavailable") -> None:
        self.failures[(method, path)] = (status, message)

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == method and request.url.path == path]

    # Transport entry point
    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        failure = self.failures.get((request.method, path))
        if failure is not None:
            status, message = failure
            return httpx.Response(status, json={"message": message})

        if path == "/auth/v1/token":
            return self._token(request)
        if path == "/auth/v1/signup":
            return self._signup(request)
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        if path.startswith("/rest/v1/"):
            return self._table(request, path[len("/rest/v1/"):])
        return httpx.Response(404, json={"message": f"unknown path {path}"})

    def _session_payload(self, user_id: str, email: str) -> dict[str, Any]:
        return {
            "access_token": f"token-{user_id}",
            "refresh_token": f"refresh-{user_id}",
            "expires_at": 1900000000,
            "user": {"id": user_id, "email": email},
        }

    def _token(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if request.url.params.get("grant_type") == "refresh_token":
            return self._refresh(body.get("refresh_token") or "")
        entry = self.users.get(body.get("email"))
        if entry is None or entry[0] != body.get("password"):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})
        return httpx.Response(200, json=self._session_payload(entry[1], body["email"]))

    def _refresh(self, refresh_token: str) -> httpx.Response:
        for email, (_, user_id) in self.users.items():
            if refresh_token == f"refresh-{user_id}":
                payload = self._session_payload(user_id, email)
                payload["access_token"] = f"token-{user_id}-refreshed"
                return httpx.Response(200, json=payload)
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid Refresh Token"})

    def _signup(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["email"] in self.users:
            return httpx.Response(422, json={"msg": "User already registered"})
        data = body.get("data") or {}
        user_id = self.add_user(body["email"], body["password"], username=data.get("name", ""), role=data.get("role"))
        return httpx.Response(200, json=self._session_payload(user_id, body["email"]))

    def _matching(self, table: str, params: list[tuple[str, str]]) -> list[dict[str, Any]]:
        rows = self.tables[table]
        for key, value in params:
            if key in _RESERVED_PARAMS or key.endswith(".order"):
                continue
            expected = value.split(".", 1)[1]
            rows = [row for row in rows if _as_param(row.get(key)) == expected]
        return rows

    def _project(self, table: str, row: dict[str, Any], select: str) -> dict[str, Any]:
        if select == "id":
            return {"id": row["id"]}
        projected = dict(row)
        if table == "tickets" and "comments(*)" in select:
            projected["comments"] = [dict(c) for c in self.tables["comments"] if c["ticket_id"] == row["id"]]
        return projected

    def _table(self, request: httpx.Request, table: str) -> httpx.Response:
        params = list(request.url.params.multi_items())
        lookup = dict(params)

        if request.method == "GET":
            rows = list(self._matching(table, params))
            if "order" in lookup:
                column, direction = lookup["order"].split(".")
                rows.sort(key=lambda row: row[column], reverse=direction == "desc")
            if "limit" in lookup:
                rows = rows[: int(lookup["limit"])]
            select = lookup.get("select", "*")
            return httpx.Response(200, json=[self._project(table, row, select) for row in rows])

        if request.method == "POST":
            inserted = []
            for row in json.loads(request.content):
                stored = {"id": next(self._ids), "created_at": self.tick(), **row}
                self.tables[table].append(stored)
                inserted.append(stored)
            return httpx.Response(201, json=inserted)

        if request.method == "PATCH":
            patch = json.loads(request.content)
            updated = []
            for row in self._matching(table, params):
                row.update(patch)
                updated.append(row)
            return httpx.Response(200, json=updated)

        if request.method == "DELETE":
            doomed = {id(row) for row in self._matching(table, params)}
            self.tables[table] = [row for row in self.tables[table] if id(row) not in doomed]
            return httpx.Response(204)

        return httpx.Response(405)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def gateway(backend: FakeBackend) -> GatewayClient:
    return GatewayClient(BASE_URL, API_KEY, transport=httpx.MockTransport(backend))


@pytest.fixture
def controller(gateway: GatewayClient) -> DashboardController:
    return DashboardController(gateway)


@pytest.fixture
def make_ticket():
    base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    counter = itertools.count(1)

    def factory(**fields: Any) -> Ticket:
        ticket_id = fields.pop("id", next(counter))
        row = {
            "id": ticket_id,
            "title": f"Ticket {ticket_id}",
            "type": "Incident",
            "category": "Apps",
            "priority": "Medium",
            "status": "Open",
            "description": "",
            "created_by": "user-1",
            "created_at": base + timedelta(hours=ticket_id),
        }
        row.update(fields)
        return Ticket.from_row(row)

    return factory
