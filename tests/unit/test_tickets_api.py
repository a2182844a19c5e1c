"""Unit tests for tickets API."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from simpleit.api.tickets import router
from simpleit.errors import install_error_handlers


@pytest.fixture()
def client() -> TestClient:
    app = FastAPI()
    app.include_router(router)
    install_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def mocks() -> Iterator[SimpleNamespace]:
    """Patch storage, events and auth settings for the tickets router."""
    store = MagicMock()
    for name in (
        "get_ticket",
        "list_tickets",
        "count_tickets",
        "create_ticket",
        "update_details",
        "transition_status",
        "update_resolution_notes",
        "assign",
        "get_history",
    ):
        setattr(store, name, AsyncMock())
    store.get_history.return_value = []
    store.count_tickets.return_value = 0
    users = MagicMock()
    users.get_user = AsyncMock(return_value={"id": 9, "role": "agent", "is_active": True})
    publish = AsyncMock()

    with (
        patch("simpleit.api.tickets.ticket_store", store),
        patch("simpleit.api.tickets.user_store", users),
        patch("simpleit.api.tickets.publish_event", publish),
        patch("simpleit.api.auth.is_token_blacklisted", AsyncMock(return_value=False)),
        patch("simpleit.api.auth.get_settings") as mock_settings,
    ):
        mock_settings.return_value.auth.jwt_secret = "test-secret"
        yield SimpleNamespace(store=store, users=users, publish=publish)


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _returned(row: dict[str, Any], **changes: Any) -> dict[str, Any]:
    saved = {k: v for k, v in row.items() if k != "submitter_manager_id"}
    saved.update(changes)
    return saved


class TestListTickets:
    def test_admin_sees_all(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        other = {**ticket_row, "id": 11, "submitted_by_id": 6}
        mocks.store.list_tickets.return_value = [ticket_row, other]
        mocks.store.count_tickets.return_value = 2

        response = client.get("/tickets", headers=_auth(make_token("admin", user_id=1)))
        assert response.status_code == 200
        assert response.json()["total"] == 2
        assert mocks.store.list_tickets.await_args.kwargs["owner_id"] is None

    def test_employee_sees_own_only(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        other = {**ticket_row, "id": 11, "submitted_by_id": 6}
        mocks.store.list_tickets.return_value = [ticket_row, other]

        response = client.get("/tickets", headers=_auth(make_token("employee", user_id=5)))
        assert response.status_code == 200
        tickets = response.json()["tickets"]
        assert [t["id"] for t in tickets] == [10]
        assert "submitter_manager_id" not in tickets[0]
        assert mocks.store.list_tickets.await_args.kwargs["owner_id"] == 5
        assert mocks.store.count_tickets.await_args.kwargs["owner_id"] == 5

    def test_status_filter_normalized(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
    ) -> None:
        mocks.store.list_tickets.return_value = []
        response = client.get(
            "/tickets", params={"status": "in_progress"}, headers=_auth(make_token("agent"))
        )
        assert response.status_code == 200
        assert mocks.store.list_tickets.await_args.kwargs["status"] == "In Progress"

    def test_employee_paging_covers_only_own_tickets(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        newer = [
            {**ticket_row, "id": 1000 + i, "submitted_by_id": 6, "submitter_manager_id": None}
            for i in range(150)
        ]
        table = [*newer, ticket_row]

        def _matching(status: str | None, owner_id: int | None) -> list[dict[str, Any]]:
            return [
                t
                for t in table
                if owner_id is None or owner_id in (t["submitted_by_id"], t["assigned_to_id"])
            ]

        async def _list(
            status: str | None = None,
            owner_id: int | None = None,
            limit: int = 100,
            offset: int = 0,
        ) -> list[dict[str, Any]]:
            return _matching(status, owner_id)[offset : offset + limit]

        async def _count(status: str | None = None, owner_id: int | None = None) -> int:
            return len(_matching(status, owner_id))

        mocks.store.list_tickets.side_effect = _list
        mocks.store.count_tickets.side_effect = _count

        response = client.get("/tickets", headers=_auth(make_token("employee", user_id=5)))
        assert response.status_code == 200
        assert [t["id"] for t in response.json()["tickets"]] == [10]
        assert response.json()["total"] == 1

        response = client.get(
            "/tickets", params={"limit": 100}, headers=_auth(make_token("admin", user_id=1))
        )
        assert len(response.json()["tickets"]) == 100
        assert response.json()["total"] == 151

    def test_unknown_status_filter(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        response = client.get(
            "/tickets", params={"status": "Escalated"}, headers=_auth(make_token("agent"))
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_stale_priority_is_recomputed(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.list_tickets.return_value = [
            {**ticket_row, "urgency": "Critical", "priority": "Low"}
        ]
        response = client.get("/tickets", headers=_auth(make_token("admin")))
        ticket = response.json()["tickets"][0]
        assert ticket["priority"] == "Critical"
        assert ticket["sla_response_hours"] == 1

    def test_missing_token(self, client: TestClient, mocks: SimpleNamespace) -> None:
        response = client.get("/tickets")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "AUTHENTICATION_REQUIRED"


class TestCreateTicket:
    def test_priority_derived_and_persisted(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.create_ticket.return_value = _returned(
            ticket_row, urgency="High", impact="Low", priority="High"
        )

        response = client.post(
            "/tickets",
            json={"description": "Server room is hot", "urgency": "high", "impact": "Low"},
            headers=_auth(make_token("employee", user_id=5)),
        )
        assert response.status_code == 201
        ticket, actor_id = mocks.store.create_ticket.await_args.args
        assert ticket.priority.value == "High"
        assert ticket.submitted_by_id == 5
        assert ticket.status.value == "Open"
        assert actor_id == 5
        assert response.json()["ticket"]["priority"] == "High"
        assert mocks.publish.await_args.args[0] == "ticket:created"

    def test_defaults_to_medium(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.create_ticket.return_value = _returned(ticket_row)
        client.post(
            "/tickets", json={"description": "Mouse broken"}, headers=_auth(make_token("agent"))
        )
        ticket = mocks.store.create_ticket.await_args.args[0]
        assert ticket.urgency.value == "Medium"
        assert ticket.impact.value == "Medium"
        assert ticket.priority.value == "Medium"

    def test_invalid_urgency(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        response = client.post(
            "/tickets",
            json={"description": "x", "urgency": "ASAP"},
            headers=_auth(make_token("agent")),
        )
        assert response.status_code == 422
        mocks.store.create_ticket.assert_not_awaited()

    def test_employee_cannot_preassign(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        response = client.post(
            "/tickets",
            json={"description": "x", "assigned_to_id": 9},
            headers=_auth(make_token("employee", user_id=5)),
        )
        assert response.status_code == 403
        assert response.json()["error"]["details"]["required"] == "tickets:assign"
        mocks.store.create_ticket.assert_not_awaited()


class TestGetTicket:
    def test_owner_can_view(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        response = client.get("/tickets/10", headers=_auth(make_token("employee", user_id=5)))
        assert response.status_code == 200
        data = response.json()
        assert data["available_transitions"] == ["In Progress"]
        assert data["priority_explanation"].startswith('Priority "Medium"')

    def test_other_employee_forbidden(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        response = client.get("/tickets/10", headers=_auth(make_token("employee", user_id=6)))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_assignee_can_view(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = {**ticket_row, "assigned_to_id": 6}
        response = client.get("/tickets/10", headers=_auth(make_token("employee", user_id=6)))
        assert response.status_code == 200

    def test_not_found(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        mocks.store.get_ticket.return_value = None
        response = client.get("/tickets/99", headers=_auth(make_token("admin")))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestUpdateTicket:
    def test_urgency_change_recomputes_from_stored_impact(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = {**ticket_row, "impact": "Low", "urgency": "Low"}
        mocks.store.update_details.return_value = _returned(
            ticket_row, urgency="Critical", impact="Low", priority="Critical"
        )

        response = client.patch(
            "/tickets/10", json={"urgency": "Critical"}, headers=_auth(make_token("agent"))
        )
        assert response.status_code == 200
        current, updated, _ = mocks.store.update_details.await_args.args
        assert current.priority.value == "Low"
        assert updated.impact.value == "Low"
        assert updated.priority.value == "Critical"
        assert mocks.publish.await_args.args[0] == "ticket:priority_changed"

    def test_empty_update_rejected(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        response = client.patch("/tickets/10", json={}, headers=_auth(make_token("agent")))
        assert response.status_code == 422
        mocks.store.update_details.assert_not_awaited()

    def test_employee_cannot_update(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        response = client.patch(
            "/tickets/10", json={"urgency": "High"}, headers=_auth(make_token("employee"))
        )
        assert response.status_code == 403
        assert response.json()["error"]["details"] == {
            "required": "tickets:update",
            "role": "employee",
        }

    def test_lost_race_is_409(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        mocks.store.update_details.return_value = None
        response = client.patch(
            "/tickets/10", json={"impact": "High"}, headers=_auth(make_token("agent"))
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONCURRENT_UPDATE"
        mocks.publish.assert_not_awaited()


class TestChangeStatus:
    def test_employee_skip_rejected_before_write(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        response = client.post(
            "/tickets/10/status",
            json={"status": "Resolved"},
            headers=_auth(make_token("employee", user_id=5)),
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["details"] == {
            "current_status": "Open",
            "attempted_status": "Resolved",
            "role": "employee",
        }
        mocks.store.transition_status.assert_not_awaited()

    def test_admin_skip_allowed(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        mocks.store.transition_status.return_value = _returned(
            ticket_row, status="Resolved", resolution_notes="Reseated RAM"
        )
        response = client.post(
            "/tickets/10/status",
            json={"status": "resolved", "resolution_notes": "Reseated RAM"},
            headers=_auth(make_token("admin", user_id=1)),
        )
        assert response.status_code == 200
        assert response.json()["changed"] is True
        current, updated, actor_id = mocks.store.transition_status.await_args.args
        assert current.status.value == "Open"
        assert updated.status.value == "Resolved"
        assert updated.resolution_notes == "Reseated RAM"
        assert actor_id == 1
        event, data = mocks.publish.await_args.args
        assert event == "ticket:status_changed"
        assert data["from"] == "Open"
        assert data["to"] == "Resolved"

    def test_employee_forward_step(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = {**ticket_row, "status": "Resolved"}
        mocks.store.transition_status.return_value = _returned(ticket_row, status="Closed")
        response = client.post(
            "/tickets/10/status",
            json={"status": "Closed"},
            headers=_auth(make_token("employee", user_id=5)),
        )
        assert response.status_code == 200

    def test_privileged_same_status_is_noop(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        response = client.post(
            "/tickets/10/status", json={"status": "Open"}, headers=_auth(make_token("agent"))
        )
        assert response.status_code == 200
        assert response.json()["changed"] is False
        mocks.store.transition_status.assert_not_awaited()

    def test_same_status_with_new_notes_updates_notes_only(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        resolved = {**ticket_row, "status": "Resolved", "resolution_notes": "Rebooted"}
        mocks.store.get_ticket.return_value = resolved
        mocks.store.update_resolution_notes.return_value = _returned(
            resolved, resolution_notes="Replaced toner"
        )

        with patch("simpleit.api.tickets.ticket_status_changes_total") as status_changes:
            response = client.post(
                "/tickets/10/status",
                json={"status": "Resolved", "resolution_notes": "Replaced toner"},
                headers=_auth(make_token("admin")),
            )

        assert response.status_code == 200
        body = response.json()
        assert body["changed"] is False
        assert body["ticket"]["resolution_notes"] == "Replaced toner"
        updated = mocks.store.update_resolution_notes.await_args.args[1]
        assert updated.resolution_notes == "Replaced toner"
        mocks.store.transition_status.assert_not_awaited()
        mocks.publish.assert_not_awaited()
        status_changes.labels.assert_not_called()

    def test_lost_race_is_409(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        mocks.store.transition_status.return_value = None
        response = client.post(
            "/tickets/10/status",
            json={"status": "In Progress"},
            headers=_auth(make_token("agent")),
        )
        assert response.status_code == 409
        mocks.publish.assert_not_awaited()

    def test_unrelated_employee_forbidden(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        response = client.post(
            "/tickets/10/status",
            json={"status": "In Progress"},
            headers=_auth(make_token("employee", user_id=42)),
        )
        assert response.status_code == 403


class TestAssignTicket:
    def test_assign_advances_open_ticket(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        mocks.store.assign.return_value = _returned(
            ticket_row, assigned_to_id=9, status="In Progress"
        )
        response = client.post(
            "/tickets/10/assign", json={"user_id": 9}, headers=_auth(make_token("manager"))
        )
        assert response.status_code == 200
        _, updated, _ = mocks.store.assign.await_args.args
        assert updated.assigned_to_id == 9
        assert updated.status.value == "In Progress"
        assert mocks.publish.await_args.args[0] == "ticket:assigned"

    def test_unknown_assignee(
        self,
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = ticket_row
        mocks.users.get_user.return_value = None
        response = client.post(
            "/tickets/10/assign", json={"user_id": 404}, headers=_auth(make_token("admin"))
        )
        assert response.status_code == 404
        mocks.store.assign.assert_not_awaited()

    def test_employee_cannot_assign(
        self, client: TestClient, mocks: SimpleNamespace, make_token: Callable[..., str]
    ) -> None:
        response = client.post(
            "/tickets/10/assign", json={"user_id": 9}, headers=_auth(make_token("employee"))
        )
        assert response.status_code == 403
        mocks.store.get_ticket.assert_not_awaited()


class TestTransitions:
    @pytest.mark.parametrize(
        ("role", "expected"),
        [
            ("employee", ["Resolved"]),
            ("agent", ["Closed", "In Progress", "Open", "Resolved"]),
        ],
    )
    def test_available_by_role(
        self,
        role: str,
        expected: list[str],
        client: TestClient,
        mocks: SimpleNamespace,
        make_token: Callable[..., str],
        ticket_row: dict[str, Any],
    ) -> None:
        mocks.store.get_ticket.return_value = {**ticket_row, "status": "In Progress"}
        response = client.get(
            "/tickets/10/transitions", headers=_auth(make_token(role, user_id=5))
        )
        assert response.status_code == 200
        assert response.json() == {"current_status": "In Progress", "available": expected}
