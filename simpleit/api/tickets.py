"""Ticket API endpoints.

Priority is never accepted from the client; it is derived from urgency
and impact on every write. Status changes go through the lifecycle
state machine before anything is persisted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from simpleit.api.auth import get_current_actor, require_permission
from simpleit.errors import (
    AuthorizationDenied,
    ConcurrentUpdateError,
    NotFoundError,
    ValidationError,
)
from simpleit.events.publisher import publish_event
from simpleit.monitoring.metrics import concurrent_updates_total, ticket_status_changes_total
from simpleit.rbac.actor import Actor
from simpleit.rbac.permissions import Permission
from simpleit.rbac.policy import can_access_resource, filter_by_ownership, get_policy
from simpleit.rbac.roles import LOWEST_ROLE
from simpleit.storage import tickets as ticket_store
from simpleit.storage import users as user_store
from simpleit.tickets.lifecycle import (
    Ticket,
    TicketStatus,
    calculate_available_transitions,
    parse_status,
)
from simpleit.tickets.priority import (
    DEFAULT_IMPACT,
    DEFAULT_URGENCY,
    parse_level,
    priority_explanation,
    sla_response_hours,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tickets", tags=["tickets"])

# Module-level dependencies to satisfy B008 lint rule
_actor_dep = Depends(get_current_actor)
_create_perm = Depends(require_permission(Permission.TICKETS_CREATE))
_update_perm = Depends(require_permission(Permission.TICKETS_UPDATE))
_assign_perm = Depends(require_permission(Permission.TICKETS_ASSIGN))

_VIEW_PERMISSIONS = (
    Permission.TICKETS_VIEW_ALL,
    Permission.TICKETS_VIEW_SUBORDINATES,
    Permission.TICKETS_VIEW_OWN,
)


# --- Request models ---


class CreateTicketRequest(BaseModel):
    summary: str | None = Field(default=None, max_length=255)
    description: str = Field(min_length=1)
    urgency: str = DEFAULT_URGENCY.value
    impact: str = DEFAULT_IMPACT.value
    assigned_to_id: int | None = None


class UpdateTicketRequest(BaseModel):
    summary: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    urgency: str | None = None
    impact: str | None = None


class StatusChangeRequest(BaseModel):
    status: str
    resolution_notes: str | None = None


class AssignRequest(BaseModel):
    user_id: int


# --- Helpers ---


def _present(row: dict[str, Any]) -> dict[str, Any]:
    """Row as returned to clients; priority always comes from the domain model."""
    ticket = Ticket.from_row(row)
    data = {**row, **ticket.to_dict()}
    data.pop("submitter_manager_id", None)
    data["sla_response_hours"] = sla_response_hours(ticket.priority)
    return data


def _check_ticket_access(actor: Actor, row: dict[str, Any]) -> None:
    """Raise AuthorizationDenied unless the actor may see this ticket."""
    if get_policy().has_permission(actor.role, Permission.TICKETS_VIEW_ALL):
        return
    if row.get("assigned_to_id") == actor.id:
        return
    if can_access_resource(
        actor.role,
        actor.id,
        resource_owner_id=row.get("submitted_by_id"),
        resource_manager_id=row.get("submitter_manager_id"),
    ):
        return
    raise AuthorizationDenied(
        "You do not have access to this ticket",
        required=Permission.TICKETS_VIEW_OWN.value,
        actual_role=actor.raw_role,
    )


async def _load_ticket(ticket_id: int, actor: Actor) -> dict[str, Any]:
    row = await ticket_store.get_ticket(ticket_id)
    if row is None:
        raise NotFoundError("Ticket", ticket_id)
    _check_ticket_access(actor, row)
    return row


def _status_names(statuses: Iterable[TicketStatus | str]) -> list[str]:
    return sorted(s.value if isinstance(s, TicketStatus) else str(s) for s in statuses)


def _lost_race(ticket_id: int) -> ConcurrentUpdateError:
    concurrent_updates_total.inc()
    logger.info("Concurrent update on ticket", extra={"ticket_id": ticket_id})
    return ConcurrentUpdateError("Ticket", ticket_id)


# --- Endpoints ---


@router.get("")
async def list_tickets(
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = _actor_dep,
) -> dict[str, Any]:
    """List tickets visible to the caller."""
    if not get_policy().has_any_permission(actor.role, _VIEW_PERMISSIONS):
        raise AuthorizationDenied(
            required=Permission.TICKETS_VIEW_OWN.value, actual_role=actor.raw_role
        )

    status_filter: TicketStatus | None = None
    if status is not None:
        status_filter = parse_status(status)
        if status_filter is None:
            raise ValidationError(f"Unknown ticket status {status!r}", field="status")

    # Employees are narrowed in SQL so paging and the total cover only their tickets
    owner_id = actor.id if actor.role is LOWEST_ROLE else None
    status_value = status_filter.value if status_filter else None
    rows = await ticket_store.list_tickets(
        status=status_value, owner_id=owner_id, limit=limit, offset=offset
    )
    total = await ticket_store.count_tickets(status=status_value, owner_id=owner_id)
    visible = filter_by_ownership(rows, actor.role, actor.id)
    return {"tickets": [_present(r) for r in visible], "total": total}


@router.post("", status_code=201)
async def create_ticket(
    req: CreateTicketRequest,
    actor: Actor = _create_perm,
) -> dict[str, Any]:
    """Open a ticket; priority is computed from urgency and impact."""
    if req.assigned_to_id is not None and not get_policy().has_permission(
        actor.role, Permission.TICKETS_ASSIGN
    ):
        raise AuthorizationDenied(
            required=Permission.TICKETS_ASSIGN.value, actual_role=actor.raw_role
        )

    ticket = Ticket(
        id=None,
        submitted_by_id=actor.id,
        summary=req.summary,
        description=req.description,
        urgency=parse_level(req.urgency, "urgency"),
        impact=parse_level(req.impact, "impact"),
        assigned_to_id=req.assigned_to_id,
    )
    row = await ticket_store.create_ticket(ticket, actor.id)

    logger.info(
        "Ticket created: %s priority=%s",
        row.get("ticket_id"),
        ticket.priority.value,
        extra={"ticket_id": row.get("id"), "actor_id": actor.id},
    )
    await publish_event(
        "ticket:created",
        {
            "id": row.get("id"),
            "ticket_id": row.get("ticket_id"),
            "priority": ticket.priority.value,
            "submitted_by_id": actor.id,
        },
    )
    return {"ticket": _present(row)}


@router.get("/{ticket_id}")
async def get_ticket(ticket_id: int, actor: Actor = _actor_dep) -> dict[str, Any]:
    """Ticket detail with history and the statuses the caller may move it to."""
    row = await _load_ticket(ticket_id, actor)
    ticket = Ticket.from_row(row)
    history = await ticket_store.get_history(ticket_id)
    return {
        "ticket": _present(row),
        "priority_explanation": priority_explanation(ticket.urgency, ticket.impact),
        "available_transitions": _status_names(
            calculate_available_transitions(ticket.status, actor.role)
        ),
        "history": history,
    }


@router.patch("/{ticket_id}")
async def update_ticket(
    ticket_id: int,
    req: UpdateTicketRequest,
    actor: Actor = _update_perm,
) -> dict[str, Any]:
    """Edit ticket details. Changing urgency or impact re-derives priority."""
    if req.model_dump(exclude_none=True) == {}:
        raise ValidationError("No fields to update")

    row = await _load_ticket(ticket_id, actor)
    current = Ticket.from_row(row)
    updated = current.reclassify(urgency=req.urgency, impact=req.impact)
    if req.summary is not None:
        updated = replace(updated, summary=req.summary)
    if req.description is not None:
        updated = replace(updated, description=req.description)

    saved = await ticket_store.update_details(current, updated, actor.id)
    if saved is None:
        raise _lost_race(ticket_id)

    if updated.priority is not current.priority:
        await publish_event(
            "ticket:priority_changed",
            {
                "id": ticket_id,
                "ticket_id": current.ticket_id,
                "from": current.priority.value,
                "to": updated.priority.value,
            },
        )
    return {"ticket": _present(saved)}


@router.post("/{ticket_id}/status")
async def change_status(
    ticket_id: int,
    req: StatusChangeRequest,
    actor: Actor = _actor_dep,
) -> dict[str, Any]:
    """Move a ticket through the lifecycle."""
    row = await _load_ticket(ticket_id, actor)
    current = Ticket.from_row(row)
    updated = current.transition(req.status, actor.role, req.resolution_notes)

    if updated.status is current.status:
        if updated.resolution_notes == current.resolution_notes:
            return {"ticket": _present(row), "changed": False}
        saved = await ticket_store.update_resolution_notes(current, updated, actor.id)
        if saved is None:
            raise _lost_race(ticket_id)
        return {"ticket": _present(saved), "changed": False}

    saved = await ticket_store.transition_status(current, updated, actor.id)
    if saved is None:
        raise _lost_race(ticket_id)

    ticket_status_changes_total.labels(to_status=updated.status.value).inc()
    logger.info(
        "Ticket status changed %s -> %s",
        current.status.value,
        updated.status.value,
        extra={"ticket_id": ticket_id, "actor_id": actor.id, "role": actor.role.value},
    )
    await publish_event(
        "ticket:status_changed",
        {
            "id": ticket_id,
            "ticket_id": current.ticket_id,
            "from": current.status.value,
            "to": updated.status.value,
            "changed_by": actor.id,
        },
    )
    return {"ticket": _present(saved), "changed": True}


@router.post("/{ticket_id}/assign")
async def assign_ticket(
    ticket_id: int,
    req: AssignRequest,
    actor: Actor = _assign_perm,
) -> dict[str, Any]:
    """Assign a ticket. An Open ticket moves to In Progress."""
    row = await _load_ticket(ticket_id, actor)
    assignee = await user_store.get_user(req.user_id)
    if assignee is None or not assignee.get("is_active", True):
        raise NotFoundError("User", req.user_id)

    current = Ticket.from_row(row)
    updated = current.assign(req.user_id)
    saved = await ticket_store.assign(current, updated, actor.id)
    if saved is None:
        raise _lost_race(ticket_id)

    if updated.status is not current.status:
        ticket_status_changes_total.labels(to_status=updated.status.value).inc()
    await publish_event(
        "ticket:assigned",
        {
            "id": ticket_id,
            "ticket_id": current.ticket_id,
            "assigned_to_id": req.user_id,
            "assigned_by": actor.id,
            "status": updated.status.value,
        },
    )
    return {"ticket": _present(saved)}


@router.get("/{ticket_id}/transitions")
async def list_transitions(ticket_id: int, actor: Actor = _actor_dep) -> dict[str, Any]:
    """Statuses the caller may move this ticket to."""
    row = await _load_ticket(ticket_id, actor)
    current = Ticket.from_row(row)
    available = calculate_available_transitions(current.status, actor.role)
    return {
        "current_status": current.status.value,
        "available": _status_names(available),
    }
