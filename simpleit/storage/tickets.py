"""Ticket persistence.

Every mutation is a single conditional UPDATE that re-checks the value
it was computed from (status, or the urgency/impact pair) and writes
the history row in the same transaction. ``None`` means the row changed
underneath the caller and nothing was written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from simpleit.storage.engine import get_engine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from simpleit.tickets.lifecycle import Ticket

_TICKET_COLUMNS = """
    t.id, t.ticket_id, t.summary, t.description, t.status, t.urgency, t.impact,
    t.priority, t.submitted_by_id, t.assigned_to_id, t.resolution_notes,
    t.created_at, t.updated_at
"""

_RETURNING = """
    id, ticket_id, summary, description, status, urgency, impact, priority,
    submitted_by_id, assigned_to_id, resolution_notes, created_at, updated_at
"""


async def get_ticket(ticket_pk: int) -> dict[str, Any] | None:
    """Fetch one ticket plus the submitter's manager for hierarchy checks."""
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                SELECT {_TICKET_COLUMNS}, u.manager_id AS submitter_manager_id
                FROM tickets t
                LEFT JOIN users u ON u.id = t.submitted_by_id
                WHERE t.id = :id
            """),
            {"id": ticket_pk},
        )
        row = result.first()
    return dict(row._mapping) if row else None


def _list_filters(status: str | None, owner_id: int | None) -> tuple[str, dict[str, Any]]:
    conditions = ["1=1"]
    params: dict[str, Any] = {}
    if status:
        conditions.append("t.status = :status")
        params["status"] = status
    if owner_id is not None:
        conditions.append("(t.submitted_by_id = :owner_id OR t.assigned_to_id = :owner_id)")
        params["owner_id"] = owner_id
    return " AND ".join(conditions), params


async def list_tickets(
    status: str | None = None,
    owner_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Newest first. ``owner_id`` keeps tickets submitted by or assigned to that user."""
    engine = await get_engine()
    where, params = _list_filters(status, owner_id)
    params.update(limit=limit, offset=offset)
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                SELECT {_TICKET_COLUMNS}
                FROM tickets t
                WHERE {where}
                ORDER BY t.created_at DESC
                LIMIT :limit OFFSET :offset
            """),
            params,
        )
        return [dict(row._mapping) for row in result]


async def count_tickets(status: str | None = None, owner_id: int | None = None) -> int:
    engine = await get_engine()
    where, params = _list_filters(status, owner_id)
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"SELECT COUNT(*) FROM tickets t WHERE {where}"),
            params,
        )
        return int(result.scalar() or 0)


async def create_ticket(ticket: Ticket, actor_id: int) -> dict[str, Any]:
    """Insert a ticket; the display key comes from ticket_number_seq."""
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                INSERT INTO tickets (
                    ticket_id, summary, description, status, urgency, impact, priority,
                    submitted_by_id, assigned_to_id
                ) VALUES (
                    'TKT-' || lpad(nextval('ticket_number_seq')::text, 4, '0'),
                    :summary, :description, :status, :urgency, :impact, :priority,
                    :submitted_by_id, :assigned_to_id
                )
                RETURNING {_RETURNING}
            """),
            {
                "summary": ticket.summary,
                "description": ticket.description,
                "status": ticket.status.value,
                "urgency": ticket.urgency.value,
                "impact": ticket.impact.value,
                "priority": ticket.priority.value,
                "submitted_by_id": ticket.submitted_by_id,
                "assigned_to_id": ticket.assigned_to_id,
            },
        )
        row = dict(result.first()._mapping)  # type: ignore[union-attr]
        await _record_history(
            conn, row["id"], actor_id, "Created", None, row["status"], "Ticket created"
        )
    return row


async def update_details(
    current: Ticket,
    updated: Ticket,
    actor_id: int,
) -> dict[str, Any] | None:
    """Write summary, description, urgency, impact and the derived priority.

    Guarded on the urgency/impact pair that ``updated`` was derived from.
    """
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                UPDATE tickets
                SET summary = :summary,
                    description = :description,
                    urgency = :urgency,
                    impact = :impact,
                    priority = :priority,
                    updated_at = now()
                WHERE id = :id AND urgency = :old_urgency AND impact = :old_impact
                RETURNING {_RETURNING}
            """),
            {
                "id": current.id,
                "summary": updated.summary,
                "description": updated.description,
                "urgency": updated.urgency.value,
                "impact": updated.impact.value,
                "priority": updated.priority.value,
                "old_urgency": current.urgency.value,
                "old_impact": current.impact.value,
            },
        )
        row = result.first()
        if row is None:
            return None

        for action, old, new in (
            ("Urgency Change", current.urgency.value, updated.urgency.value),
            ("Impact Change", current.impact.value, updated.impact.value),
            ("Priority Change", current.priority.value, updated.priority.value),
        ):
            if old != new:
                await _record_history(conn, current.id, actor_id, action, old, new, None)
    return dict(row._mapping)


async def transition_status(
    current: Ticket,
    updated: Ticket,
    actor_id: int,
) -> dict[str, Any] | None:
    """Compare-and-set the status (and resolution notes)."""
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                UPDATE tickets
                SET status = :status,
                    resolution_notes = :resolution_notes,
                    updated_at = now()
                WHERE id = :id AND status = :expected_status
                RETURNING {_RETURNING}
            """),
            {
                "id": current.id,
                "status": updated.status.value,
                "resolution_notes": updated.resolution_notes,
                "expected_status": current.status.value,
            },
        )
        row = result.first()
        if row is None:
            return None
        await _record_history(
            conn,
            current.id,
            actor_id,
            "Status Change",
            current.status.value,
            updated.status.value,
            updated.resolution_notes,
        )
    return dict(row._mapping)


async def update_resolution_notes(
    current: Ticket,
    updated: Ticket,
    actor_id: int,
) -> dict[str, Any] | None:
    """Replace resolution notes without moving the ticket, guarded on status."""
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                UPDATE tickets
                SET resolution_notes = :resolution_notes,
                    updated_at = now()
                WHERE id = :id AND status = :expected_status
                RETURNING {_RETURNING}
            """),
            {
                "id": current.id,
                "resolution_notes": updated.resolution_notes,
                "expected_status": current.status.value,
            },
        )
        row = result.first()
        if row is None:
            return None
        await _record_history(
            conn,
            current.id,
            actor_id,
            "Resolution Notes Update",
            current.resolution_notes,
            updated.resolution_notes,
            None,
        )
    return dict(row._mapping)


async def assign(
    current: Ticket,
    updated: Ticket,
    actor_id: int,
) -> dict[str, Any] | None:
    """Set the assignee, guarded on the status the auto-advance was based on."""
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"""
                UPDATE tickets
                SET assigned_to_id = :assigned_to_id,
                    status = :status,
                    updated_at = now()
                WHERE id = :id AND status = :expected_status
                RETURNING {_RETURNING}
            """),
            {
                "id": current.id,
                "assigned_to_id": updated.assigned_to_id,
                "status": updated.status.value,
                "expected_status": current.status.value,
            },
        )
        row = result.first()
        if row is None:
            return None
        await _record_history(
            conn,
            current.id,
            actor_id,
            "Assignment",
            None if current.assigned_to_id is None else str(current.assigned_to_id),
            str(updated.assigned_to_id),
            None,
        )
        if current.status is not updated.status:
            await _record_history(
                conn,
                current.id,
                actor_id,
                "Status Change",
                current.status.value,
                updated.status.value,
                "Advanced on assignment",
            )
    return dict(row._mapping)


async def get_history(ticket_pk: int) -> list[dict[str, Any]]:
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text("""
                SELECT id, ticket_id, user_id, action, previous_value, new_value,
                       change_description, created_at
                FROM ticket_history
                WHERE ticket_id = :ticket_id
                ORDER BY created_at
            """),
            {"ticket_id": ticket_pk},
        )
        return [dict(row._mapping) for row in result]


async def _record_history(
    conn: AsyncConnection,
    ticket_pk: int | None,
    user_id: int,
    action: str,
    previous_value: str | None,
    new_value: str | None,
    description: str | None,
) -> None:
    await conn.execute(
        text("""
            INSERT INTO ticket_history
                (ticket_id, user_id, action, previous_value, new_value, change_description)
            VALUES
                (:ticket_id, :user_id, :action, :previous_value, :new_value, :description)
        """),
        {
            "ticket_id": ticket_pk,
            "user_id": user_id,
            "action": action,
            "previous_value": previous_value,
            "new_value": new_value,
            "description": description,
        },
    )
