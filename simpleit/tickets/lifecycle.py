"""Ticket status state machine and the domain Ticket.

Privileged roles (agent level and above) may move a ticket to any
status, including re-opening a Closed one. Everyone else may only take
the next step along Open → In Progress → Resolved → Closed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any

from simpleit.errors import InvalidTransition, ValidationError
from simpleit.monitoring.metrics import invalid_transitions_total
from simpleit.rbac.roles import ROLE_LEVELS, Role, resolve_role
from simpleit.tickets.priority import (
    DEFAULT_IMPACT,
    DEFAULT_URGENCY,
    Level,
    calculate_priority,
    parse_level,
)

logger = logging.getLogger(__name__)


class TicketStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


ALL_STATUSES: frozenset[TicketStatus] = frozenset(TicketStatus)

# Canonical path for non-privileged actors; Closed has no successor
FORWARD_STEP: MappingProxyType[TicketStatus, TicketStatus | None] = MappingProxyType(
    {
        TicketStatus.OPEN: TicketStatus.IN_PROGRESS,
        TicketStatus.IN_PROGRESS: TicketStatus.RESOLVED,
        TicketStatus.RESOLVED: TicketStatus.CLOSED,
        TicketStatus.CLOSED: None,
    }
)

PRIVILEGED_LEVEL = ROLE_LEVELS[Role.AGENT]

_RESOLUTION_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})


def parse_status(raw: str | TicketStatus | None) -> TicketStatus | None:
    """Match a status case-insensitively; accepts "in_progress" style too."""
    if raw is None:
        return None
    if isinstance(raw, TicketStatus):
        return raw
    wanted = str(raw).strip().replace("_", " ").lower()
    for status in TicketStatus:
        if status.value.lower() == wanted:
            return status
    return None


def is_privileged(role: str | Role | None) -> bool:
    return ROLE_LEVELS[resolve_role(role)] >= PRIVILEGED_LEVEL


def calculate_available_transitions(
    current_status: str | TicketStatus, role: str | Role | None
) -> frozenset[TicketStatus | str]:
    """Statuses the actor may move a ticket to from ``current_status``.

    Privileged actors always get all four statuses. A non-privileged actor
    gets the single forward step, nothing from Closed, and the current
    status itself (a no-op) when the status is not one we know.
    """
    if is_privileged(role):
        return ALL_STATUSES

    current = parse_status(current_status)
    if current is None:
        logger.warning("Unknown ticket status %r, offering no-op only", current_status)
        return frozenset({current_status})

    nxt = FORWARD_STEP[current]
    return frozenset() if nxt is None else frozenset({nxt})


def validate_transition(
    current_status: str | TicketStatus,
    target_status: str | TicketStatus,
    role: str | Role | None,
) -> TicketStatus:
    """Return the parsed target, or raise InvalidTransition."""
    target = parse_status(target_status)
    if target is None:
        raise ValidationError(f"Unknown ticket status {target_status!r}", field="status")

    resolved = resolve_role(role)
    if target not in calculate_available_transitions(current_status, resolved):
        invalid_transitions_total.labels(role=resolved.value).inc()
        raise InvalidTransition(str(_status_value(current_status)), target.value, resolved.value)
    return target


def _status_value(status: str | TicketStatus) -> str:
    return status.value if isinstance(status, TicketStatus) else status


@dataclass(frozen=True)
class Ticket:
    """A help-desk ticket; ``priority`` is derived and cannot drift."""

    id: int | None
    submitted_by_id: int
    description: str
    summary: str | None = None
    ticket_id: str | None = None
    status: TicketStatus = TicketStatus.OPEN
    urgency: Level = DEFAULT_URGENCY
    impact: Level = DEFAULT_IMPACT
    assigned_to_id: int | None = None
    resolution_notes: str | None = None

    @property
    def priority(self) -> Level:
        return calculate_priority(self.urgency, self.impact)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Ticket:
        """Build from a tickets row; a stored priority column is ignored."""
        status = parse_status(row.get("status")) or TicketStatus.OPEN
        return cls(
            id=row.get("id"),
            ticket_id=row.get("ticket_id"),
            summary=row.get("summary"),
            description=row.get("description") or "",
            status=status,
            urgency=parse_level(row.get("urgency") or DEFAULT_URGENCY, "urgency"),
            impact=parse_level(row.get("impact") or DEFAULT_IMPACT, "impact"),
            submitted_by_id=int(row["submitted_by_id"]),
            assigned_to_id=row.get("assigned_to_id"),
            resolution_notes=row.get("resolution_notes"),
        )

    def reclassify(
        self, urgency: str | Level | None = None, impact: str | Level | None = None
    ) -> Ticket:
        """Replace urgency and/or impact; priority follows automatically."""
        return replace(
            self,
            urgency=self.urgency if urgency is None else parse_level(urgency, "urgency"),
            impact=self.impact if impact is None else parse_level(impact, "impact"),
        )

    def transition(
        self,
        target: str | TicketStatus,
        role: str | Role | None,
        resolution_notes: str | None = None,
    ) -> Ticket:
        new_status = validate_transition(self.status, target, role)
        notes = self.resolution_notes
        if new_status in _RESOLUTION_STATUSES and resolution_notes is not None:
            notes = resolution_notes
        return replace(self, status=new_status, resolution_notes=notes)

    def assign(self, user_id: int) -> Ticket:
        """Set the assignee; an Open ticket moves to In Progress."""
        status = TicketStatus.IN_PROGRESS if self.status is TicketStatus.OPEN else self.status
        return replace(self, assigned_to_id=user_id, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "summary": self.summary,
            "description": self.description,
            "status": self.status.value,
            "urgency": self.urgency.value,
            "impact": self.impact.value,
            "priority": self.priority.value,
            "submitted_by_id": self.submitted_by_id,
            "assigned_to_id": self.assigned_to_id,
            "resolution_notes": self.resolution_notes,
        }
