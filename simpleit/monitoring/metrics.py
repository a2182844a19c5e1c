"""Prometheus metrics definitions.

Exposed via /metrics on the API server.
"""

from __future__ import annotations

from prometheus_client import Counter, generate_latest

# --- Authorization metrics ---

authorization_denials_total = Counter(
    "simpleit_authorization_denials_total",
    "Requests rejected for missing permission or role level",
    ["required"],
)

unrecognized_roles_total = Counter(
    "simpleit_unrecognized_roles_total",
    "Role strings that did not normalize to a known role",
)

# --- Ticket lifecycle metrics ---

invalid_transitions_total = Counter(
    "simpleit_invalid_transitions_total",
    "Ticket status changes rejected by the state machine",
    ["role"],
)

ticket_status_changes_total = Counter(
    "simpleit_ticket_status_changes_total",
    "Ticket status changes applied",
    ["to_status"],
)

concurrent_updates_total = Counter(
    "simpleit_concurrent_updates_total",
    "Conditional ticket updates that lost a race",
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()
