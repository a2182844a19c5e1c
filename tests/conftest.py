"""Shared pytest fixtures for all test types."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from simpleit.api.auth import create_jwt

TEST_SECRET = "test-secret"


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build a signed bearer token for a user with the given role."""

    def _make(
        role: str,
        user_id: int = 1,
        username: str | None = None,
        manager_id: int | None = None,
    ) -> str:
        return create_jwt(
            {
                "sub": username or f"{role}_user",
                "role": role,
                "user_id": user_id,
                "manager_id": manager_id,
            },
            TEST_SECRET,
        )

    return _make


@pytest.fixture
def ticket_row() -> dict[str, Any]:
    """A tickets row as returned by the storage layer."""
    return {
        "id": 10,
        "ticket_id": "TKT-0010",
        "summary": "Laptop will not boot",
        "description": "Black screen after the BIOS logo",
        "status": "Open",
        "urgency": "Medium",
        "impact": "Medium",
        "priority": "Medium",
        "submitted_by_id": 5,
        "assigned_to_id": None,
        "resolution_notes": None,
        "created_at": "2026-10-01T09:00:00+00:00",
        "updated_at": "2026-10-01T09:00:00+00:00",
        "submitter_manager_id": 3,
    }
