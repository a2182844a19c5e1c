"""Ticket priority derived from urgency and impact.

Priority is never chosen directly: it is a pure function of the
(urgency, impact) pair and is recomputed whenever either changes.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType

from simpleit.errors import ValidationError


class Level(str, Enum):
    """Shared scale for urgency, impact and priority."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


Urgency = Level
Impact = Level
Priority = Level

DEFAULT_URGENCY = Level.MEDIUM
DEFAULT_IMPACT = Level.MEDIUM

SLA_RESPONSE_HOURS: MappingProxyType[Level, int] = MappingProxyType(
    {
        Level.CRITICAL: 1,
        Level.HIGH: 4,
        Level.MEDIUM: 24,
        Level.LOW: 72,
    }
)


def parse_level(value: str | Level, field: str = "level") -> Level:
    """Coerce a raw value to a Level, raising ValidationError if unknown."""
    if isinstance(value, Level):
        return value
    for level in Level:
        if str(value).strip().lower() == level.value.lower():
            return level
    raise ValidationError(
        f"Invalid {field} {value!r}; expected one of {', '.join(lv.value for lv in Level)}",
        field=field,
    )


def calculate_priority(urgency: str | Level, impact: str | Level) -> Level:
    """Derive priority; rules are checked top to bottom, first match wins.

    1. either input Critical  -> Critical
    2. either input High      -> High
    3. both inputs Low        -> Low
    4. otherwise              -> Medium
    """
    u = parse_level(urgency, "urgency")
    i = parse_level(impact, "impact")

    if Level.CRITICAL in (u, i):
        return Level.CRITICAL
    if Level.HIGH in (u, i):
        return Level.HIGH
    if u is Level.LOW and i is Level.LOW:
        return Level.LOW
    return Level.MEDIUM


def sla_response_hours(priority: str | Level) -> int:
    return SLA_RESPONSE_HOURS[parse_level(priority, "priority")]


def validate_priority(urgency: str | Level, impact: str | Level, priority: str | Level) -> bool:
    """Whether a stored priority agrees with its urgency/impact pair."""
    return calculate_priority(urgency, impact) is parse_level(priority, "priority")


def priority_explanation(urgency: str | Level, impact: str | Level) -> str:
    u = parse_level(urgency, "urgency")
    i = parse_level(impact, "impact")
    priority = calculate_priority(u, i)
    return f'Priority "{priority.value}" calculated from Urgency: {u.value} × Impact: {i.value}'
