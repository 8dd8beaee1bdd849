from __future__ import annotations

from enum import StrEnum


class PositionStatus(StrEnum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


# OPEN -> CLOSED is the only forward move; edits within a state are free.
# CLOSED -> OPEN is reachable only through a full update that drops the exit.
VALID_TRANSITIONS: dict[PositionStatus, set[PositionStatus]] = {
    PositionStatus.OPEN: {PositionStatus.OPEN, PositionStatus.CLOSED},
    PositionStatus.CLOSED: {PositionStatus.CLOSED, PositionStatus.OPEN},
}

# Transitions allowed through the dedicated close operation.
CLOSE_TRANSITIONS: dict[PositionStatus, set[PositionStatus]] = {
    PositionStatus.OPEN: {PositionStatus.CLOSED},
    PositionStatus.CLOSED: set(),
}


def validate_transition(
    current: PositionStatus,
    target: PositionStatus,
    table: dict[PositionStatus, set[PositionStatus]] = VALID_TRANSITIONS,
) -> bool:
    allowed = table.get(current, set())
    return target in allowed


def parse_status(value: object) -> PositionStatus | None:
    """Map user-supplied status text onto PositionStatus.

    Legacy trade records used ACTIVE for open positions.
    """
    if isinstance(value, PositionStatus):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().upper()
    if text == "ACTIVE":
        return PositionStatus.OPEN
    try:
        return PositionStatus(text)
    except ValueError:
        return None
