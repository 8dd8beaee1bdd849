from __future__ import annotations

from tradejournal.models.focus_stock import FocusStock, FocusTag, PriceSignal
from tradejournal.models.lifecycle import (
    CLOSE_TRANSITIONS,
    VALID_TRANSITIONS,
    PositionStatus,
    parse_status,
    validate_transition,
)
from tradejournal.models.position import (
    Direction,
    ExitFill,
    Owner,
    OwnerKind,
    Position,
    RiskLevel,
    Vote,
    VoteChoice,
)
from tradejournal.models.team import Team, TeamMember, TeamRole, TeamSettings, TeamStats

__all__ = [
    # position
    "Direction",
    "ExitFill",
    "Owner",
    "OwnerKind",
    "Position",
    "RiskLevel",
    "Vote",
    "VoteChoice",
    # lifecycle
    "PositionStatus",
    "VALID_TRANSITIONS",
    "CLOSE_TRANSITIONS",
    "parse_status",
    "validate_transition",
    # focus stock
    "FocusStock",
    "FocusTag",
    "PriceSignal",
    # team
    "Team",
    "TeamMember",
    "TeamRole",
    "TeamSettings",
    "TeamStats",
]
