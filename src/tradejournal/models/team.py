from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum


class TeamRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


@dataclass
class TeamMember:
    user_id: str
    role: TeamRole = TeamRole.MEMBER
    is_active: bool = True
    joined_at: datetime | None = None


@dataclass
class TeamSettings:
    is_private: bool = False
    allow_member_invites: bool = True
    require_approval: bool = False


@dataclass
class TeamStats:
    total_trades: int = 0
    total_pnl: Decimal = Decimal(0)
    winning_trades: int = 0
    win_rate: Decimal = Decimal(0)


@dataclass
class Team:
    name: str
    created_by: str
    description: str = ""
    members: list[TeamMember] = field(default_factory=list)
    settings: TeamSettings = field(default_factory=TeamSettings)
    stats: TeamStats = field(default_factory=TeamStats)
    is_active: bool = True
    id: int | None = None
    created_at: datetime | None = None

    def member(self, user_id: str) -> TeamMember | None:
        return next((m for m in self.members if m.user_id == user_id), None)

    def is_member(self, user_id: str) -> bool:
        m = self.member(user_id)
        return m is not None and m.is_active

    def is_admin(self, user_id: str) -> bool:
        m = self.member(user_id)
        return m is not None and m.is_active and m.role == TeamRole.ADMIN

    def can_write(self, user_id: str) -> bool:
        m = self.member(user_id)
        return m is not None and m.is_active and m.role != TeamRole.VIEWER

    @property
    def active_members(self) -> list[TeamMember]:
        return [m for m in self.members if m.is_active]
