from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime

from tradejournal.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from tradejournal.events import EventBus, EventType, JournalEvent
from tradejournal.ledger.positions import PositionBook
from tradejournal.ledger.reporting import PositionSummary, summarize
from tradejournal.ledger.validation import parse_team, parse_vote
from tradejournal.models.lifecycle import PositionStatus
from tradejournal.models.position import Owner, Position, Vote
from tradejournal.models.team import Team, TeamMember, TeamRole, TeamSettings
from tradejournal.registry.queries import Registry

logger = logging.getLogger(__name__)


class TeamDesk:
    """Team rosters plus role-checked access to team-owned positions."""

    def __init__(
        self,
        registry: Registry,
        positions: PositionBook,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._registry = registry
        self._positions = positions
        self._events = events or EventBus()
        self._clock = clock

    def _team(self, user_id: str, team_id: int) -> Team:
        """Load an active team the user belongs to; anything else looks absent."""
        team = self._registry.get_team(team_id)
        if team is None or not team.is_active or not team.is_member(user_id):
            raise NotFoundError("Team", team_id)
        return team

    def _require_admin(self, team: Team, user_id: str) -> None:
        if not team.is_admin(user_id):
            raise PermissionDeniedError("Only team admins can do that")

    # ------------------------------------------------------------------
    # Teams and rosters
    # ------------------------------------------------------------------

    def create_team(self, user_id: str, fields: Mapping[str, object]) -> Team:
        name, description = parse_team(fields)
        if self._registry.team_name_exists(name):
            raise ValidationError.single("name", "Team name already exists")
        team = Team(
            name=name,
            created_by=user_id,
            description=description,
            members=[TeamMember(user_id=user_id, role=TeamRole.ADMIN, joined_at=self._clock())],
            settings=_settings(fields, TeamSettings()),
        )
        team = self._registry.insert_team(team)
        logger.info("Created team %s %r by %s", team.id, team.name, user_id)
        return team

    def list_teams(self, user_id: str) -> list[Team]:
        return self._registry.list_teams_for_user(user_id)

    def get_team(self, user_id: str, team_id: int) -> Team:
        return self._team(user_id, team_id)

    def update_team(self, user_id: str, team_id: int, fields: Mapping[str, object]) -> Team:
        team = self._team(user_id, team_id)
        self._require_admin(team, user_id)
        proposed = {"name": team.name, "description": team.description}
        proposed.update({k: v for k, v in fields.items() if k in proposed})
        name, description = parse_team(proposed)
        if name.lower() != team.name.lower() and self._registry.team_name_exists(name, team.id):
            raise ValidationError.single("name", "Team name already exists")
        team.name = name
        team.description = description
        team.settings = _settings(fields, team.settings)
        self._registry.update_team(team)
        logger.info("Updated team %s", team.id)
        return team

    def archive_team(self, user_id: str, team_id: int) -> None:
        team = self._team(user_id, team_id)
        self._require_admin(team, user_id)
        team.is_active = False
        self._registry.update_team(team)
        logger.info("Archived team %s by %s", team.id, user_id)

    def add_member(
        self, actor_id: str, team_id: int, user_id: str, role: object = TeamRole.MEMBER,
    ) -> Team:
        """Add (or reactivate) a member.

        Admins may grant any role. Plain members may invite when the team
        allows it, but never as admin.
        """
        team = self._team(actor_id, team_id)
        try:
            member_role = TeamRole(str(role).strip().lower())
        except ValueError:
            raise ValidationError.single(
                "role", "Role must be one of: admin, member, viewer",
            ) from None

        if not team.is_admin(actor_id):
            if not (team.settings.allow_member_invites and team.can_write(actor_id)):
                raise PermissionDeniedError("Only team admins can add members")
            if member_role == TeamRole.ADMIN:
                raise PermissionDeniedError("Only team admins can add admins")

        existing = team.member(user_id)
        if existing is not None and existing.is_active:
            raise InvalidStateError(f"User {user_id} is already a member of team {team_id}")
        if existing is not None:
            existing.role = member_role
            existing.is_active = True
            member = existing
        else:
            member = TeamMember(user_id=user_id, role=member_role, joined_at=self._clock())
            team.members.append(member)
        self._registry.upsert_team_member(team.id, member)
        logger.info("Added %s to team %s as %s", user_id, team.id, member_role)
        self._events.publish(JournalEvent(
            event_type=EventType.TEAM_MEMBER_ADDED,
            owner=Owner.team(team.id),
            entity_id=team.id,
            detail={"user_id": user_id, "role": member_role.value},
            timestamp=self._clock(),
        ))
        return team

    def remove_member(self, actor_id: str, team_id: int, user_id: str) -> Team:
        """Deactivate a member. Admins can remove anyone; members can leave."""
        team = self._team(actor_id, team_id)
        if actor_id != user_id:
            self._require_admin(team, actor_id)
        member = team.member(user_id)
        if member is None or not member.is_active:
            raise NotFoundError("Team member", user_id)
        if member.role == TeamRole.ADMIN:
            admins = [m for m in team.active_members if m.role == TeamRole.ADMIN]
            if len(admins) == 1:
                raise InvalidStateError("A team must keep at least one admin")
        member.is_active = False
        self._registry.upsert_team_member(team.id, member)
        logger.info("Removed %s from team %s", user_id, team.id)
        return team

    # ------------------------------------------------------------------
    # Team positions
    # ------------------------------------------------------------------

    def _writable(self, user_id: str, team_id: int, position_id: int) -> Position:
        team = self._team(user_id, team_id)
        position = self._positions.get(Owner.team(team_id), position_id)
        if not team.can_write(user_id):
            raise PermissionDeniedError("Viewers cannot change team positions")
        if position.created_by != user_id and not team.is_admin(user_id):
            raise PermissionDeniedError("Only the creator or a team admin can change this position")
        return position

    def list_positions(
        self, user_id: str, team_id: int, status: PositionStatus | None = None, **filters,
    ) -> list[Position]:
        self._team(user_id, team_id)
        return self._positions.list(Owner.team(team_id), status=status, **filters)

    def get_position(self, user_id: str, team_id: int, position_id: int) -> Position:
        self._team(user_id, team_id)
        return self._positions.get(Owner.team(team_id), position_id)

    def create_position(self, user_id: str, team_id: int, fields: Mapping[str, object]) -> Position:
        team = self._team(user_id, team_id)
        if not team.can_write(user_id):
            raise PermissionDeniedError("Viewers cannot create team positions")
        return self._positions.create(Owner.team(team_id), fields, created_by=user_id)

    def update_position(
        self, user_id: str, team_id: int, position_id: int, changes: Mapping[str, object],
    ) -> Position:
        self._writable(user_id, team_id, position_id)
        return self._positions.update(Owner.team(team_id), position_id, changes)

    def close_position(
        self, user_id: str, team_id: int, position_id: int, exit_price: object, exit_date: object,
    ) -> Position:
        self._writable(user_id, team_id, position_id)
        return self._positions.close(Owner.team(team_id), position_id, exit_price, exit_date)

    def delete_position(self, user_id: str, team_id: int, position_id: int) -> None:
        self._writable(user_id, team_id, position_id)
        self._positions.delete(Owner.team(team_id), position_id)

    def vote(
        self, user_id: str, team_id: int, position_id: int, fields: Mapping[str, object],
    ) -> Position:
        """Cast or replace the member's single vote on a team position."""
        self._team(user_id, team_id)
        owner = Owner.team(team_id)
        self._positions.get(owner, position_id)
        choice, comment = parse_vote(fields)
        self._registry.upsert_vote(position_id, Vote(user_id=user_id, choice=choice, comment=comment))
        position = self._positions.get(owner, position_id)
        logger.info("Vote %s by %s on team %s position %s", choice, user_id, team_id, position_id)
        self._events.publish(JournalEvent(
            event_type=EventType.VOTE_CAST,
            owner=owner,
            entity_id=position_id,
            symbol=position.symbol,
            detail={"user_id": user_id, "vote": choice.value},
            timestamp=self._clock(),
        ))
        return position

    def summary(self, user_id: str, team_id: int) -> PositionSummary:
        self._team(user_id, team_id)
        return summarize(self._positions.list(Owner.team(team_id)))


def _settings(fields: Mapping[str, object], current: TeamSettings) -> TeamSettings:
    raw = fields.get("settings")
    if not isinstance(raw, Mapping):
        return current
    return TeamSettings(
        is_private=bool(raw.get("is_private", current.is_private)),
        allow_member_invites=bool(raw.get("allow_member_invites", current.allow_member_invites)),
        require_approval=bool(raw.get("require_approval", current.require_approval)),
    )
