from __future__ import annotations

from decimal import Decimal

import pytest

from tradejournal.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from tradejournal.events import EventType
from tradejournal.models.position import VoteChoice
from tradejournal.models.team import TeamRole


def _trade(**overrides) -> dict:
    data = {
        "symbol": "HDFCBANK",
        "entry_price": 1600,
        "quantity": 20,
        "entry_date": "2024-02-12",
        "status": "OPEN",
        "strategy": "Pullback",
        "risk_level": "low",
        "target_price": 1750,
        "stop_loss": 1550,
    }
    data.update(overrides)
    return data


@pytest.fixture
def team(desk):
    team = desk.create_team("alice", {"name": "Alpha", "description": "Swing desk"})
    desk.add_member("alice", team.id, "bob", "member")
    desk.add_member("alice", team.id, "carol", "viewer")
    return desk.get_team("alice", team.id)


class TestTeams:
    def test_creator_is_admin(self, desk) -> None:
        team = desk.create_team("alice", {"name": "Alpha", "settings": {"is_private": True}})
        assert team.is_admin("alice")
        assert team.settings.is_private
        assert [t.id for t in desk.list_teams("alice")] == [team.id]

    def test_name_unique_case_insensitive(self, desk) -> None:
        desk.create_team("alice", {"name": "Alpha"})
        with pytest.raises(ValidationError) as exc_info:
            desk.create_team("bob", {"name": "ALPHA"})
        assert exc_info.value.fields == {"name": "Team name already exists"}

    def test_non_member_sees_nothing(self, desk, team) -> None:
        with pytest.raises(NotFoundError):
            desk.get_team("mallory", team.id)

    def test_update_requires_admin(self, desk, team) -> None:
        with pytest.raises(PermissionDeniedError):
            desk.update_team("bob", team.id, {"name": "Beta"})
        updated = desk.update_team("alice", team.id, {"name": "Beta", "settings": {"allow_member_invites": False}})
        assert updated.name == "Beta"
        assert updated.description == "Swing desk"
        assert not updated.settings.allow_member_invites

    def test_archive(self, desk, team) -> None:
        desk.archive_team("alice", team.id)
        assert desk.list_teams("alice") == []
        with pytest.raises(NotFoundError):
            desk.get_team("alice", team.id)


class TestMembers:
    def test_roles_after_setup(self, team) -> None:
        assert team.member("bob").role == TeamRole.MEMBER
        assert team.member("carol").role == TeamRole.VIEWER

    def test_member_add_event(self, desk, team, events) -> None:
        desk.add_member("alice", team.id, "dave")
        event = events.recent(limit=1)[0]
        assert event.event_type == EventType.TEAM_MEMBER_ADDED
        assert event.detail == {"user_id": "dave", "role": "member"}

    def test_member_may_invite_but_not_admins(self, desk, team) -> None:
        desk.add_member("bob", team.id, "dave", "member")
        with pytest.raises(PermissionDeniedError):
            desk.add_member("bob", team.id, "erin", "admin")

    def test_viewer_cannot_invite(self, desk, team) -> None:
        with pytest.raises(PermissionDeniedError):
            desk.add_member("carol", team.id, "dave")

    def test_invites_can_be_disabled(self, desk, team) -> None:
        desk.update_team("alice", team.id, {"settings": {"allow_member_invites": False}})
        with pytest.raises(PermissionDeniedError):
            desk.add_member("bob", team.id, "dave")

    def test_duplicate_member(self, desk, team) -> None:
        with pytest.raises(InvalidStateError):
            desk.add_member("alice", team.id, "bob")

    def test_bad_role(self, desk, team) -> None:
        with pytest.raises(ValidationError):
            desk.add_member("alice", team.id, "dave", "owner")

    def test_remove_and_reactivate(self, desk, team) -> None:
        desk.remove_member("alice", team.id, "bob")
        with pytest.raises(NotFoundError):
            desk.get_team("bob", team.id)
        desk.add_member("alice", team.id, "bob", "viewer")
        assert desk.get_team("bob", team.id).member("bob").role == TeamRole.VIEWER

    def test_member_can_leave(self, desk, team) -> None:
        desk.remove_member("bob", team.id, "bob")
        assert not desk.get_team("alice", team.id).is_member("bob")

    def test_member_cannot_remove_others(self, desk, team) -> None:
        with pytest.raises(PermissionDeniedError):
            desk.remove_member("bob", team.id, "carol")

    def test_last_admin_stays(self, desk, team) -> None:
        with pytest.raises(InvalidStateError):
            desk.remove_member("alice", team.id, "alice")


class TestTeamPositions:
    def test_member_creates_with_trade_plan(self, desk, team, events) -> None:
        p = desk.create_position("bob", team.id, _trade())
        assert p.created_by == "bob"
        assert p.strategy == "Pullback"
        assert p.target_price == Decimal("1750")
        assert events.recent(limit=1)[0].event_type == EventType.TEAM_POSITION_CREATED

    def test_viewer_is_read_only(self, desk, team) -> None:
        with pytest.raises(PermissionDeniedError):
            desk.create_position("carol", team.id, _trade())
        p = desk.create_position("bob", team.id, _trade())
        assert [x.id for x in desk.list_positions("carol", team.id)] == [p.id]
        with pytest.raises(PermissionDeniedError):
            desk.update_position("carol", team.id, p.id, {"quantity": 1})

    def test_only_creator_or_admin_edits(self, desk, team) -> None:
        desk.add_member("alice", team.id, "dave")
        p = desk.create_position("bob", team.id, _trade())
        with pytest.raises(PermissionDeniedError):
            desk.close_position("dave", team.id, p.id, 1700, "2024-03-01")
        closed = desk.close_position("alice", team.id, p.id, 1700, "2024-03-01")
        assert closed.pnl == Decimal("2000")

    def test_stats_follow_team_writes(self, desk, team, memory_registry) -> None:
        p = desk.create_position("bob", team.id, _trade())
        desk.close_position("bob", team.id, p.id, 1500, "2024-03-01")
        stats = memory_registry.teams[team.id].stats
        assert stats.total_trades == 1
        assert stats.total_pnl == Decimal("-2000")
        assert stats.win_rate == 0
        desk.delete_position("bob", team.id, p.id)
        assert memory_registry.teams[team.id].stats.total_trades == 0

    def test_outsider_cannot_reach_positions(self, desk, team) -> None:
        p = desk.create_position("bob", team.id, _trade())
        with pytest.raises(NotFoundError):
            desk.get_position("mallory", team.id, p.id)

    def test_summary(self, desk, team) -> None:
        p = desk.create_position("bob", team.id, _trade())
        desk.close_position("bob", team.id, p.id, 1700, "2024-03-01")
        desk.create_position("bob", team.id, _trade(symbol="ITC", entry_price=400, quantity=10))
        summary = desk.summary("carol", team.id)
        assert summary.total_positions == 2
        assert summary.realized_pnl == Decimal("2000")
        assert summary.win_rate == Decimal("100")


class TestVotes:
    def test_one_vote_per_member(self, desk, team, events) -> None:
        p = desk.create_position("bob", team.id, _trade())
        desk.vote("alice", team.id, p.id, {"vote": "buy"})
        desk.vote("carol", team.id, p.id, {"vote": "hold", "comment": "wait"})
        voted = desk.vote("alice", team.id, p.id, {"vote": "sell"})
        assert voted.vote_summary == {"buy": 0, "sell": 1, "hold": 1, "total": 2}
        assert {v.user_id: v.choice for v in voted.votes} == {
            "alice": VoteChoice.SELL, "carol": VoteChoice.HOLD,
        }
        assert events.recent(limit=1)[0].event_type == EventType.VOTE_CAST

    def test_invalid_vote(self, desk, team) -> None:
        p = desk.create_position("bob", team.id, _trade())
        with pytest.raises(ValidationError):
            desk.vote("bob", team.id, p.id, {"vote": "maybe"})

    def test_vote_on_missing_position(self, desk, team) -> None:
        with pytest.raises(NotFoundError):
            desk.vote("bob", team.id, 999, {"vote": "buy"})
