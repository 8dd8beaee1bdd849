"""Teams, rosters, team positions and votes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tradejournal.api.deps import get_teams, get_user_id
from tradejournal.api.routes.positions import (
    ClosePositionRequest,
    PositionRequest,
    status_filter,
)
from tradejournal.api.routes.shared import CamelModel, position_to_dict, team_to_dict
from tradejournal.api.routes.stats import summary_to_dict
from tradejournal.ledger.teams import TeamDesk

router = APIRouter()


class TeamSettingsRequest(CamelModel):
    is_private: bool | None = None
    allow_member_invites: bool | None = None
    require_approval: bool | None = None


class TeamRequest(CamelModel):
    name: str | None = None
    description: str | None = None
    settings: TeamSettingsRequest | None = None


class MemberRequest(CamelModel):
    user_id: str
    role: str = "member"


class VoteRequest(CamelModel):
    vote: str | None = None
    comment: str | None = None


@router.get("/teams")
def list_teams(
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    teams = desk.list_teams(user_id)
    return {"teams": [team_to_dict(t) for t in teams], "count": len(teams)}


@router.post("/teams", status_code=201)
def create_team(
    body: TeamRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return team_to_dict(desk.create_team(user_id, body.supplied()))


@router.get("/teams/{team_id}")
def get_team(
    team_id: int,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return team_to_dict(desk.get_team(user_id, team_id))


@router.put("/teams/{team_id}")
def update_team(
    team_id: int,
    body: TeamRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return team_to_dict(desk.update_team(user_id, team_id, body.supplied()))


@router.delete("/teams/{team_id}")
def archive_team(
    team_id: int,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    desk.archive_team(user_id, team_id)
    return {"ok": True, "id": team_id}


@router.post("/teams/{team_id}/members")
def add_member(
    team_id: int,
    body: MemberRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return team_to_dict(desk.add_member(user_id, team_id, body.user_id, body.role))


@router.delete("/teams/{team_id}/members/{member_id}")
def remove_member(
    team_id: int,
    member_id: str,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return team_to_dict(desk.remove_member(user_id, team_id, member_id))


@router.get("/teams/{team_id}/stats")
def team_stats(
    team_id: int,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return summary_to_dict(desk.summary(user_id, team_id))


@router.get("/teams/{team_id}/positions")
def list_team_positions(
    team_id: int,
    status: str | None = None,
    symbol: str | None = None,
    limit: int | None = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    positions = desk.list_positions(
        user_id, team_id, status=status_filter(status), symbol=symbol, limit=limit, offset=offset,
    )
    return {"positions": [position_to_dict(p) for p in positions], "count": len(positions)}


@router.post("/teams/{team_id}/positions", status_code=201)
def create_team_position(
    team_id: int,
    body: PositionRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return position_to_dict(desk.create_position(user_id, team_id, body.supplied()))


@router.get("/teams/{team_id}/positions/{position_id}")
def get_team_position(
    team_id: int,
    position_id: int,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    return position_to_dict(desk.get_position(user_id, team_id, position_id))


@router.put("/teams/{team_id}/positions/{position_id}")
def update_team_position(
    team_id: int,
    position_id: int,
    body: PositionRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    position = desk.update_position(user_id, team_id, position_id, body.supplied())
    return position_to_dict(position)


@router.post("/teams/{team_id}/positions/{position_id}/close")
def close_team_position(
    team_id: int,
    position_id: int,
    body: ClosePositionRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    position = desk.close_position(
        user_id, team_id, position_id, body.exit_price, body.exit_date,
    )
    return position_to_dict(position)


@router.delete("/teams/{team_id}/positions/{position_id}")
def delete_team_position(
    team_id: int,
    position_id: int,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    desk.delete_position(user_id, team_id, position_id)
    return {"ok": True, "id": position_id}


@router.post("/teams/{team_id}/positions/{position_id}/vote")
def vote_on_position(
    team_id: int,
    position_id: int,
    body: VoteRequest,
    user_id: str = Depends(get_user_id),
    desk: TeamDesk = Depends(get_teams),
) -> dict:
    position = desk.vote(user_id, team_id, position_id, body.supplied())
    return position_to_dict(position)
