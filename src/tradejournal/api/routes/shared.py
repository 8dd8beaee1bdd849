"""Shared utilities for API route handlers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tradejournal.models.focus_stock import FocusStock
from tradejournal.models.position import Position
from tradejournal.models.team import Team


class CamelModel(BaseModel):
    """Request body accepting camelCase keys (snake_case also works)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def supplied(self) -> dict:
        """Only the keys the client actually sent, snake_case."""
        return self.model_dump(exclude_unset=True)


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def position_to_dict(p: Position) -> dict:
    data = {
        "id": p.id,
        "ownerType": p.owner.kind.value,
        "ownerId": p.owner.id,
        "symbol": p.symbol,
        "direction": p.direction.value,
        "status": p.status.value,
        "entryPrice": float(p.entry_price),
        "quantity": p.quantity,
        "entryDate": _iso(p.entry_date),
        "currentPrice": float(p.current_price),
        "exitPrice": _num(p.exit_price),
        "exitDate": _iso(p.exit_date),
        "notes": p.notes,
        "totalInvestment": float(p.total_investment),
        "pnl": float(p.pnl),
        "pnlPercentage": float(p.pnl_percentage),
        "month": p.month,
        "year": p.year,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }
    if p.owner.is_team:
        data.update({
            "createdBy": p.created_by,
            "strategy": p.strategy,
            "riskLevel": p.risk_level.value,
            "targetPrice": _num(p.target_price),
            "stopLoss": _num(p.stop_loss),
            "votes": [
                {
                    "userId": v.user_id,
                    "vote": v.choice.value,
                    "comment": v.comment,
                    "votedAt": _iso(v.voted_at),
                }
                for v in p.votes
            ],
            "voteSummary": p.vote_summary,
        })
    return data


def focus_stock_to_dict(s: FocusStock) -> dict:
    return {
        "id": s.id,
        "symbol": s.symbol,
        "entryPrice": float(s.entry_price),
        "targetPrice": float(s.target_price),
        "stopLossPrice": float(s.stop_loss_price),
        "currentPrice": float(s.current_price),
        "dateAdded": _iso(s.date_added),
        "reason": s.reason,
        "notes": s.notes,
        "tag": s.tag.value if s.tag else None,
        "tradeTaken": s.trade_taken,
        "tradeDate": _iso(s.trade_date),
        "tradedQuantity": s.traded_quantity,
        "tradedEntryPrice": _num(s.traded_entry_price),
        "potentialReturn": float(s.potential_return),
        "potentialReturnPercentage": float(s.potential_return_percentage),
        "riskRewardRatio": float(s.risk_reward_ratio),
        "signal": s.signal.value,
        "month": s.month,
        "year": s.year,
        "createdAt": _iso(s.created_at),
        "updatedAt": _iso(s.updated_at),
    }


def team_to_dict(t: Team) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "createdBy": t.created_by,
        "isActive": t.is_active,
        "members": [
            {
                "userId": m.user_id,
                "role": m.role.value,
                "joinedAt": _iso(m.joined_at),
            }
            for m in t.active_members
        ],
        "settings": {
            "isPrivate": t.settings.is_private,
            "allowMemberInvites": t.settings.allow_member_invites,
            "requireApproval": t.settings.require_approval,
        },
        "stats": {
            "totalTrades": t.stats.total_trades,
            "totalPnl": float(t.stats.total_pnl),
            "winningTrades": t.stats.winning_trades,
            "winRate": float(t.stats.win_rate),
        },
        "createdAt": _iso(t.created_at),
    }
