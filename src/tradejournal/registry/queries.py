from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

from tradejournal.models.focus_stock import FocusStock, FocusTag, PriceSignal
from tradejournal.models.lifecycle import PositionStatus
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
from tradejournal.registry.db import Database, Transaction

logger = logging.getLogger(__name__)


def _dec(value: object) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal(0)


def _opt_dec(value: object) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class Registry:
    """Query layer bridging journal models and the journal schema."""

    def __init__(self, db: Database | Transaction) -> None:
        self._db = db

    @contextmanager
    def transaction(self) -> Iterator[Registry]:
        """Yield a Registry whose statements all commit or roll back together."""
        if isinstance(self._db, Transaction):
            # already inside a unit of work
            yield self
            return
        with self._db.transaction() as tx:
            yield Registry(tx)

    def health_check(self) -> bool:
        if isinstance(self._db, Transaction):
            return True
        return self._db.health_check()

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def insert_position(self, position: Position) -> Position:
        """Insert a position and return it with its id and timestamps."""
        rows = self._db.execute(
            "INSERT INTO journal.positions "
            "(owner_kind, owner_id, symbol, direction, entry_price, quantity, entry_date, "
            "current_price, status, exit_price, exit_date, notes, created_by, strategy, "
            "risk_level, target_price, stop_loss, total_investment, pnl, pnl_percentage, "
            "month, year) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, "
            "%s, %s, %s, %s, %s) "
            "RETURNING id, created_at, updated_at",
            (
                position.owner.kind.value, position.owner.id, position.symbol,
                position.direction.value, position.entry_price, position.quantity,
                position.entry_date, position.current_price, position.status.value,
                position.exit_price, position.exit_date, position.notes,
                position.created_by, position.strategy, position.risk_level.value,
                position.target_price, position.stop_loss, position.total_investment,
                position.pnl, position.pnl_percentage, position.month, position.year,
            ),
        )
        position.id = rows[0]["id"]
        position.created_at = rows[0]["created_at"]
        position.updated_at = rows[0]["updated_at"]
        return position

    def update_position(self, position: Position) -> Position:
        """Overwrite every mutable column of an existing position."""
        rows = self._db.execute(
            "UPDATE journal.positions SET "
            "symbol = %s, direction = %s, entry_price = %s, quantity = %s, entry_date = %s, "
            "current_price = %s, status = %s, exit_price = %s, exit_date = %s, notes = %s, "
            "strategy = %s, risk_level = %s, target_price = %s, stop_loss = %s, "
            "total_investment = %s, pnl = %s, pnl_percentage = %s, month = %s, year = %s, "
            "updated_at = NOW() "
            "WHERE id = %s AND owner_kind = %s AND owner_id = %s "
            "RETURNING updated_at",
            (
                position.symbol, position.direction.value, position.entry_price,
                position.quantity, position.entry_date, position.current_price,
                position.status.value, position.exit_price, position.exit_date,
                position.notes, position.strategy, position.risk_level.value,
                position.target_price, position.stop_loss, position.total_investment,
                position.pnl, position.pnl_percentage, position.month, position.year,
                position.id, position.owner.kind.value, position.owner.id,
            ),
        )
        if rows:
            position.updated_at = rows[0]["updated_at"]
        return position

    def delete_position(self, owner: Owner, position_id: int) -> bool:
        rows = self._db.execute(
            "DELETE FROM journal.positions "
            "WHERE id = %s AND owner_kind = %s AND owner_id = %s RETURNING id",
            (position_id, owner.kind.value, owner.id),
        )
        return bool(rows)

    def get_position(self, owner: Owner, position_id: int) -> Position | None:
        """Get a single position scoped to its owner, votes included."""
        rows = self._db.execute(
            "SELECT * FROM journal.positions "
            "WHERE id = %s AND owner_kind = %s AND owner_id = %s",
            (position_id, owner.kind.value, owner.id),
        )
        if not rows:
            return None
        position = self._row_to_position(rows[0])
        self._attach_votes([position])
        return position

    def list_positions(
        self,
        owner: Owner,
        status: PositionStatus | None = None,
        symbol: str | None = None,
        month: str | None = None,
        year: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Position]:
        """Owner's positions, newest entry first, with optional filters."""
        clauses = ["owner_kind = %s", "owner_id = %s"]
        params: list = [owner.kind.value, owner.id]
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)
        if symbol:
            clauses.append("symbol = %s")
            params.append(symbol.strip().upper())
        if month:
            clauses.append("month = %s")
            params.append(month)
        if year is not None:
            clauses.append("year = %s")
            params.append(year)
        query = (
            f"SELECT * FROM journal.positions WHERE {' AND '.join(clauses)} "
            "ORDER BY entry_date DESC, id DESC"
        )
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        if offset:
            query += " OFFSET %s"
            params.append(offset)
        rows = self._db.execute(query, tuple(params))
        positions = [self._row_to_position(r) for r in rows]
        self._attach_votes(positions)
        return positions

    def find_position_by_symbol(self, owner: Owner, symbol: str) -> Position | None:
        """Most recent position for a symbol, OPEN ones preferred."""
        rows = self._db.execute(
            "SELECT * FROM journal.positions "
            "WHERE owner_kind = %s AND owner_id = %s AND symbol = %s "
            "ORDER BY (status = 'OPEN') DESC, created_at DESC, id DESC LIMIT 1",
            (owner.kind.value, owner.id, symbol.strip().upper()),
        )
        if not rows:
            return None
        return self._row_to_position(rows[0])

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def upsert_vote(self, position_id: int, vote: Vote) -> None:
        """Record a member's vote, replacing any earlier one."""
        self._db.execute(
            "INSERT INTO journal.position_votes (position_id, user_id, vote, comment, voted_at) "
            "VALUES (%s, %s, %s, %s, NOW()) "
            "ON CONFLICT (position_id, user_id) DO UPDATE SET "
            "vote = EXCLUDED.vote, comment = EXCLUDED.comment, voted_at = NOW()",
            (position_id, vote.user_id, vote.choice.value, vote.comment),
        )

    def _attach_votes(self, positions: list[Position]) -> None:
        team_ids = [p.id for p in positions if p.owner.is_team and p.id is not None]
        if not team_ids:
            return
        rows = self._db.execute(
            "SELECT position_id, user_id, vote, comment, voted_at "
            "FROM journal.position_votes WHERE position_id = ANY(%s) "
            "ORDER BY voted_at",
            (team_ids,),
        )
        by_position: dict[int, list[Vote]] = {}
        for r in rows:
            by_position.setdefault(r["position_id"], []).append(Vote(
                user_id=r["user_id"],
                choice=VoteChoice(r["vote"]),
                comment=r["comment"] or "",
                voted_at=r["voted_at"],
            ))
        for p in positions:
            p.votes = by_position.get(p.id, [])

    # ------------------------------------------------------------------
    # Focus stocks
    # ------------------------------------------------------------------

    def insert_focus_stock(self, stock: FocusStock) -> FocusStock:
        rows = self._db.execute(
            "INSERT INTO journal.focus_stocks "
            "(owner_kind, owner_id, symbol, entry_price, target_price, stop_loss_price, "
            "current_price, date_added, reason, notes, tag, trade_taken, trade_date, "
            "traded_quantity, traded_entry_price, potential_return, "
            "potential_return_percentage, risk_reward_ratio, signal, month, year) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, "
            "%s, %s, %s, %s) "
            "RETURNING id, created_at, updated_at",
            (
                stock.owner.kind.value, stock.owner.id, stock.symbol, stock.entry_price,
                stock.target_price, stock.stop_loss_price, stock.current_price,
                stock.date_added, stock.reason, stock.notes,
                stock.tag.value if stock.tag else None, stock.trade_taken,
                stock.trade_date, stock.traded_quantity, stock.traded_entry_price,
                stock.potential_return, stock.potential_return_percentage,
                stock.risk_reward_ratio, stock.signal.value, stock.month, stock.year,
            ),
        )
        stock.id = rows[0]["id"]
        stock.created_at = rows[0]["created_at"]
        stock.updated_at = rows[0]["updated_at"]
        return stock

    def update_focus_stock(self, stock: FocusStock) -> FocusStock:
        rows = self._db.execute(
            "UPDATE journal.focus_stocks SET "
            "symbol = %s, entry_price = %s, target_price = %s, stop_loss_price = %s, "
            "current_price = %s, date_added = %s, reason = %s, notes = %s, tag = %s, "
            "trade_taken = %s, trade_date = %s, traded_quantity = %s, "
            "traded_entry_price = %s, potential_return = %s, "
            "potential_return_percentage = %s, risk_reward_ratio = %s, signal = %s, "
            "month = %s, year = %s, updated_at = NOW() "
            "WHERE id = %s AND owner_kind = %s AND owner_id = %s "
            "RETURNING updated_at",
            (
                stock.symbol, stock.entry_price, stock.target_price, stock.stop_loss_price,
                stock.current_price, stock.date_added, stock.reason, stock.notes,
                stock.tag.value if stock.tag else None, stock.trade_taken,
                stock.trade_date, stock.traded_quantity, stock.traded_entry_price,
                stock.potential_return, stock.potential_return_percentage,
                stock.risk_reward_ratio, stock.signal.value, stock.month, stock.year,
                stock.id, stock.owner.kind.value, stock.owner.id,
            ),
        )
        if rows:
            stock.updated_at = rows[0]["updated_at"]
        return stock

    def delete_focus_stock(self, owner: Owner, stock_id: int) -> bool:
        rows = self._db.execute(
            "DELETE FROM journal.focus_stocks "
            "WHERE id = %s AND owner_kind = %s AND owner_id = %s RETURNING id",
            (stock_id, owner.kind.value, owner.id),
        )
        return bool(rows)

    def get_focus_stock(
        self, owner: Owner, stock_id: int, for_update: bool = False,
    ) -> FocusStock | None:
        """Get a focus stock; ``for_update`` locks the row until the transaction ends."""
        query = (
            "SELECT * FROM journal.focus_stocks "
            "WHERE id = %s AND owner_kind = %s AND owner_id = %s"
        )
        if for_update:
            query += " FOR UPDATE"
        rows = self._db.execute(query, (stock_id, owner.kind.value, owner.id))
        if not rows:
            return None
        return self._row_to_focus_stock(rows[0])

    def list_focus_stocks(
        self, owner: Owner, trade_taken: bool | None = None, tag: FocusTag | None = None,
    ) -> list[FocusStock]:
        clauses = ["owner_kind = %s", "owner_id = %s"]
        params: list = [owner.kind.value, owner.id]
        if trade_taken is not None:
            clauses.append("trade_taken = %s")
            params.append(trade_taken)
        if tag is not None:
            clauses.append("tag = %s")
            params.append(tag.value)
        rows = self._db.execute(
            f"SELECT * FROM journal.focus_stocks WHERE {' AND '.join(clauses)} "
            "ORDER BY date_added DESC, id DESC",
            tuple(params),
        )
        return [self._row_to_focus_stock(r) for r in rows]

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def insert_team(self, team: Team) -> Team:
        """Insert a team together with its initial roster."""
        rows = self._db.execute(
            "INSERT INTO journal.teams "
            "(name, description, created_by, is_private, allow_member_invites, "
            "require_approval, is_active) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s) RETURNING id, created_at",
            (
                team.name, team.description, team.created_by, team.settings.is_private,
                team.settings.allow_member_invites, team.settings.require_approval,
                team.is_active,
            ),
        )
        team.id = rows[0]["id"]
        team.created_at = rows[0]["created_at"]
        for member in team.members:
            self.upsert_team_member(team.id, member)
        return team

    def update_team(self, team: Team) -> None:
        self._db.execute(
            "UPDATE journal.teams SET name = %s, description = %s, is_private = %s, "
            "allow_member_invites = %s, require_approval = %s, is_active = %s "
            "WHERE id = %s",
            (
                team.name, team.description, team.settings.is_private,
                team.settings.allow_member_invites, team.settings.require_approval,
                team.is_active, team.id,
            ),
        )

    def get_team(self, team_id: int) -> Team | None:
        rows = self._db.execute("SELECT * FROM journal.teams WHERE id = %s", (team_id,))
        if not rows:
            return None
        team = self._row_to_team(rows[0])
        team.members = self._get_team_members(team_id)
        return team

    def list_teams_for_user(self, user_id: str) -> list[Team]:
        """Active teams the user is an active member of."""
        rows = self._db.execute(
            "SELECT t.* FROM journal.teams t "
            "JOIN journal.team_members m ON m.team_id = t.id "
            "WHERE m.user_id = %s AND m.is_active = TRUE AND t.is_active = TRUE "
            "ORDER BY t.created_at DESC",
            (user_id,),
        )
        teams = [self._row_to_team(r) for r in rows]
        for team in teams:
            team.members = self._get_team_members(team.id)
        return teams

    def team_name_exists(self, name: str, exclude_id: int | None = None) -> bool:
        rows = self._db.execute(
            "SELECT id FROM journal.teams WHERE LOWER(name) = LOWER(%s)",
            (name,),
        )
        return any(r["id"] != exclude_id for r in rows)

    def upsert_team_member(self, team_id: int, member: TeamMember) -> None:
        self._db.execute(
            "INSERT INTO journal.team_members (team_id, user_id, role, is_active, joined_at) "
            "VALUES (%s, %s, %s, %s, COALESCE(%s, NOW())) "
            "ON CONFLICT (team_id, user_id) DO UPDATE SET "
            "role = EXCLUDED.role, is_active = EXCLUDED.is_active",
            (team_id, member.user_id, member.role.value, member.is_active, member.joined_at),
        )

    def _get_team_members(self, team_id: int) -> list[TeamMember]:
        rows = self._db.execute(
            "SELECT user_id, role, is_active, joined_at FROM journal.team_members "
            "WHERE team_id = %s ORDER BY joined_at",
            (team_id,),
        )
        return [
            TeamMember(
                user_id=r["user_id"],
                role=TeamRole(r["role"]),
                is_active=r["is_active"],
                joined_at=r["joined_at"],
            )
            for r in rows
        ]

    def update_team_stats(self, team_id: int, stats: TeamStats) -> None:
        self._db.execute(
            "UPDATE journal.teams SET total_trades = %s, total_pnl = %s, "
            "winning_trades = %s, win_rate = %s WHERE id = %s",
            (stats.total_trades, stats.total_pnl, stats.winning_trades, stats.win_rate, team_id),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_position(r: dict) -> Position:
        exit_fill = None
        if r["status"] == PositionStatus.CLOSED.value and r.get("exit_price") is not None:
            exit_fill = ExitFill(price=_dec(r["exit_price"]), date=r["exit_date"])
        return Position(
            owner=Owner(OwnerKind(r["owner_kind"]), r["owner_id"]),
            symbol=r["symbol"],
            direction=Direction(r["direction"]),
            entry_price=_dec(r["entry_price"]),
            quantity=int(r["quantity"]),
            entry_date=r["entry_date"],
            current_price=_dec(r["current_price"]),
            exit=exit_fill,
            notes=r["notes"] or "",
            created_by=r.get("created_by"),
            strategy=r.get("strategy") or "",
            risk_level=RiskLevel(r.get("risk_level") or RiskLevel.MEDIUM.value),
            target_price=_opt_dec(r.get("target_price")),
            stop_loss=_opt_dec(r.get("stop_loss")),
            total_investment=_dec(r["total_investment"]),
            pnl=_dec(r["pnl"]),
            pnl_percentage=_dec(r["pnl_percentage"]),
            month=r["month"],
            year=r["year"],
            id=r["id"],
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )

    @staticmethod
    def _row_to_focus_stock(r: dict) -> FocusStock:
        return FocusStock(
            owner=Owner(OwnerKind(r["owner_kind"]), r["owner_id"]),
            symbol=r["symbol"],
            entry_price=_dec(r["entry_price"]),
            target_price=_dec(r["target_price"]),
            stop_loss_price=_dec(r["stop_loss_price"]),
            current_price=_dec(r["current_price"]),
            date_added=r["date_added"],
            reason=r["reason"] or "",
            notes=r["notes"] or "",
            tag=FocusTag(r["tag"]) if r.get("tag") else None,
            trade_taken=r["trade_taken"],
            trade_date=r.get("trade_date"),
            traded_quantity=r.get("traded_quantity"),
            traded_entry_price=_opt_dec(r.get("traded_entry_price")),
            potential_return=_dec(r["potential_return"]),
            potential_return_percentage=_dec(r["potential_return_percentage"]),
            risk_reward_ratio=_dec(r["risk_reward_ratio"]),
            signal=PriceSignal(r["signal"]),
            month=r["month"],
            year=r["year"],
            id=r["id"],
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )

    @staticmethod
    def _row_to_team(r: dict) -> Team:
        return Team(
            name=r["name"],
            created_by=r["created_by"],
            description=r["description"] or "",
            settings=TeamSettings(
                is_private=r["is_private"],
                allow_member_invites=r["allow_member_invites"],
                require_approval=r["require_approval"],
            ),
            stats=TeamStats(
                total_trades=r["total_trades"],
                total_pnl=_dec(r["total_pnl"]),
                winning_trades=r["winning_trades"],
                win_rate=_dec(r["win_rate"]),
            ),
            is_active=r["is_active"],
            id=r["id"],
            created_at=r.get("created_at"),
        )
