"""Shared fixtures: a fixed clock and an in-memory stand-in for Registry.

``MemoryRegistry`` mirrors the Registry method surface over plain dicts.
``transaction()`` snapshots every table and restores it if the block
raises, which is what the service tests rely on to check rollback.
"""

from __future__ import annotations

import copy
import itertools
from contextlib import contextmanager
from datetime import datetime

import pytest

from tradejournal.events import EventBus
from tradejournal.ledger.focus import FocusStockService
from tradejournal.ledger.positions import PositionBook
from tradejournal.ledger.teams import TeamDesk
from tradejournal.models.focus_stock import FocusStock, FocusTag
from tradejournal.models.lifecycle import PositionStatus
from tradejournal.models.position import Owner, Position, Vote
from tradejournal.models.team import Team, TeamMember, TeamStats

NOW = datetime(2024, 3, 15, 10, 30)


class SimulatedFailure(RuntimeError):
    pass


class MemoryRegistry:
    def __init__(self) -> None:
        self.healthy = True
        self.positions: dict[int, Position] = {}
        self.focus_stocks: dict[int, FocusStock] = {}
        self.teams: dict[int, Team] = {}
        self.votes: dict[tuple[int, str], Vote] = {}
        self._ids = itertools.count(1)
        self.fail_on: str | None = None
        self.locked: list[int] = []
        self.transactions = 0

    def health_check(self) -> bool:
        return self.healthy

    def _check(self, name: str) -> None:
        if self.fail_on == name:
            raise SimulatedFailure(f"simulated failure in {name}")

    @contextmanager
    def transaction(self):
        self.transactions += 1
        snapshot = copy.deepcopy((self.positions, self.focus_stocks, self.teams, self.votes))
        try:
            yield self
        except BaseException:
            self.positions, self.focus_stocks, self.teams, self.votes = snapshot
            raise

    # positions

    def insert_position(self, position: Position) -> Position:
        self._check("insert_position")
        position.id = next(self._ids)
        position.created_at = position.updated_at = NOW
        self.positions[position.id] = copy.deepcopy(position)
        return position

    def update_position(self, position: Position) -> Position:
        self._check("update_position")
        stored = self.positions.get(position.id)
        if stored is not None and stored.owner == position.owner:
            self.positions[position.id] = copy.deepcopy(position)
        return position

    def delete_position(self, owner: Owner, position_id: int) -> bool:
        self._check("delete_position")
        stored = self.positions.get(position_id)
        if stored is None or stored.owner != owner:
            return False
        del self.positions[position_id]
        return True

    def _with_votes(self, position: Position) -> Position:
        p = copy.deepcopy(position)
        p.votes = [copy.deepcopy(v) for (pid, _), v in self.votes.items() if pid == p.id]
        return p

    def get_position(self, owner: Owner, position_id: int) -> Position | None:
        stored = self.positions.get(position_id)
        if stored is None or stored.owner != owner:
            return None
        return self._with_votes(stored)

    def list_positions(
        self, owner, status=None, symbol=None, month=None, year=None, limit=None, offset=0,
    ) -> list[Position]:
        rows = [p for p in self.positions.values() if p.owner == owner]
        if status is not None:
            rows = [p for p in rows if p.status == status]
        if symbol:
            rows = [p for p in rows if p.symbol == symbol.strip().upper()]
        if month:
            rows = [p for p in rows if p.month == month]
        if year is not None:
            rows = [p for p in rows if p.year == year]
        rows.sort(key=lambda p: (p.entry_date, p.id), reverse=True)
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return [self._with_votes(p) for p in rows]

    def find_position_by_symbol(self, owner: Owner, symbol: str) -> Position | None:
        self._check("find_position_by_symbol")
        rows = [
            p for p in self.positions.values()
            if p.owner == owner and p.symbol == symbol.strip().upper()
        ]
        if not rows:
            return None
        rows.sort(key=lambda p: (p.status == PositionStatus.OPEN, p.id), reverse=True)
        return copy.deepcopy(rows[0])

    def upsert_vote(self, position_id: int, vote: Vote) -> None:
        vote = copy.deepcopy(vote)
        vote.voted_at = NOW
        self.votes[(position_id, vote.user_id)] = vote

    # focus stocks

    def insert_focus_stock(self, stock: FocusStock) -> FocusStock:
        stock.id = next(self._ids)
        stock.created_at = stock.updated_at = NOW
        self.focus_stocks[stock.id] = copy.deepcopy(stock)
        return stock

    def update_focus_stock(self, stock: FocusStock) -> FocusStock:
        self._check("update_focus_stock")
        stored = self.focus_stocks.get(stock.id)
        if stored is not None and stored.owner == stock.owner:
            self.focus_stocks[stock.id] = copy.deepcopy(stock)
        return stock

    def delete_focus_stock(self, owner: Owner, stock_id: int) -> bool:
        stored = self.focus_stocks.get(stock_id)
        if stored is None or stored.owner != owner:
            return False
        del self.focus_stocks[stock_id]
        return True

    def get_focus_stock(self, owner: Owner, stock_id: int, for_update: bool = False):
        stored = self.focus_stocks.get(stock_id)
        if stored is None or stored.owner != owner:
            return None
        if for_update:
            self.locked.append(stock_id)
        return copy.deepcopy(stored)

    def list_focus_stocks(self, owner, trade_taken=None, tag: FocusTag | None = None):
        rows = [s for s in self.focus_stocks.values() if s.owner == owner]
        if trade_taken is not None:
            rows = [s for s in rows if s.trade_taken == trade_taken]
        if tag is not None:
            rows = [s for s in rows if s.tag == tag]
        rows.sort(key=lambda s: (s.date_added, s.id), reverse=True)
        return [copy.deepcopy(s) for s in rows]

    # teams

    def insert_team(self, team: Team) -> Team:
        team.id = next(self._ids)
        team.created_at = NOW
        self.teams[team.id] = copy.deepcopy(team)
        return team

    def update_team(self, team: Team) -> None:
        stored = self.teams[team.id]
        stored.name = team.name
        stored.description = team.description
        stored.settings = copy.deepcopy(team.settings)
        stored.is_active = team.is_active

    def get_team(self, team_id: int) -> Team | None:
        stored = self.teams.get(team_id)
        return copy.deepcopy(stored) if stored else None

    def list_teams_for_user(self, user_id: str) -> list[Team]:
        return [
            copy.deepcopy(t) for t in self.teams.values()
            if t.is_active and t.is_member(user_id)
        ]

    def team_name_exists(self, name: str, exclude_id: int | None = None) -> bool:
        return any(
            t.name.lower() == name.lower() and t.id != exclude_id for t in self.teams.values()
        )

    def upsert_team_member(self, team_id: int, member: TeamMember) -> None:
        stored = self.teams[team_id]
        existing = stored.member(member.user_id)
        if existing is None:
            stored.members.append(copy.deepcopy(member))
        else:
            existing.role = member.role
            existing.is_active = member.is_active

    def update_team_stats(self, team_id: int, stats: TeamStats) -> None:
        self._check("update_team_stats")
        self.teams[team_id].stats = copy.deepcopy(stats)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def memory_registry() -> MemoryRegistry:
    return MemoryRegistry()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def book(memory_registry, events, clock) -> PositionBook:
    return PositionBook(memory_registry, events, clock=clock)


@pytest.fixture
def focus(memory_registry, events, clock) -> FocusStockService:
    return FocusStockService(memory_registry, events, clock=clock)


@pytest.fixture
def desk(memory_registry, book, events, clock) -> TeamDesk:
    return TeamDesk(memory_registry, book, events, clock=clock)


@pytest.fixture
def alice() -> Owner:
    return Owner.user("alice")
