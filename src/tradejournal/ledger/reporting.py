"""Read-side aggregation over a single owner's positions and focus stocks.

Everything here is a pure function of its input collection, so repeated
calls without intervening writes return identical figures.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from tradejournal.ledger.calculator import HUNDRED, month_index
from tradejournal.models.focus_stock import FocusStock, PriceSignal
from tradejournal.models.position import Position
from tradejournal.models.team import TeamStats

ZERO = Decimal(0)


@dataclass
class PositionSummary:
    total_positions: int = 0
    open_positions: int = 0
    closed_positions: int = 0
    total_investment: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    avg_closed_pnl_percentage: Decimal = ZERO
    winning_trades: int = 0
    win_rate: Decimal = ZERO


@dataclass
class MonthlyBucket:
    month: str
    year: int
    total_pnl: Decimal
    trade_count: int
    avg_pnl_percentage: Decimal


@dataclass
class FocusSummary:
    total: int = 0
    pending: int = 0
    taken: int = 0
    green: int = 0
    red: int = 0
    neutral: int = 0
    avg_potential_return_percentage: Decimal = ZERO
    avg_risk_reward: Decimal = ZERO
    conversion_rate: Decimal = ZERO


def win_rate(winning: int, closed: int) -> Decimal:
    if closed == 0:
        return ZERO
    return Decimal(winning) / Decimal(closed) * HUNDRED


def summarize(positions: Iterable[Position]) -> PositionSummary:
    summary = PositionSummary()
    closed_pct_total = ZERO
    for p in positions:
        summary.total_positions += 1
        summary.total_investment += p.total_investment
        if p.is_closed:
            summary.closed_positions += 1
            summary.realized_pnl += p.pnl
            closed_pct_total += p.pnl_percentage
            if p.pnl > 0:
                summary.winning_trades += 1
        else:
            # open positions contribute nothing to realized P&L
            summary.open_positions += 1
            summary.unrealized_pnl += p.pnl

    if summary.closed_positions:
        summary.avg_closed_pnl_percentage = closed_pct_total / summary.closed_positions
    summary.win_rate = win_rate(summary.winning_trades, summary.closed_positions)
    return summary


def monthly_breakdown(positions: Iterable[Position], year: int | None = None) -> list[MonthlyBucket]:
    """Realized P&L of closed positions per entry month, oldest first."""
    buckets: dict[tuple[int, int], list[Position]] = {}
    names: dict[tuple[int, int], str] = {}
    for p in positions:
        if not p.is_closed:
            continue
        if year is not None and p.year != year:
            continue
        key = (p.year, month_index(p.month))
        buckets.setdefault(key, []).append(p)
        names[key] = p.month

    result: list[MonthlyBucket] = []
    for key in sorted(buckets):
        group = buckets[key]
        total_pnl = sum((p.pnl for p in group), ZERO)
        avg_pct = sum((p.pnl_percentage for p in group), ZERO) / len(group)
        result.append(MonthlyBucket(
            month=names[key],
            year=key[0],
            total_pnl=total_pnl,
            trade_count=len(group),
            avg_pnl_percentage=avg_pct,
        ))
    return result


def team_stats(positions: Iterable[Position]) -> TeamStats:
    summary = summarize(positions)
    return TeamStats(
        total_trades=summary.total_positions,
        total_pnl=summary.realized_pnl,
        winning_trades=summary.winning_trades,
        win_rate=summary.win_rate,
    )


def focus_summary(stocks: Iterable[FocusStock]) -> FocusSummary:
    summary = FocusSummary()
    pending_returns: list[Decimal] = []
    ratios: list[Decimal] = []
    for s in stocks:
        summary.total += 1
        if s.trade_taken:
            summary.taken += 1
        else:
            summary.pending += 1
            pending_returns.append(s.potential_return_percentage)
        if s.signal == PriceSignal.GREEN:
            summary.green += 1
        elif s.signal == PriceSignal.RED:
            summary.red += 1
        else:
            summary.neutral += 1
        ratios.append(s.risk_reward_ratio)

    if pending_returns:
        summary.avg_potential_return_percentage = sum(pending_returns, ZERO) / len(pending_returns)
    if ratios:
        summary.avg_risk_reward = sum(ratios, ZERO) / len(ratios)
    if summary.total:
        summary.conversion_rate = Decimal(summary.taken) / Decimal(summary.total) * HUNDRED
    return summary
