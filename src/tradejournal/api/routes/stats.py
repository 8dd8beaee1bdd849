"""Journal statistics: overall summary and month-by-month realized P&L."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tradejournal.api.deps import get_positions, get_user_id
from tradejournal.ledger.positions import PositionBook
from tradejournal.ledger.reporting import PositionSummary, monthly_breakdown, summarize
from tradejournal.models.position import Owner

router = APIRouter()


def summary_to_dict(s: PositionSummary) -> dict:
    return {
        "totalPositions": s.total_positions,
        "openPositions": s.open_positions,
        "closedPositions": s.closed_positions,
        "totalInvestment": float(s.total_investment),
        "realizedPnl": float(s.realized_pnl),
        "unrealizedPnl": float(s.unrealized_pnl),
        "avgClosedPnlPercentage": float(s.avg_closed_pnl_percentage),
        "winningTrades": s.winning_trades,
        "winRate": float(s.win_rate),
    }


@router.get("/stats/summary")
def stats_summary(
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    return summary_to_dict(summarize(book.list(Owner.user(user_id))))


@router.get("/stats/monthly")
def stats_monthly(
    year: int | None = None,
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    buckets = monthly_breakdown(book.list(Owner.user(user_id)), year=year)
    return {
        "months": [
            {
                "month": b.month,
                "year": b.year,
                "totalPnl": float(b.total_pnl),
                "tradeCount": b.trade_count,
                "avgPnlPercentage": float(b.avg_pnl_percentage),
            }
            for b in buckets
        ],
    }
