"""Focus-stock watchlist endpoints, including conversion into positions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tradejournal.api.deps import get_focus, get_quotes, get_user_id
from tradejournal.api.routes.shared import CamelModel, focus_stock_to_dict
from tradejournal.data.quotes import QuoteProvider
from tradejournal.ledger.focus import FocusStockService
from tradejournal.ledger.reporting import focus_summary
from tradejournal.ledger.validation import parse_tag
from tradejournal.models.position import Owner

router = APIRouter()


class FocusStockRequest(CamelModel):
    symbol: str | None = None
    entry_price: float | None = None
    target_price: float | None = None
    stop_loss_price: float | None = None
    current_price: float | None = None
    date_added: str | None = None
    reason: str | None = None
    notes: str | None = None
    tag: str | None = None
    trade_taken: bool | None = None


class TakeRequest(CamelModel):
    trade_date: str | None = None
    entry_price: float | None = None
    quantity: float | None = None


class TagRequest(CamelModel):
    tag: str | None = None


class PriceRequest(CamelModel):
    current_price: float | None = None


@router.get("/focus-stocks")
def list_focus_stocks(
    trade_taken: bool | None = Query(None, alias="tradeTaken"),
    tag: str | None = None,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    stocks = focus.list(Owner.user(user_id), trade_taken=trade_taken, tag=parse_tag(tag))
    return {"focusStocks": [focus_stock_to_dict(s) for s in stocks], "count": len(stocks)}


@router.get("/focus-stocks/pending")
def pending_focus_stocks(
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    stocks = focus.pending(Owner.user(user_id))
    return {"focusStocks": [focus_stock_to_dict(s) for s in stocks], "count": len(stocks)}


@router.get("/focus-stocks/stats")
def focus_stock_stats(
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    s = focus_summary(focus.list(Owner.user(user_id)))
    return {
        "total": s.total,
        "pending": s.pending,
        "taken": s.taken,
        "green": s.green,
        "red": s.red,
        "neutral": s.neutral,
        "avgPotentialReturnPercentage": float(s.avg_potential_return_percentage),
        "avgRiskReward": float(s.avg_risk_reward),
        "conversionRate": float(s.conversion_rate),
    }


@router.post("/focus-stocks/refresh-prices")
def refresh_focus_prices(
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
    quotes: QuoteProvider = Depends(get_quotes),
) -> dict:
    owner = Owner.user(user_id)
    prices = quotes.get_prices(s.symbol for s in focus.pending(owner))
    updated = focus.mark_prices(owner, prices)
    return {
        "quoted": len(prices),
        "updated": len(updated),
        "focusStocks": [focus_stock_to_dict(s) for s in updated],
    }


@router.post("/focus-stocks", status_code=201)
def create_focus_stock(
    body: FocusStockRequest,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    return focus_stock_to_dict(focus.create(Owner.user(user_id), body.supplied()))


@router.get("/focus-stocks/{stock_id}")
def get_focus_stock(
    stock_id: int,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    return focus_stock_to_dict(focus.get(Owner.user(user_id), stock_id))


@router.put("/focus-stocks/{stock_id}")
def update_focus_stock(
    stock_id: int,
    body: FocusStockRequest,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    return focus_stock_to_dict(focus.update(Owner.user(user_id), stock_id, body.supplied()))


@router.delete("/focus-stocks/{stock_id}")
def delete_focus_stock(
    stock_id: int,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    focus.delete(Owner.user(user_id), stock_id)
    return {"ok": True, "id": stock_id}


@router.put("/focus-stocks/{stock_id}/tag")
def tag_focus_stock(
    stock_id: int,
    body: TagRequest,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    return focus_stock_to_dict(focus.set_tag(Owner.user(user_id), stock_id, body.tag))


@router.put("/focus-stocks/{stock_id}/price")
def price_focus_stock(
    stock_id: int,
    body: PriceRequest,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    return focus_stock_to_dict(focus.mark_price(Owner.user(user_id), stock_id, body.current_price))


@router.post("/focus-stocks/{stock_id}/take")
def take_focus_stock(
    stock_id: int,
    body: TakeRequest,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    """Mark the idea as traded and merge it into the journal."""
    stock = focus.mark_taken(
        Owner.user(user_id), stock_id,
        trade_date=body.trade_date, entry_price=body.entry_price, quantity=body.quantity,
    )
    return focus_stock_to_dict(stock)


@router.post("/focus-stocks/{stock_id}/revert")
def revert_focus_stock(
    stock_id: int,
    user_id: str = Depends(get_user_id),
    focus: FocusStockService = Depends(get_focus),
) -> dict:
    return focus_stock_to_dict(focus.revert_taken(Owner.user(user_id), stock_id))
