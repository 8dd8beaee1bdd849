"""Personal journal positions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from tradejournal.api.deps import get_positions, get_quotes, get_user_id
from tradejournal.api.routes.shared import CamelModel, position_to_dict
from tradejournal.data.quotes import QuoteProvider
from tradejournal.errors import ValidationError
from tradejournal.ledger.positions import PositionBook
from tradejournal.models.lifecycle import PositionStatus, parse_status
from tradejournal.models.position import Owner

logger = logging.getLogger(__name__)

router = APIRouter()


class PositionRequest(CamelModel):
    symbol: str | None = None
    direction: str | None = None
    entry_price: float | None = None
    quantity: float | None = None
    entry_date: str | None = None
    current_price: float | None = None
    status: str | None = None
    exit_price: float | None = None
    exit_date: str | None = None
    notes: str | None = None
    # team trade plan
    strategy: str | None = None
    risk_level: str | None = None
    target_price: float | None = None
    stop_loss: float | None = None


class ClosePositionRequest(CamelModel):
    exit_price: float | None = None
    exit_date: str | None = None


def status_filter(status: str | None) -> PositionStatus | None:
    if not status:
        return None
    parsed = parse_status(status)
    if parsed is None:
        raise ValidationError.single("status", "Status must be either OPEN or CLOSED")
    return parsed


@router.get("/positions")
def list_positions(
    status: str | None = None,
    symbol: str | None = None,
    month: str | None = None,
    year: int | None = None,
    limit: int | None = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    positions = book.list(
        Owner.user(user_id), status=status_filter(status), symbol=symbol,
        month=month, year=year, limit=limit, offset=offset,
    )
    return {"positions": [position_to_dict(p) for p in positions], "count": len(positions)}


@router.post("/positions", status_code=201)
def create_position(
    body: PositionRequest,
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    position = book.create(Owner.user(user_id), body.supplied(), created_by=user_id)
    return position_to_dict(position)


@router.post("/positions/refresh-prices")
def refresh_prices(
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
    quotes: QuoteProvider = Depends(get_quotes),
) -> dict:
    """Pull fresh quotes for every OPEN position's symbol and re-mark them."""
    owner = Owner.user(user_id)
    symbols = [p.symbol for p in book.list(owner, status=PositionStatus.OPEN)]
    prices = quotes.get_prices(symbols)
    updated = book.mark_prices(owner, prices)
    return {
        "quoted": len(prices),
        "updated": len(updated),
        "positions": [position_to_dict(p) for p in updated],
    }


@router.get("/positions/{position_id}")
def get_position(
    position_id: int,
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    return position_to_dict(book.get(Owner.user(user_id), position_id))


@router.put("/positions/{position_id}")
def update_position(
    position_id: int,
    body: PositionRequest,
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    position = book.update(Owner.user(user_id), position_id, body.supplied())
    return position_to_dict(position)


@router.post("/positions/{position_id}/close")
def close_position(
    position_id: int,
    body: ClosePositionRequest,
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    position = book.close(Owner.user(user_id), position_id, body.exit_price, body.exit_date)
    return position_to_dict(position)


@router.delete("/positions/{position_id}")
def delete_position(
    position_id: int,
    user_id: str = Depends(get_user_id),
    book: PositionBook = Depends(get_positions),
) -> dict:
    book.delete(Owner.user(user_id), position_id)
    return {"ok": True, "id": position_id}
