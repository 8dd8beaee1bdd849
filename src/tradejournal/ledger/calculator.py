"""Price and return arithmetic shared by every write path.

Derived fields are never taken from caller input; each write calls
``refresh_derived`` / ``refresh_focus_derived`` before persisting.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext

from tradejournal.models.focus_stock import FocusStock, PriceSignal
from tradejournal.models.position import Position

HUNDRED = Decimal(100)

# Scale and precision of the NUMERIC(38, 6) columns.
PRICE_QUANTUM = Decimal("0.000001")
STORAGE_CONTEXT = Context(prec=38, rounding=ROUND_HALF_UP)

# Month names are fixed English so buckets do not depend on process locale.
MONTH_NAMES: tuple[str, ...] = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def to_storage(value: Decimal) -> Decimal:
    """Round to the six decimal places the journal stores."""
    return value.quantize(PRICE_QUANTUM, context=STORAGE_CONTEXT)


def investment(entry_price: Decimal, quantity: int | Decimal) -> Decimal:
    return entry_price * quantity


def effective_price(position: Position) -> Decimal:
    if position.exit is not None:
        return position.exit.price
    return position.current_price


def pnl(position: Position) -> Decimal:
    return (effective_price(position) - position.entry_price) * position.quantity


def pnl_percentage(position: Position) -> Decimal:
    return (effective_price(position) - position.entry_price) / position.entry_price * HUNDRED


def potential_return(entry_price: Decimal, target_price: Decimal) -> Decimal:
    return target_price - entry_price


def potential_return_percentage(entry_price: Decimal, target_price: Decimal) -> Decimal:
    if entry_price <= 0:
        return Decimal(0)
    return potential_return(entry_price, target_price) / entry_price * HUNDRED


def risk_reward_ratio(
    entry_price: Decimal, target_price: Decimal, stop_loss_price: Decimal,
) -> Decimal:
    risk = entry_price - stop_loss_price
    if risk <= 0:
        return Decimal(0)
    return (target_price - entry_price) / risk


def price_signal(
    price: Decimal, target_price: Decimal, stop_loss_price: Decimal,
) -> PriceSignal:
    if price >= target_price:
        return PriceSignal.GREEN
    if price <= stop_loss_price:
        return PriceSignal.RED
    return PriceSignal.NEUTRAL


def weighted_average_price(
    old_quantity: int, old_price: Decimal, new_quantity: int, new_price: Decimal,
) -> Decimal:
    """Quantity-weighted mean cost of two lots, rounded to the stored scale."""
    total = old_quantity + new_quantity
    if total <= 0:
        raise ValueError("Combined quantity must be positive")
    return to_storage((old_quantity * old_price + new_quantity * new_price) / total)


def month_bucket(moment: date | datetime) -> tuple[str, int]:
    return MONTH_NAMES[moment.month - 1], moment.year


def month_index(month: str) -> int:
    """1-based position of an English month name, 0 when unknown."""
    try:
        return MONTH_NAMES.index(month) + 1
    except ValueError:
        return 0


def refresh_derived(position: Position) -> Position:
    """Recompute every derived field of ``position`` in place and return it.

    Prices are rounded to the stored scale first so that
    ``total_investment == entry_price * quantity`` still holds once persisted.
    """
    with localcontext(STORAGE_CONTEXT):
        position.entry_price = to_storage(position.entry_price)
        if position.exit is not None:
            position.exit = replace(position.exit, price=to_storage(position.exit.price))
            position.current_price = position.exit.price
        position.current_price = to_storage(position.current_price)
        position.total_investment = investment(position.entry_price, position.quantity)
        position.pnl = pnl(position)
        position.pnl_percentage = to_storage(pnl_percentage(position))
    position.month, position.year = month_bucket(position.entry_date)
    return position


def refresh_focus_derived(stock: FocusStock, now: datetime) -> FocusStock:
    """Recompute a focus stock's return figures, signal and write-time bucket."""
    with localcontext(STORAGE_CONTEXT):
        stock.entry_price = to_storage(stock.entry_price)
        stock.target_price = to_storage(stock.target_price)
        stock.stop_loss_price = to_storage(stock.stop_loss_price)
        stock.current_price = to_storage(stock.current_price)
        stock.potential_return = potential_return(stock.entry_price, stock.target_price)
        stock.potential_return_percentage = to_storage(potential_return_percentage(
            stock.entry_price, stock.target_price,
        ))
        stock.risk_reward_ratio = to_storage(risk_reward_ratio(
            stock.entry_price, stock.target_price, stock.stop_loss_price,
        ))
    stock.signal = price_signal(stock.current_price, stock.target_price, stock.stop_loss_price)
    stock.month, stock.year = month_bucket(now)
    return stock
