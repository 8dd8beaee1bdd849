"""Focus-stock watchlist and its conversion into journal positions.

``mark_taken`` folds a watched idea into the owner's position for the same
symbol (quantity-weighted average cost) or opens a new one; ``revert_taken``
undoes it. Both run as a single datastore transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal

from tradejournal.errors import (
    ConsistencyError,
    InvalidStateError,
    JournalError,
    NotFoundError,
    ValidationError,
)
from tradejournal.events import EventBus, EventType, JournalEvent
from tradejournal.ledger.calculator import (
    refresh_derived,
    refresh_focus_derived,
    weighted_average_price,
)
from tradejournal.ledger.positions import build_position, refresh_team_stats
from tradejournal.ledger.validation import (
    MAX_PRICE,
    MAX_QUANTITY,
    MAX_SYMBOL_LENGTH,
    parse_focus_stock,
    parse_position,
    parse_price,
    parse_tag,
    parse_take,
)
from tradejournal.models.focus_stock import FocusStock, FocusTag
from tradejournal.models.lifecycle import PositionStatus
from tradejournal.models.position import Direction, Owner
from tradejournal.registry.queries import Registry

logger = logging.getLogger(__name__)

NOTES_PREFIX = "From Focus Stock: "


class FocusStockService:
    def __init__(
        self,
        registry: Registry,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
        max_symbol_length: int = MAX_SYMBOL_LENGTH,
    ) -> None:
        self._registry = registry
        self._events = events or EventBus()
        self._clock = clock
        self._max_symbol_length = max_symbol_length

    def _today(self) -> date:
        return self._clock().date()

    def _load(self, registry: Registry, owner: Owner, stock_id: int, lock: bool = False) -> FocusStock:
        stock = registry.get_focus_stock(owner, stock_id, for_update=lock)
        if stock is None:
            raise NotFoundError("Focus stock", stock_id)
        return stock

    # ------------------------------------------------------------------
    # Watchlist CRUD
    # ------------------------------------------------------------------

    def create(self, owner: Owner, fields: Mapping[str, object]) -> FocusStock:
        terms = parse_focus_stock(fields, self._today(), self._max_symbol_length)
        stock = FocusStock(
            owner=owner,
            symbol=terms.symbol,
            entry_price=terms.entry_price,
            target_price=terms.target_price,
            stop_loss_price=terms.stop_loss_price,
            current_price=terms.current_price,
            date_added=terms.date_added,
            reason=terms.reason,
            notes=terms.notes,
            tag=terms.tag,
        )
        refresh_focus_derived(stock, self._clock())
        stock = self._registry.insert_focus_stock(stock)
        logger.info("Added focus stock %s %s (%s:%s)", stock.id, stock.symbol, owner.kind, owner.id)
        return stock

    def update(self, owner: Owner, stock_id: int, changes: Mapping[str, object]) -> FocusStock:
        """Edit watchlist fields. The taken flag only moves via mark_taken/revert_taken.

        The symbol cannot change while the stock is taken.
        """
        stock = self._load(self._registry, owner, stock_id)
        if "trade_taken" in changes and bool(changes["trade_taken"]) != stock.trade_taken:
            raise InvalidStateError("Use mark_taken or revert_taken to change trade_taken")

        proposed = stock.to_fields()
        proposed.update(changes)
        terms = parse_focus_stock(proposed, self._today(), self._max_symbol_length)
        if stock.trade_taken and terms.symbol != stock.symbol:
            raise InvalidStateError(
                f"Focus stock {stock_id} is marked as taken; revert it before changing the symbol",
            )
        stock.symbol = terms.symbol
        stock.entry_price = terms.entry_price
        stock.target_price = terms.target_price
        stock.stop_loss_price = terms.stop_loss_price
        stock.current_price = terms.current_price
        stock.date_added = terms.date_added
        stock.reason = terms.reason
        stock.notes = terms.notes
        stock.tag = terms.tag
        refresh_focus_derived(stock, self._clock())
        stock = self._registry.update_focus_stock(stock)
        logger.info("Updated focus stock %s %s", stock.id, stock.symbol)
        return stock

    def delete(self, owner: Owner, stock_id: int) -> None:
        if not self._registry.delete_focus_stock(owner, stock_id):
            raise NotFoundError("Focus stock", stock_id)
        logger.info("Deleted focus stock %s", stock_id)

    def get(self, owner: Owner, stock_id: int) -> FocusStock:
        return self._load(self._registry, owner, stock_id)

    def list(
        self, owner: Owner, trade_taken: bool | None = None, tag: FocusTag | None = None,
    ) -> list[FocusStock]:
        return self._registry.list_focus_stocks(owner, trade_taken=trade_taken, tag=tag)

    def pending(self, owner: Owner) -> list[FocusStock]:
        return self._registry.list_focus_stocks(owner, trade_taken=False)

    def set_tag(self, owner: Owner, stock_id: int, tag: object) -> FocusStock:
        parsed = parse_tag(tag)
        stock = self._load(self._registry, owner, stock_id)
        stock.tag = parsed
        return self._registry.update_focus_stock(stock)

    def mark_price(self, owner: Owner, stock_id: int, price: object) -> FocusStock:
        value = parse_price(price)
        stock = self._load(self._registry, owner, stock_id)
        stock.current_price = value
        refresh_focus_derived(stock, self._clock())
        return self._registry.update_focus_stock(stock)

    def mark_prices(self, owner: Owner, quotes: Mapping[str, Decimal]) -> list[FocusStock]:
        """Apply quotes to pending focus stocks; returns those that changed."""
        updated: list[FocusStock] = []
        for stock in self.pending(owner):
            price = quotes.get(stock.symbol)
            if price is None or not 0 < price < MAX_PRICE or price == stock.current_price:
                continue
            stock.current_price = price
            refresh_focus_derived(stock, self._clock())
            updated.append(self._registry.update_focus_stock(stock))
        return updated

    # ------------------------------------------------------------------
    # Conversion into positions
    # ------------------------------------------------------------------

    def mark_taken(
        self,
        owner: Owner,
        stock_id: int,
        trade_date: object,
        entry_price: object = None,
        quantity: object = None,
    ) -> FocusStock:
        """Record that the idea was traded and merge it into the journal.

        Quantity defaults to 1 and entry price to the stock's current price.
        An existing position for the symbol absorbs the lot at a weighted
        average cost; otherwise a new OPEN BUY position is opened.
        """
        take = parse_take(
            {"trade_date": trade_date, "entry_price": entry_price, "quantity": quantity},
            self._today(),
        )
        merged_into: int | None = None
        created = False
        try:
            with self._registry.transaction() as tx:
                stock = self._load(tx, owner, stock_id, lock=True)
                if stock.trade_taken:
                    raise InvalidStateError(f"Focus stock {stock_id} is already marked as taken")

                price = take.entry_price if take.entry_price is not None else stock.current_price
                qty = take.quantity if take.quantity is not None else 1

                position = tx.find_position_by_symbol(owner, stock.symbol)
                if position is None:
                    terms = parse_position(
                        {
                            "symbol": stock.symbol,
                            "entry_price": price,
                            "quantity": qty,
                            "entry_date": take.trade_date,
                            "status": PositionStatus.OPEN.value,
                            "direction": Direction.BUY.value,
                            "current_price": stock.current_price,
                            "notes": f"{NOTES_PREFIX}{stock.reason}",
                        },
                        self._today(),
                        self._max_symbol_length,
                    )
                    position = tx.insert_position(build_position(owner, terms, created_by=owner.id))
                    created = True
                else:
                    if position.quantity + qty > MAX_QUANTITY:
                        raise ValidationError.single(
                            "quantity", f"Merged quantity cannot exceed {MAX_QUANTITY}",
                        )
                    position.entry_price = weighted_average_price(
                        position.quantity, position.entry_price, qty, price,
                    )
                    position.quantity += qty
                    refresh_derived(position)
                    tx.update_position(position)
                merged_into = position.id

                stock.trade_taken = True
                stock.trade_date = take.trade_date
                stock.traded_quantity = qty
                stock.traded_entry_price = price
                refresh_focus_derived(stock, self._clock())
                stock = tx.update_focus_stock(stock)
                refresh_team_stats(tx, owner)
        except JournalError:
            raise
        except Exception as exc:
            logger.exception("mark_taken failed for focus stock %s", stock_id)
            raise ConsistencyError(
                f"Could not convert focus stock {stock_id}; no changes were saved",
            ) from exc

        logger.info(
            "Focus stock %s %s taken: %d @ %s into position %s (%s)",
            stock.id, stock.symbol, qty, price, merged_into, "new" if created else "merged",
        )
        self._events.publish(JournalEvent(
            event_type=EventType.FOCUS_STOCK_CONVERTED,
            owner=owner,
            entity_id=stock.id,
            symbol=stock.symbol,
            detail={"position_id": merged_into, "created": created, "quantity": qty},
            timestamp=self._clock(),
        ))
        return stock

    def revert_taken(self, owner: Owner, stock_id: int) -> FocusStock:
        """Undo mark_taken.

        The traded quantity comes back off the position (deleting it when
        nothing would remain). The entry price is left as is; the weighted
        average is not unwound.
        """
        removed = False
        position_id: int | None = None
        try:
            with self._registry.transaction() as tx:
                stock = self._load(tx, owner, stock_id, lock=True)
                if not stock.trade_taken:
                    raise InvalidStateError(f"Focus stock {stock_id} is not marked as taken")

                traded = stock.traded_quantity or 0
                position = tx.find_position_by_symbol(owner, stock.symbol)
                if position is not None:
                    position_id = position.id
                    if position.quantity > traded:
                        position.quantity -= traded
                        refresh_derived(position)
                        tx.update_position(position)
                    else:
                        tx.delete_position(owner, position.id)
                        removed = True
                else:
                    logger.warning(
                        "No %s position found while reverting focus stock %s",
                        stock.symbol, stock_id,
                    )

                stock.trade_taken = False
                stock.trade_date = None
                stock.traded_quantity = None
                stock.traded_entry_price = None
                refresh_focus_derived(stock, self._clock())
                stock = tx.update_focus_stock(stock)
                refresh_team_stats(tx, owner)
        except JournalError:
            raise
        except Exception as exc:
            logger.exception("revert_taken failed for focus stock %s", stock_id)
            raise ConsistencyError(
                f"Could not revert focus stock {stock_id}; no changes were saved",
            ) from exc

        logger.info("Focus stock %s %s reverted (position %s removed=%s)",
                    stock.id, stock.symbol, position_id, removed)
        self._events.publish(JournalEvent(
            event_type=EventType.FOCUS_STOCK_REVERTED,
            owner=owner,
            entity_id=stock.id,
            symbol=stock.symbol,
            detail={"position_id": position_id, "removed": removed},
            timestamp=self._clock(),
        ))
        return stock
