"""Position lifecycle: create, edit, close, delete and mark-to-market.

Every write validates the full proposed state, recomputes the derived
figures and persists in one statement, so the stored record always
satisfies the CLOSED-has-exit and investment/P&L rules.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal

from tradejournal.errors import InvalidStateError, NotFoundError
from tradejournal.events import EventBus, EventType, JournalEvent
from tradejournal.ledger.calculator import refresh_derived
from tradejournal.ledger.reporting import team_stats
from tradejournal.ledger.validation import (
    MAX_PRICE,
    MAX_SYMBOL_LENGTH,
    PositionTerms,
    is_blank,
    parse_position,
)
from tradejournal.models.lifecycle import (
    CLOSE_TRANSITIONS,
    PositionStatus,
    validate_transition,
)
from tradejournal.models.position import Owner, Position
from tradejournal.registry.queries import Registry

logger = logging.getLogger(__name__)


def build_position(
    owner: Owner, terms: PositionTerms, created_by: str | None = None,
) -> Position:
    """Fresh, unsaved position from validated terms with derived fields filled."""
    position = Position(
        owner=owner,
        symbol=terms.symbol,
        direction=terms.direction,
        entry_price=terms.entry_price,
        quantity=terms.quantity,
        entry_date=terms.entry_date,
        current_price=terms.current_price if terms.current_price is not None else terms.entry_price,
        exit=terms.exit,
        notes=terms.notes,
        created_by=created_by,
        strategy=terms.strategy,
        risk_level=terms.risk_level,
        target_price=terms.target_price,
        stop_loss=terms.stop_loss,
    )
    return refresh_derived(position)


def apply_terms(position: Position, terms: PositionTerms) -> Position:
    """Copy validated terms onto an existing position and recompute."""
    position.symbol = terms.symbol
    position.direction = terms.direction
    position.entry_price = terms.entry_price
    position.quantity = terms.quantity
    position.entry_date = terms.entry_date
    if terms.current_price is not None:
        position.current_price = terms.current_price
    position.exit = terms.exit
    position.notes = terms.notes
    position.strategy = terms.strategy
    position.risk_level = terms.risk_level
    position.target_price = terms.target_price
    position.stop_loss = terms.stop_loss
    return refresh_derived(position)


def refresh_team_stats(registry: Registry, owner: Owner) -> None:
    """Recompute and store a team's aggregate stats from all its positions."""
    if not owner.is_team:
        return
    stats = team_stats(registry.list_positions(owner))
    registry.update_team_stats(int(owner.id), stats)
    logger.debug(
        "Team %s stats: trades=%d pnl=%s win_rate=%s",
        owner.id, stats.total_trades, stats.total_pnl, stats.win_rate,
    )


class PositionBook:
    """Position CRUD for one owner scope at a time (a user or a team)."""

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

    def _publish(self, event_type: EventType, position: Position, detail: dict | None = None) -> None:
        self._events.publish(JournalEvent(
            event_type=event_type,
            owner=position.owner,
            entity_id=position.id,
            symbol=position.symbol,
            detail=detail,
            timestamp=self._clock(),
        ))

    def _load(self, owner: Owner, position_id: int) -> Position:
        position = self._registry.get_position(owner, position_id)
        if position is None:
            raise NotFoundError("Position", position_id)
        return position

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self, owner: Owner, fields: Mapping[str, object], created_by: str | None = None,
    ) -> Position:
        terms = parse_position(fields, self._today(), self._max_symbol_length)
        position = build_position(owner, terms, created_by)
        position = self._registry.insert_position(position)
        refresh_team_stats(self._registry, owner)
        logger.info(
            "Created position %s %s x%d @ %s (%s:%s)",
            position.id, position.symbol, position.quantity, position.entry_price,
            owner.kind, owner.id,
        )
        event_type = EventType.TEAM_POSITION_CREATED if owner.is_team else EventType.POSITION_CREATED
        self._publish(event_type, position)
        return position

    def update(self, owner: Owner, position_id: int, changes: Mapping[str, object]) -> Position:
        """Merge ``changes`` over the stored fields and re-validate the whole record.

        A blank quantity keeps the stored one.
        """
        position = self._load(owner, position_id)
        proposed = position.to_fields()
        proposed.update({
            key: value for key, value in changes.items()
            if not (key == "quantity" and is_blank(value))
        })
        terms = parse_position(proposed, self._today(), self._max_symbol_length)
        previous = position.status
        apply_terms(position, terms)
        position = self._registry.update_position(position)
        refresh_team_stats(self._registry, owner)
        logger.info("Updated position %s %s (%s)", position.id, position.symbol, position.status)

        if previous == PositionStatus.OPEN and position.is_closed:
            self._publish(EventType.POSITION_CLOSED, position)
        else:
            self._publish(EventType.POSITION_UPDATED, position)
        return position

    def close(
        self, owner: Owner, position_id: int, exit_price: object, exit_date: object,
    ) -> Position:
        position = self._load(owner, position_id)
        if not validate_transition(position.status, PositionStatus.CLOSED, CLOSE_TRANSITIONS):
            raise InvalidStateError(f"Position {position_id} is already closed")

        proposed = position.to_fields()
        proposed.update({
            "status": PositionStatus.CLOSED.value,
            "exit_price": exit_price,
            "exit_date": exit_date,
        })
        terms = parse_position(proposed, self._today(), self._max_symbol_length)
        apply_terms(position, terms)
        position = self._registry.update_position(position)
        refresh_team_stats(self._registry, owner)
        logger.info(
            "Closed position %s %s @ %s, pnl=%s",
            position.id, position.symbol, position.exit_price, position.pnl,
        )
        self._publish(EventType.POSITION_CLOSED, position, {"pnl": str(position.pnl)})
        return position

    def delete(self, owner: Owner, position_id: int) -> None:
        position = self._load(owner, position_id)
        if not self._registry.delete_position(owner, position_id):
            raise NotFoundError("Position", position_id)
        refresh_team_stats(self._registry, owner)
        logger.info("Deleted position %s %s", position_id, position.symbol)
        self._publish(EventType.POSITION_DELETED, position)

    def mark_prices(self, owner: Owner, quotes: Mapping[str, Decimal]) -> list[Position]:
        """Apply quotes to the owner's OPEN positions; returns those that changed.

        Symbols without a quote keep their last known price.
        """
        updated: list[Position] = []
        for position in self._registry.list_positions(owner, status=PositionStatus.OPEN):
            price = quotes.get(position.symbol)
            if price is None or not 0 < price < MAX_PRICE or price == position.current_price:
                continue
            position.current_price = price
            refresh_derived(position)
            updated.append(self._registry.update_position(position))
        if updated:
            refresh_team_stats(self._registry, owner)
            logger.info("Marked %d open positions for %s:%s", len(updated), owner.kind, owner.id)
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, owner: Owner, position_id: int) -> Position:
        return self._load(owner, position_id)

    def list(
        self,
        owner: Owner,
        status: PositionStatus | None = None,
        symbol: str | None = None,
        month: str | None = None,
        year: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Position]:
        return self._registry.list_positions(
            owner, status=status, symbol=symbol, month=month, year=year,
            limit=limit, offset=offset,
        )
