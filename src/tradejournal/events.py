from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from tradejournal.models.position import Owner

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    POSITION_CREATED = "POSITION_CREATED"
    POSITION_UPDATED = "POSITION_UPDATED"
    POSITION_CLOSED = "POSITION_CLOSED"
    POSITION_DELETED = "POSITION_DELETED"
    FOCUS_STOCK_CONVERTED = "FOCUS_STOCK_CONVERTED"
    FOCUS_STOCK_REVERTED = "FOCUS_STOCK_REVERTED"
    TEAM_POSITION_CREATED = "TEAM_POSITION_CREATED"
    TEAM_MEMBER_ADDED = "TEAM_MEMBER_ADDED"
    VOTE_CAST = "VOTE_CAST"


@dataclass
class JournalEvent:
    event_type: EventType
    owner: Owner
    entity_id: int | None
    symbol: str | None = None
    detail: dict | None = None
    timestamp: datetime = field(default_factory=datetime.now)


Subscriber = Callable[[JournalEvent], None]


class EventBus:
    """Fans semantic events out to subscribers (e.g. a notification centre).

    A failing subscriber is logged and skipped; publishing never raises
    into the write that produced the event.
    """

    def __init__(self, history: int = 200) -> None:
        self._subscribers: list[Subscriber] = []
        self._recent: deque[JournalEvent] = deque(maxlen=history)

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, event: JournalEvent) -> None:
        logger.debug(
            "Event %s owner=%s:%s id=%s symbol=%s",
            event.event_type, event.owner.kind, event.owner.id,
            event.entity_id, event.symbol,
        )
        self._recent.append(event)
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception:
                logger.warning("Event subscriber failed for %s", event.event_type, exc_info=True)

    def recent(self, owner: Owner | None = None, limit: int = 50) -> list[JournalEvent]:
        """Most recent events first, optionally filtered to one owner."""
        events = [e for e in reversed(self._recent) if owner is None or e.owner == owner]
        return events[:limit]
