from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from tradejournal.models.position import Owner


class FocusTag(StrEnum):
    MONITOR = "monitor"
    WATCH = "watch"
    WORKED = "worked"
    FAILED = "failed"
    MISSED = "missed"


class PriceSignal(StrEnum):
    GREEN = "green"
    RED = "red"
    NEUTRAL = "neutral"


@dataclass
class FocusStock:
    owner: Owner
    symbol: str
    entry_price: Decimal  # reference price when the idea was logged
    target_price: Decimal
    stop_loss_price: Decimal
    current_price: Decimal
    date_added: date
    reason: str = ""
    notes: str = ""
    tag: FocusTag | None = None
    trade_taken: bool = False
    trade_date: date | None = None
    traded_quantity: int | None = None
    traded_entry_price: Decimal | None = None
    # derived
    potential_return: Decimal = Decimal(0)
    potential_return_percentage: Decimal = Decimal(0)
    risk_reward_ratio: Decimal = Decimal(0)
    signal: PriceSignal = PriceSignal.NEUTRAL
    month: str = ""
    year: int = 0
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_consistent(self) -> bool:
        """Taken stocks must carry the trade date and the merged quantity."""
        if not self.trade_taken:
            return True
        return self.trade_date is not None and (self.traded_quantity or 0) >= 1

    def to_fields(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "target_price": self.target_price,
            "stop_loss_price": self.stop_loss_price,
            "current_price": self.current_price,
            "date_added": self.date_added,
            "reason": self.reason,
            "notes": self.notes,
            "tag": self.tag.value if self.tag else None,
        }
