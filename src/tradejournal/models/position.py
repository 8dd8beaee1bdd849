from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from tradejournal.models.lifecycle import PositionStatus


class OwnerKind(StrEnum):
    USER = "user"
    TEAM = "team"


class Direction(StrEnum):
    BUY = "BUY"
    SELL = "SELL"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VoteChoice(StrEnum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass(frozen=True)
class Owner:
    kind: OwnerKind
    id: str

    @classmethod
    def user(cls, user_id: str) -> Owner:
        return cls(OwnerKind.USER, str(user_id))

    @classmethod
    def team(cls, team_id: int | str) -> Owner:
        return cls(OwnerKind.TEAM, str(team_id))

    @property
    def is_team(self) -> bool:
        return self.kind == OwnerKind.TEAM


@dataclass(frozen=True)
class ExitFill:
    """Exit leg of a closed position. Present exactly when the position is CLOSED."""

    price: Decimal
    date: date


@dataclass
class Vote:
    user_id: str
    choice: VoteChoice
    comment: str = ""
    voted_at: datetime | None = None


@dataclass
class Position:
    owner: Owner
    symbol: str
    entry_price: Decimal
    quantity: int
    entry_date: date
    current_price: Decimal
    direction: Direction = Direction.BUY
    exit: ExitFill | None = None
    notes: str = ""
    created_by: str | None = None
    # team trade plan
    strategy: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    target_price: Decimal | None = None
    stop_loss: Decimal | None = None
    votes: list[Vote] = field(default_factory=list)
    # derived, recomputed on every write
    total_investment: Decimal = Decimal(0)
    pnl: Decimal = Decimal(0)
    pnl_percentage: Decimal = Decimal(0)
    month: str = ""
    year: int = 0
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def status(self) -> PositionStatus:
        return PositionStatus.CLOSED if self.exit is not None else PositionStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.exit is not None

    @property
    def exit_price(self) -> Decimal | None:
        return self.exit.price if self.exit else None

    @property
    def exit_date(self) -> date | None:
        return self.exit.date if self.exit else None

    @property
    def vote_summary(self) -> dict[str, int]:
        summary = {choice.value: 0 for choice in VoteChoice}
        for vote in self.votes:
            summary[vote.choice.value] += 1
        summary["total"] = len(self.votes)
        return summary

    def to_fields(self) -> dict[str, object]:
        """Editable fields as a raw mapping, the shape the validator consumes."""
        return {
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "quantity": self.quantity,
            "entry_date": self.entry_date,
            "current_price": self.current_price,
            "status": self.status.value,
            "exit_price": self.exit_price,
            "exit_date": self.exit_date,
            "notes": self.notes,
            "strategy": self.strategy,
            "risk_level": self.risk_level.value,
            "target_price": self.target_price,
            "stop_loss": self.stop_loss,
        }
