"""Status-conditioned validation for positions, focus stocks and votes.

Checks run in a fixed order and stop at the first failure. The public
``validate_*`` functions return a list of ``FieldError`` (empty when valid)
and never raise for malformed input; the ``parse_*`` variants raise
``ValidationError`` and hand back normalized terms on success.

"Today" is always passed in so the checks stay deterministic.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from tradejournal.errors import FieldError, ValidationError
from tradejournal.ledger.calculator import PRICE_QUANTUM
from tradejournal.models.focus_stock import FocusTag
from tradejournal.models.lifecycle import PositionStatus, parse_status
from tradejournal.models.position import Direction, ExitFill, RiskLevel, VoteChoice

MAX_SYMBOL_LENGTH = 20
MAX_NOTES_LENGTH = 500
MAX_REASON_LENGTH = 200
MAX_STRATEGY_LENGTH = 100
MAX_COMMENT_LENGTH = 200
MAX_TEAM_NAME_LENGTH = 100
# Column limits: prices are NUMERIC(20, 6), quantities INTEGER.
PRICE_PLACES = 6
MAX_PRICE = Decimal(10) ** 14
MAX_QUANTITY = 2**31 - 1


class _Rejected(Exception):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.error = FieldError(field, message)


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_decimal(value: object) -> Decimal | None:
    """Parse a finite number. Booleans, blanks and junk give None."""
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    else:
        return None
    return result if result.is_finite() else None


def to_int(value: object) -> int | None:
    number = to_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def to_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _number(fields: Mapping[str, object], key: str, label: str, *, required: bool) -> Decimal | None:
    raw = fields.get(key)
    if is_blank(raw):
        if required:
            raise _Rejected(key, f"{label} is required")
        return None
    value = to_decimal(raw)
    if value is None:
        raise _Rejected(key, f"{label} must be a number")
    if value <= 0:
        raise _Rejected(key, f"{label} must be greater than 0")
    return _storable(key, label, value)


def _storable(key: str, label: str, value: Decimal) -> Decimal:
    if value >= MAX_PRICE:
        raise _Rejected(key, f"{label} must be less than {MAX_PRICE}")
    if value != value.quantize(PRICE_QUANTUM):
        raise _Rejected(key, f"{label} cannot have more than {PRICE_PLACES} decimal places")
    return value


def _quantity(raw: object) -> int:
    quantity = to_int(raw)
    if quantity is None:
        raise _Rejected("quantity", "Quantity must be a whole number")
    if quantity < 1:
        raise _Rejected("quantity", "Quantity must be at least 1")
    if quantity > MAX_QUANTITY:
        raise _Rejected("quantity", f"Quantity cannot exceed {MAX_QUANTITY}")
    return quantity


def parse_price(value: object, key: str = "current_price", label: str = "Current price") -> Decimal:
    """A single positive price within the stored range."""
    try:
        return _number({key: value}, key, label, required=True)
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None


def _day(fields: Mapping[str, object], key: str, label: str, *, required: bool) -> date | None:
    raw = fields.get(key)
    if is_blank(raw):
        if required:
            raise _Rejected(key, f"{label} is required")
        return None
    value = to_date(raw)
    if value is None:
        raise _Rejected(key, f"{label} must be a valid date")
    return value


def _text(fields: Mapping[str, object], key: str, label: str, limit: int) -> str:
    raw = fields.get(key)
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise _Rejected(key, f"{label} must be text")
    text = raw.strip()
    if len(text) > limit:
        raise _Rejected(key, f"{label} cannot exceed {limit} characters")
    return text


def _symbol(fields: Mapping[str, object], max_length: int) -> str:
    raw = fields.get("symbol")
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise _Rejected("symbol", "Symbol is required")
    if not isinstance(raw, str):
        raise _Rejected("symbol", "Symbol must be text")
    symbol = raw.strip().upper()
    if len(symbol) > max_length:
        raise _Rejected("symbol", f"Symbol cannot exceed {max_length} characters")
    return symbol


def _choice(fields: Mapping[str, object], key: str, label: str, enum_cls: type, default):
    raw = fields.get(key)
    if is_blank(raw):
        return default
    if isinstance(raw, enum_cls):
        return raw
    if isinstance(raw, str):
        for member in enum_cls:
            if member.value.lower() == raw.strip().lower():
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise _Rejected(key, f"{label} must be one of: {allowed}")


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


@dataclass
class PositionTerms:
    """Validated, normalized inputs for a position write."""

    symbol: str
    direction: Direction
    entry_price: Decimal
    quantity: int
    entry_date: date
    current_price: Decimal | None
    exit: ExitFill | None
    notes: str = ""
    strategy: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    target_price: Decimal | None = None
    stop_loss: Decimal | None = None

    @property
    def status(self) -> PositionStatus:
        return PositionStatus.CLOSED if self.exit is not None else PositionStatus.OPEN


def _check_position(
    fields: Mapping[str, object], today: date, max_symbol_length: int,
) -> PositionTerms:
    # 1. symbol
    symbol = _symbol(fields, max_symbol_length)

    # 2. price and size
    entry_price = _number(fields, "entry_price", "Entry price", required=True)
    raw_qty = fields.get("quantity")
    quantity = 1 if is_blank(raw_qty) else _quantity(raw_qty)

    # 3. entry date
    entry_date = _day(fields, "entry_date", "Entry date", required=True)
    if entry_date > today:
        raise _Rejected("entry_date", "Entry date cannot be in the future")

    status_raw = fields.get("status")
    if is_blank(status_raw):
        status = PositionStatus.OPEN
    else:
        status = parse_status(status_raw)
        if status is None:
            raise _Rejected("status", "Status must be either OPEN or CLOSED")
    direction = _choice(fields, "direction", "Direction", Direction, Direction.BUY)

    # 4. closed positions carry a complete exit leg
    exit_fill: ExitFill | None = None
    if status == PositionStatus.CLOSED:
        raw_exit = fields.get("exit_price")
        if is_blank(raw_exit):
            raise _Rejected("exit_price", "Exit price is required for closed positions")
        exit_price = _number(fields, "exit_price", "Exit price", required=True)
        exit_date = _day(fields, "exit_date", "Exit date", required=False)
        if exit_date is None:
            raise _Rejected("exit_date", "Exit date is required for closed positions")
        if exit_date < entry_date:
            raise _Rejected("exit_date", "Exit date cannot be before entry date")
        if exit_date > today:
            raise _Rejected("exit_date", "Exit date cannot be in the future")
        exit_fill = ExitFill(price=exit_price, date=exit_date)
    # 5. open positions drop whatever exit fields came along

    current_price = _number(fields, "current_price", "Current price", required=False)
    notes = _text(fields, "notes", "Notes", MAX_NOTES_LENGTH)
    strategy = _text(fields, "strategy", "Strategy", MAX_STRATEGY_LENGTH)
    risk_level = _choice(fields, "risk_level", "Risk level", RiskLevel, RiskLevel.MEDIUM)
    target_price = _number(fields, "target_price", "Target price", required=False)
    stop_loss = _number(fields, "stop_loss", "Stop loss", required=False)

    return PositionTerms(
        symbol=symbol,
        direction=direction,
        entry_price=entry_price,
        quantity=quantity,
        entry_date=entry_date,
        current_price=current_price,
        exit=exit_fill,
        notes=notes,
        strategy=strategy,
        risk_level=risk_level,
        target_price=target_price,
        stop_loss=stop_loss,
    )


def validate_position(
    fields: Mapping[str, object], today: date, max_symbol_length: int = MAX_SYMBOL_LENGTH,
) -> list[FieldError]:
    try:
        _check_position(fields, today, max_symbol_length)
    except _Rejected as exc:
        return [exc.error]
    return []


def parse_position(
    fields: Mapping[str, object], today: date, max_symbol_length: int = MAX_SYMBOL_LENGTH,
) -> PositionTerms:
    try:
        return _check_position(fields, today, max_symbol_length)
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None


# ---------------------------------------------------------------------------
# Focus stocks
# ---------------------------------------------------------------------------


@dataclass
class FocusTerms:
    symbol: str
    entry_price: Decimal
    target_price: Decimal
    stop_loss_price: Decimal
    current_price: Decimal
    date_added: date
    reason: str
    notes: str
    tag: FocusTag | None


def _check_focus(fields: Mapping[str, object], today: date, max_symbol_length: int) -> FocusTerms:
    symbol = _symbol(fields, max_symbol_length)
    entry_price = _number(fields, "entry_price", "Entry price", required=True)
    target_price = _number(fields, "target_price", "Target price", required=True)

    raw_stop = fields.get("stop_loss_price")
    if is_blank(raw_stop):
        stop_loss_price = Decimal(0)
    else:
        stop_loss_price = to_decimal(raw_stop)
        if stop_loss_price is None:
            raise _Rejected("stop_loss_price", "Stop loss price must be a number")
        if stop_loss_price < 0:
            raise _Rejected("stop_loss_price", "Stop loss price cannot be negative")
        _storable("stop_loss_price", "Stop loss price", stop_loss_price)

    current_price = _number(fields, "current_price", "Current price", required=False)

    reason = _text(fields, "reason", "Reason", MAX_REASON_LENGTH)
    if not reason:
        raise _Rejected("reason", "Reason is required")
    notes = _text(fields, "notes", "Notes", MAX_NOTES_LENGTH)

    date_added = _day(fields, "date_added", "Date added", required=False) or today
    if date_added > today:
        raise _Rejected("date_added", "Date added cannot be in the future")

    raw_tag = fields.get("tag")
    tag = None if is_blank(raw_tag) else _choice(fields, "tag", "Tag", FocusTag, None)

    return FocusTerms(
        symbol=symbol,
        entry_price=entry_price,
        target_price=target_price,
        stop_loss_price=stop_loss_price,
        current_price=current_price if current_price is not None else entry_price,
        date_added=date_added,
        reason=reason,
        notes=notes,
        tag=tag,
    )


def validate_focus_stock(
    fields: Mapping[str, object], today: date, max_symbol_length: int = MAX_SYMBOL_LENGTH,
) -> list[FieldError]:
    try:
        _check_focus(fields, today, max_symbol_length)
    except _Rejected as exc:
        return [exc.error]
    return []


def parse_focus_stock(
    fields: Mapping[str, object], today: date, max_symbol_length: int = MAX_SYMBOL_LENGTH,
) -> FocusTerms:
    try:
        return _check_focus(fields, today, max_symbol_length)
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None


@dataclass
class TakeTerms:
    trade_date: date
    entry_price: Decimal | None
    quantity: int | None


def parse_take(fields: Mapping[str, object], today: date) -> TakeTerms:
    """Inputs for converting a focus stock into a position."""
    try:
        trade_date = _day(fields, "trade_date", "Trade date", required=True)
        if trade_date > today:
            raise _Rejected("trade_date", "Trade date cannot be in the future")
        entry_price = _number(fields, "entry_price", "Entry price", required=False)
        quantity = None
        if not is_blank(fields.get("quantity")):
            quantity = _quantity(fields.get("quantity"))
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None
    return TakeTerms(trade_date=trade_date, entry_price=entry_price, quantity=quantity)


def parse_tag(value: object) -> FocusTag | None:
    if is_blank(value):
        return None
    try:
        return _choice({"tag": value}, "tag", "Tag", FocusTag, None)
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


def parse_vote(fields: Mapping[str, object]) -> tuple[VoteChoice, str]:
    try:
        if is_blank(fields.get("vote")):
            raise _Rejected("vote", "Vote is required")
        choice = _choice(fields, "vote", "Vote", VoteChoice, None)
        comment = _text(fields, "comment", "Comment", MAX_COMMENT_LENGTH)
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None
    return choice, comment


def validate_vote(fields: Mapping[str, object]) -> list[FieldError]:
    try:
        parse_vote(fields)
    except ValidationError as exc:
        return exc.errors
    return []


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


def parse_team(fields: Mapping[str, object]) -> tuple[str, str]:
    """Team name (required) and description."""
    try:
        name = _text(fields, "name", "Team name", MAX_TEAM_NAME_LENGTH)
        if not name:
            raise _Rejected("name", "Team name is required")
        description = _text(fields, "description", "Description", MAX_NOTES_LENGTH)
    except _Rejected as exc:
        raise ValidationError([exc.error]) from None
    return name, description
