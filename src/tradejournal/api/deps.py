"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from fastapi import HTTPException, Request

from tradejournal.config import AppConfig
from tradejournal.data.quotes import QuoteProvider
from tradejournal.events import EventBus
from tradejournal.ledger.focus import FocusStockService
from tradejournal.ledger.positions import PositionBook
from tradejournal.ledger.teams import TeamDesk
from tradejournal.registry.db import Database
from tradejournal.registry.queries import Registry


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.registry: Registry | None = None
        self.events: EventBus | None = None
        self.positions: PositionBook | None = None
        self.focus: FocusStockService | None = None
        self.teams: TeamDesk | None = None
        self.quotes: QuoteProvider | None = None


# Singleton shared across the app
app_state = AppState()


def get_registry() -> Registry:
    if app_state.registry is None:
        raise RuntimeError("Registry not initialised")
    return app_state.registry


def get_events() -> EventBus:
    if app_state.events is None:
        raise RuntimeError("EventBus not initialised")
    return app_state.events


def get_positions() -> PositionBook:
    if app_state.positions is None:
        raise RuntimeError("PositionBook not initialised")
    return app_state.positions


def get_focus() -> FocusStockService:
    if app_state.focus is None:
        raise RuntimeError("FocusStockService not initialised")
    return app_state.focus


def get_teams() -> TeamDesk:
    if app_state.teams is None:
        raise RuntimeError("TeamDesk not initialised")
    return app_state.teams


def get_quotes() -> QuoteProvider:
    if app_state.quotes is None:
        raise RuntimeError("QuoteProvider not initialised")
    return app_state.quotes


def get_user_id(request: Request) -> str:
    """Caller id resolved by the auth middleware."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
