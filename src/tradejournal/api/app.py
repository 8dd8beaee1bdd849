"""FastAPI application factory with CORS, auth middleware, error mapping and lifespan."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from starlette.middleware.base import BaseHTTPMiddleware

from tradejournal.api.auth import decode_subject
from tradejournal.api.deps import app_state
from tradejournal.config import load_config
from tradejournal.data.quotes import QuoteProvider
from tradejournal.errors import (
    ConsistencyError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from tradejournal.events import EventBus
from tradejournal.ledger.focus import FocusStockService
from tradejournal.ledger.positions import PositionBook
from tradejournal.ledger.teams import TeamDesk
from tradejournal.registry.db import Database
from tradejournal.registry.queries import Registry

logger = logging.getLogger(__name__)

API_PREFIX = "/api/journal"

# Caller identity used when no secret key is configured (dev mode)
DEV_USER_ID = "local"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown of the DB and the journal services."""
    config = load_config()

    db = Database(config.db_dsn)
    db.connect()
    registry = Registry(db)
    events = EventBus()
    positions = PositionBook(registry, events, max_symbol_length=config.max_symbol_length)

    app_state.config = config
    app_state.db = db
    app_state.registry = registry
    app_state.events = events
    app_state.positions = positions
    app_state.focus = FocusStockService(
        registry, events, max_symbol_length=config.max_symbol_length,
    )
    app_state.teams = TeamDesk(registry, positions, events)
    app_state.quotes = QuoteProvider(
        cache_seconds=config.quote_cache_seconds, enabled=config.use_live_quotes,
    )
    logger.info("API started, DB and journal services ready")
    yield

    db.close()
    logger.info("API shutdown complete")


# Paths that don't require authentication
PUBLIC_PATHS = {
    f"{API_PREFIX}/auth/logout",
    f"{API_PREFIX}/auth/check",
    f"{API_PREFIX}/system/health",
}


def resolve_user_id(request: Request) -> str | None:
    """Work out which journal owner the request acts for."""
    config = app_state.config
    header_user = (request.headers.get("x-user-id") or "").strip() or None

    # No secret key configured: trust the header (dev mode)
    if not config or not config.auth_secret_key:
        return header_user or DEV_USER_ID

    # Internal token bypass for trusted proxies
    internal_token = request.headers.get("x-internal-token")
    if internal_token and config.internal_api_token and internal_token == config.internal_api_token:
        return header_user

    token = request.cookies.get("session")
    auth_header = request.headers.get("authorization", "")
    if not token and auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
    if not token:
        return None
    return decode_subject(token, config.auth_secret_key)


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolve the caller for API routes; reject unauthenticated non-public calls."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if not path.startswith(API_PREFIX):
            return await call_next(request)

        request.state.user_id = resolve_user_id(request)
        if request.state.user_id is None and path not in PUBLIC_PATHS:
            return JSONResponse(
                status_code=401,
                content={"detail": "Not authenticated"},
            )

        return await call_next(request)


def _validation_response(errors: dict[str, str]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": errors},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Map journal errors onto HTTP status codes."""

    @app.exception_handler(ValidationError)
    async def _on_validation(request: Request, exc: ValidationError) -> JSONResponse:
        return _validation_response({to_camel(k): v for k, v in exc.fields.items()})

    @app.exception_handler(RequestValidationError)
    async def _on_request_shape(request: Request, exc: RequestValidationError) -> JSONResponse:
        # locations already carry the camelCase aliases
        errors: dict[str, str] = {}
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            key = loc[-1] if loc else "body"
            errors.setdefault(key, err.get("msg", "Invalid value"))
        return _validation_response(errors)

    @app.exception_handler(NotFoundError)
    async def _on_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidStateError)
    async def _on_invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PermissionDeniedError)
    async def _on_forbidden(request: Request, exc: PermissionDeniedError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(ConsistencyError)
    async def _on_consistency(request: Request, exc: ConsistencyError) -> JSONResponse:
        logger.error("Consistency failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
    """
    app = FastAPI(
        title="Trade Journal API",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    config = app_state.config or load_config()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Auth middleware, must be added before routes
    app.add_middleware(AuthMiddleware)
    install_error_handlers(app)

    from tradejournal.api.routes import auth, focus_stocks, positions, stats, system, teams

    app.include_router(auth.router, prefix=API_PREFIX, tags=["auth"])
    app.include_router(positions.router, prefix=API_PREFIX, tags=["positions"])
    app.include_router(focus_stocks.router, prefix=API_PREFIX, tags=["focus-stocks"])
    app.include_router(teams.router, prefix=API_PREFIX, tags=["teams"])
    app.include_router(stats.router, prefix=API_PREFIX, tags=["stats"])
    app.include_router(system.router, prefix=API_PREFIX, tags=["system"])

    return app
