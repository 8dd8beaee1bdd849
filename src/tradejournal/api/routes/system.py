"""System health and recent journal events."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Query

from tradejournal.api.deps import get_events, get_registry, get_user_id
from tradejournal.events import EventBus
from tradejournal.models.position import Owner
from tradejournal.registry.queries import Registry

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health(registry: Registry = Depends(get_registry)) -> dict:
    """Database connectivity and uptime."""
    db_ok = registry.health_check()
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "uptimeSeconds": int(time.time() - _start_time),
    }


@router.get("/events")
def recent_events(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    events: EventBus = Depends(get_events),
) -> dict:
    """The caller's most recent journal events, newest first."""
    recent = events.recent(owner=Owner.user(user_id), limit=limit)
    return {
        "events": [
            {
                "type": e.event_type.value,
                "entityId": e.entity_id,
                "symbol": e.symbol,
                "detail": e.detail or {},
                "timestamp": e.timestamp.isoformat(),
            }
            for e in recent
        ],
    }
