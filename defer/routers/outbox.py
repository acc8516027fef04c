"""
Outbox / analytics router.

GET  /outbox/operations  — pending sync operations (oldest first)
POST /outbox/drain       — hand every pending operation over and clear the log
GET  /analytics/events   — buffered analytics events
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from defer.dependencies import get_side_effects
from defer.schemas.outbox import (
    AnalyticsEventResponse,
    AnalyticsResponse,
    OutboxResponse,
    SyncOperationResponse,
)
from defer.services.outbox import SideEffectDispatcher, SyncOperation

router = APIRouter(tags=["outbox"])


def _operations(items: list[SyncOperation], dropped: int) -> OutboxResponse:
    return OutboxResponse(
        total=len(items),
        dropped=dropped,
        items=[
            SyncOperationResponse(
                id=op.id,
                kind=op.kind,
                intent_id=op.intent_id,
                created_at=op.created_at,
                payload=op.payload,
            )
            for op in items
        ],
    )


@router.get("/outbox/operations", response_model=OutboxResponse, summary="Pending sync operations")
def list_operations(side_effects: SideEffectDispatcher = Depends(get_side_effects)):
    side_effects.flush()
    return _operations(side_effects.outbox.pending(), side_effects.outbox.dropped)


@router.post("/outbox/drain", response_model=OutboxResponse, summary="Drain the outbox")
def drain_operations(side_effects: SideEffectDispatcher = Depends(get_side_effects)):
    side_effects.flush()
    return _operations(side_effects.outbox.drain(), side_effects.outbox.dropped)


@router.get("/analytics/events", response_model=AnalyticsResponse, summary="Buffered analytics events")
def list_analytics_events(
    event: Optional[str] = Query(default=None, description='Filter by name, e.g. "urge_logged".'),
    side_effects: SideEffectDispatcher = Depends(get_side_effects),
):
    side_effects.flush()
    items = side_effects.analytics.pending()
    if event:
        items = [e for e in items if e.event == event]
    return AnalyticsResponse(
        total=len(items),
        dropped=side_effects.analytics.dropped,
        items=[
            AnalyticsEventResponse(
                event=e.event,
                intent_id=e.intent_id,
                category=e.category,
                protocol_type=e.protocol_type,
                protocol_duration_hours=e.protocol_duration_hours,
                timestamp=e.timestamp,
                extras=e.extras,
            )
            for e in items
        ],
    )
