"""
Outbox / analytics schemas.

GET  /outbox/operations → OutboxResponse
POST /outbox/drain      → OutboxResponse
GET  /analytics/events  → AnalyticsResponse
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from defer.services.outbox import SyncOperationKind


class SyncOperationResponse(BaseModel):
    id: str
    kind: SyncOperationKind
    intent_id: Optional[str]
    created_at: datetime
    payload: dict[str, str]


class OutboxResponse(BaseModel):
    total: int
    dropped: int = Field(description="Entries lost to the ring-buffer bound since startup.")
    items: list[SyncOperationResponse]


class AnalyticsEventResponse(BaseModel):
    event: str
    intent_id: str
    category: str
    protocol_type: str
    protocol_duration_hours: int
    timestamp: datetime
    extras: dict[str, str]


class AnalyticsResponse(BaseModel):
    total: int
    dropped: int
    items: list[AnalyticsEventResponse]
