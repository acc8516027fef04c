"""
Intent request / response schemas.

Capture:   POST  /intents                 → IntentCreateRequest → IntentResponse
Edit:      PATCH /intents/{id}            → IntentUpdateRequest → IntentResponse
Decide:    POST  /intents/{id}/decision   → DecisionRequest     → DecisionResponse
Postpone:  POST  /intents/{id}/postpone   → PostponeRequest     → DecisionResponse
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from defer.models.enums import (
    DecisionOutcome,
    DelayProtocolType,
    IntentCategory,
    IntentKind,
    IntentStatus,
)
from defer.schemas.common import DelayProtocolIn


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class IntentCreateRequest(BaseModel):
    title: str = Field(
        max_length=256,
        description="What you want to do. Stripped; must not be blank.",
        examples=["Buy the new headphones"],
    )
    rationale: Optional[str] = Field(default=None, description="Why you want to wait.")
    category: IntentCategory = IntentCategory.custom
    kind: IntentKind = IntentKind.custom
    protocol: DelayProtocolIn = Field(default_factory=DelayProtocolIn)
    start_time: Optional[datetime] = Field(
        default=None,
        description="When the wait starts. Defaults to now; naive values use the configured timezone.",
    )
    estimated_cost: Optional[Decimal] = Field(default=None, description="Must be >= 0.")
    fallback_action: Optional[str] = Field(
        default=None,
        description="What to do instead when the urge hits.",
        examples=["Go for a 10 minute walk"],
    )


class IntentUpdateRequest(BaseModel):
    """Only the fields present in the body are changed. null clears optional text fields."""
    title: Optional[str] = Field(default=None, max_length=256)
    rationale: Optional[str] = None
    category: Optional[IntentCategory] = None
    kind: Optional[IntentKind] = None
    protocol: Optional[DelayProtocolIn] = None
    start_time: Optional[datetime] = None
    estimated_cost: Optional[Decimal] = None
    fallback_action: Optional[str] = None


class DecisionRequest(BaseModel):
    outcome: DecisionOutcome = Field(
        description='"resisted" | "intentional_yes" | "gave_in" | "canceled". "postponed" is rejected.'
    )
    reflection: Optional[str] = None
    urge_score: Optional[int] = Field(default=None, description="1..5")
    regret_score: Optional[int] = Field(default=None, description="1..5")


class PostponeRequest(BaseModel):
    protocol: DelayProtocolIn = Field(description="The new waiting rule, applied from now.")
    note: Optional[str] = None


class RecoverRequest(BaseModel):
    intent_id: Optional[str] = Field(
        default=None,
        description="Recover this intent. Omit to recover the most recent gave_in decision.",
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class IntentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    rationale: Optional[str]
    category: IntentCategory
    kind: IntentKind
    status: IntentStatus
    outcome: Optional[DecisionOutcome]
    start_time: datetime
    checkpoint_time: datetime
    delay_protocol_type: DelayProtocolType
    delay_duration_hours: int
    estimated_cost: Optional[Decimal]
    fallback_action: Optional[str]
    postpone_count: int
    resolved_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    progress_percent: float = Field(default=0.0, description="Share of the wait elapsed, 0..1.")
    days_remaining: int = Field(default=0, description="Calendar days until the checkpoint day.")


class IntentListResponse(BaseModel):
    total: int
    items: list[IntentResponse]


class CompletionRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    intent_id: str
    intent_title: str
    category: IntentCategory
    kind: IntentKind
    outcome: DecisionOutcome
    protocol_type: DelayProtocolType
    protocol_duration_hours: int
    start_time: datetime
    checkpoint_time: datetime
    completed_at: datetime
    duration_days: int
    was_after_checkpoint: bool
    reflection: Optional[str]
    urge_score: Optional[int]
    regret_score: Optional[int]
    estimated_cost: Optional[Decimal]


class DecisionResponse(BaseModel):
    intent: IntentResponse
    completion: CompletionRecordResponse


class CompletionListResponse(BaseModel):
    total: int
    items: list[CompletionRecordResponse]


class RecoverResponse(BaseModel):
    recovered: Optional[IntentResponse] = Field(
        default=None, description="null when there was no gave_in decision to recover."
    )
