"""
Intents router.

POST   /intents                     — capture
GET    /intents?view=…              — list (all | due | waiting | resolved)
GET    /intents/{id}                — one intent
PATCH  /intents/{id}                — edit an open intent
DELETE /intents/{id}                — permanent delete (history rows stay)
POST   /intents/{id}/decision       — resolve or cancel
POST   /intents/{id}/postpone       — start a new wait
POST   /intents/{id}/urges          — log an urge
GET    /intents/{id}/completions    — completion history
POST   /intents/recover             — re-open the latest gave_in decision
"""
from __future__ import annotations

import enum

from fastapi import APIRouter, Depends, Query, Response, status

from defer.core.clock import Clock
from defer.dependencies import get_clock, get_repository
from defer.models.intent import Intent
from defer.schemas.intent import (
    CompletionListResponse,
    CompletionRecordResponse,
    DecisionRequest,
    DecisionResponse,
    IntentCreateRequest,
    IntentListResponse,
    IntentResponse,
    IntentUpdateRequest,
    PostponeRequest,
    RecoverRequest,
    RecoverResponse,
)
from defer.schemas.urge import UrgeCreateRequest, UrgeEventResponse
from defer.services.delay_protocol import days_remaining, progress_percent
from defer.services.intent_repository import IntentRepository

router = APIRouter(prefix="/intents", tags=["intents"])


class IntentView(str, enum.Enum):
    all = "all"
    due = "due"
    waiting = "waiting"
    resolved = "resolved"


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def intent_to_response(intent: Intent, clock: Clock) -> IntentResponse:
    now = clock.now()
    return IntentResponse.model_validate(intent).model_copy(update={
        "progress_percent": progress_percent(intent.start_time, intent.checkpoint_time, now),
        "days_remaining": days_remaining(intent.checkpoint_time, now, clock.tz),
    })


# ---------------------------------------------------------------------------
# Capture / read
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=IntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Capture a new intent",
    responses={
        422: {"description": "EMPTY_TITLE, INVALID_DATE_RANGE or INVALID_STATE."},
    },
)
def capture_intent(
    payload: IntentCreateRequest,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Store the intent with its checkpoint computed from the delay protocol.
    The intent starts in `active_wait`.
    """
    intent = repo.capture_intent(
        title=payload.title,
        protocol=payload.protocol.to_protocol(),
        category=payload.category,
        kind=payload.kind,
        rationale=payload.rationale,
        start_time=payload.start_time,
        estimated_cost=payload.estimated_cost,
        fallback_action=payload.fallback_action,
    )
    return intent_to_response(intent, clock)


@router.get(
    "",
    response_model=IntentListResponse,
    summary="List intents",
)
def list_intents(
    view: IntentView = Query(
        default=IntentView.all,
        description=(
            '"due": checkpoint reached; "waiting": still in the delay window; '
            '"resolved": resolved or canceled.'
        ),
    ),
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    if view == IntentView.due:
        items = repo.list_due()
    elif view == IntentView.waiting:
        items = repo.list_in_delay_window()
    elif view == IntentView.resolved:
        items = repo.list_resolved()
    else:
        items = repo.list_intents()
    return IntentListResponse(
        total=len(items),
        items=[intent_to_response(i, clock) for i in items],
    )


@router.post(
    "/recover",
    response_model=RecoverResponse,
    summary="Re-open the latest gave_in decision",
    responses={409: {"description": "The given intent is not a resolved gave_in decision."}},
)
def recover_intent(
    payload: RecoverRequest,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Moves a `resolved` + `gave_in` intent back to `active_wait` with a
    checkpoint at least 6 hours from now.
    """
    intent = repo.recover_latest_strict_failure(payload.intent_id)
    if intent is None:
        return RecoverResponse(recovered=None)
    return RecoverResponse(recovered=intent_to_response(intent, clock))


@router.get("/{intent_id}", response_model=IntentResponse, summary="Get one intent")
def get_intent(
    intent_id: str,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    return intent_to_response(repo.get_intent(intent_id), clock)


# ---------------------------------------------------------------------------
# Edit / delete
# ---------------------------------------------------------------------------

@router.patch(
    "/{intent_id}",
    response_model=IntentResponse,
    summary="Edit an open intent",
    responses={409: {"description": "Intent is resolved or canceled."}},
)
def update_intent(
    intent_id: str,
    payload: IntentUpdateRequest,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    changes = {
        name: getattr(payload, name)
        for name in payload.model_fields_set
        if name != "protocol"
    }
    if "protocol" in payload.model_fields_set and payload.protocol is not None:
        changes["protocol"] = payload.protocol.to_protocol()
    intent = repo.update_intent(intent_id, **changes)
    return intent_to_response(intent, clock)


@router.delete(
    "/{intent_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an intent",
)
def delete_intent(intent_id: str, repo: IntentRepository = Depends(get_repository)):
    repo.delete_intent(intent_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

@router.post(
    "/{intent_id}/decision",
    response_model=DecisionResponse,
    summary="Record the decision for an intent",
    responses={
        409: {"description": "Intent already resolved or canceled."},
        422: {"description": "INVALID_OUTCOME (postponed) or INVALID_STATE (scores)."},
    },
)
def complete_decision(
    intent_id: str,
    payload: DecisionRequest,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    record = repo.complete_decision(
        intent_id,
        outcome=payload.outcome,
        reflection=payload.reflection,
        urge_score=payload.urge_score,
        regret_score=payload.regret_score,
    )
    return DecisionResponse(
        intent=intent_to_response(repo.get_intent(intent_id), clock),
        completion=CompletionRecordResponse.model_validate(record),
    )


@router.post(
    "/{intent_id}/postpone",
    response_model=DecisionResponse,
    summary="Postpone the decision under a new protocol",
    responses={409: {"description": "CHECKPOINT_UNAVAILABLE: intent is resolved or canceled."}},
)
def postpone_decision(
    intent_id: str,
    payload: PostponeRequest,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    record = repo.postpone_decision(
        intent_id, protocol=payload.protocol.to_protocol(), note=payload.note
    )
    return DecisionResponse(
        intent=intent_to_response(repo.get_intent(intent_id), clock),
        completion=CompletionRecordResponse.model_validate(record),
    )


@router.get(
    "/{intent_id}/completions",
    response_model=CompletionListResponse,
    summary="Completion history of an intent",
)
def list_completions(intent_id: str, repo: IntentRepository = Depends(get_repository)):
    """History survives deletion of the intent itself."""
    records = repo.completions_for(intent_id)
    return CompletionListResponse(
        total=len(records),
        items=[CompletionRecordResponse.model_validate(r) for r in records],
    )


# ---------------------------------------------------------------------------
# Urges
# ---------------------------------------------------------------------------

@router.post(
    "/{intent_id}/urges",
    response_model=UrgeEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Log an urge while waiting",
    responses={409: {"description": "Intent is resolved or canceled."}},
)
def log_urge(
    intent_id: str,
    payload: UrgeCreateRequest,
    repo: IntentRepository = Depends(get_repository),
):
    urge = repo.log_urge(
        intent_id,
        intensity=payload.intensity,
        note=payload.note,
        used_fallback_action=payload.used_fallback_action,
        logged_at=payload.logged_at,
    )
    return UrgeEventResponse.model_validate(urge)
