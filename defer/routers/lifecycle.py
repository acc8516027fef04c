"""
Lifecycle router.

POST /lifecycle/refresh — move every passed checkpoint to checkpoint_due
"""
from fastapi import APIRouter, Depends

from defer.core.clock import Clock
from defer.dependencies import get_clock, get_repository
from defer.schemas.lifecycle import RefreshRequest, RefreshResponse
from defer.services.intent_repository import IntentRepository

router = APIRouter(prefix="/lifecycle", tags=["lifecycle"])


@router.post("/refresh", response_model=RefreshResponse, summary="Run the lifecycle sweep")
def refresh_lifecycle(
    payload: RefreshRequest,
    repo: IntentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """Idempotent: a second call with no time elapsed transitions nothing."""
    reference = payload.reference or clock.now()
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=clock.tz)
    transitioned = repo.refresh_lifecycle(reference=reference)
    return RefreshResponse(transitioned=transitioned, reference=reference)
