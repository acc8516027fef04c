"""
Urges router.

GET    /urges/recent   — newest urge events across all intents
DELETE /urges/{id}     — remove one urge event
"""
from fastapi import APIRouter, Depends, Query, Response, status

from defer.dependencies import get_repository
from defer.schemas.urge import UrgeEventResponse, UrgeListResponse
from defer.services.intent_repository import IntentRepository

router = APIRouter(prefix="/urges", tags=["urges"])


@router.get("/recent", response_model=UrgeListResponse, summary="Recent urge events")
def recent_urges(
    limit: int = Query(default=20, ge=1, le=200, description="Maximum events returned."),
    repo: IntentRepository = Depends(get_repository),
):
    items = repo.recent_urges(limit)
    return UrgeListResponse(
        total=len(items),
        items=[UrgeEventResponse.model_validate(u) for u in items],
    )


@router.delete(
    "/{urge_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an urge event",
    responses={404: {"description": "URGE_EVENT_NOT_FOUND"}},
)
def delete_urge(urge_id: str, repo: IntentRepository = Depends(get_repository)):
    repo.delete_urge_event(urge_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
