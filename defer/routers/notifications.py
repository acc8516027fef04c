"""
Notifications router.

POST /notifications/sync     — replan and reschedule every managed reminder
GET  /notifications/pending  — what the notification center currently holds
"""
from fastapi import APIRouter, Depends

from defer.core.clock import Clock
from defer.core.config import settings
from defer.dependencies import get_clock, get_notification_center, get_repository
from defer.schemas.notification import (
    NotificationSyncRequest,
    PlannedReminderResponse,
    ReminderListResponse,
)
from defer.services.intent_repository import IntentRepository
from defer.services.notification_planner import (
    NotificationCenter,
    PlannedReminder,
    sync_notifications,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _to_response(reminders: list[PlannedReminder]) -> ReminderListResponse:
    return ReminderListResponse(
        total=len(reminders),
        items=[
            PlannedReminderResponse(
                identifier=r.identifier,
                kind=r.kind,
                fire_at=r.fire_at,
                repeats=r.repeats,
                title=r.title,
                body=r.body,
                intent_id=r.intent_id,
            )
            for r in reminders
        ],
    )


@router.post("/sync", response_model=ReminderListResponse, summary="Sync local reminders")
def sync(
    payload: NotificationSyncRequest,
    repo: IntentRepository = Depends(get_repository),
    center: NotificationCenter = Depends(get_notification_center),
    clock: Clock = Depends(get_clock),
):
    """
    Safe to call on every foreground/background tick: identifiers are
    deterministic, so a re-run replaces the previous plan. When reminders
    are disabled or not authorized, every managed reminder is withdrawn.
    """
    plan = sync_notifications(
        center,
        payload.preferences.to_preferences(settings.DEFAULT_REMINDER_TIME),
        repo.list_in_delay_window(),
        payload.authorization,
        clock,
        max_planned=settings.NOTIFICATION_MAX_PLANNED,
    )
    return _to_response(plan)


@router.get("/pending", response_model=ReminderListResponse, summary="Pending reminders")
def pending(center: NotificationCenter = Depends(get_notification_center)):
    return _to_response(center.pending())
