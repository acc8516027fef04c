"""
Notification schemas.

POST /notifications/sync     → NotificationSyncRequest → ReminderListResponse
GET  /notifications/pending  → ReminderListResponse
"""
from datetime import datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from defer.services.notification_planner import (
    AuthorizationState,
    NotificationPreferences,
    ReminderKind,
)


class NotificationPreferencesIn(BaseModel):
    reminders_enabled: bool = True
    daily_enabled: bool = True
    checkpoint_due_enabled: bool = True
    milestones_enabled: bool = True
    warnings_enabled: bool = True
    postpone_reminders_enabled: bool = True
    reminder_time: Optional[time] = Field(
        default=None,
        description="Local time used for snapped reminders. Defaults to DEFAULT_REMINDER_TIME.",
        examples=["20:00"],
    )
    daily_time: Optional[time] = None

    def to_preferences(self, default_time: time) -> NotificationPreferences:
        return NotificationPreferences(
            reminders_enabled=self.reminders_enabled,
            daily_enabled=self.daily_enabled,
            checkpoint_due_enabled=self.checkpoint_due_enabled,
            milestones_enabled=self.milestones_enabled,
            warnings_enabled=self.warnings_enabled,
            postpone_reminders_enabled=self.postpone_reminders_enabled,
            reminder_time=self.reminder_time or default_time,
            daily_time=self.daily_time,
        )


class NotificationSyncRequest(BaseModel):
    preferences: NotificationPreferencesIn = Field(default_factory=NotificationPreferencesIn)
    authorization: AuthorizationState = AuthorizationState.enabled


class PlannedReminderResponse(BaseModel):
    identifier: str
    kind: ReminderKind
    fire_at: datetime
    repeats: bool
    title: str
    body: str
    intent_id: Optional[str] = None


class ReminderListResponse(BaseModel):
    total: int
    items: list[PlannedReminderResponse]
