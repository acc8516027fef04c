"""
FastAPI dependencies.

The clock, the side-effect dispatcher and the notification center live on
app.state (built in defer.main); tests swap them through dependency_overrides.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from defer.core.clock import Clock
from defer.db.base import get_db
from defer.services.intent_repository import IntentRepository
from defer.services.notification_planner import NotificationCenter
from defer.services.outbox import SideEffectDispatcher


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_side_effects(request: Request) -> SideEffectDispatcher:
    return request.app.state.side_effects


def get_notification_center(request: Request) -> NotificationCenter:
    return request.app.state.notification_center


def get_repository(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    side_effects: SideEffectDispatcher = Depends(get_side_effects),
) -> IntentRepository:
    return IntentRepository(db, clock, side_effects)
