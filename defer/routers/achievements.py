"""
Achievements router.

GET /achievements — progress aggregate + every catalog entry with its state
"""
from fastapi import APIRouter, Depends

from defer.dependencies import get_repository
from defer.schemas.achievement import (
    AchievementStatusResponse,
    AchievementsResponse,
    ProgressResponse,
)
from defer.services.achievement_engine import achievement_statuses
from defer.services.intent_repository import IntentRepository

router = APIRouter(prefix="/achievements", tags=["achievements"])


@router.get("", response_model=AchievementsResponse, summary="Achievement progress")
def list_achievements(repo: IntentRepository = Depends(get_repository)):
    """
    Progress is recomputed from the full history on every call. Unlocks are
    listed in catalog order; locked entries report (current, target).
    """
    progress = repo.progress()
    statuses = achievement_statuses(repo.db, progress)
    return AchievementsResponse(
        progress=ProgressResponse(
            resolved_count=progress.resolved_count,
            intentional_count=progress.intentional_count,
            resisted_count=progress.resisted_count,
            postpone_count=progress.postpone_count,
            reflection_count=progress.reflection_count,
            delay_adherence_rate=progress.delay_adherence_rate,
            estimated_spend_avoided=float(progress.estimated_spend_avoided),
            max_intentional_run=progress.max_intentional_run,
            urge_log_count=progress.urge_log_count,
        ),
        reward_points=repo.reward_total(),
        achievements=[
            AchievementStatusResponse(
                key=s.definition.key,
                title=s.definition.title,
                details=s.definition.details,
                tier=s.definition.tier,
                unlocked=s.unlocked,
                unlocked_at=s.unlocked_at,
                current=float(s.current),
                target=float(s.target),
            )
            for s in statuses
        ],
    )
