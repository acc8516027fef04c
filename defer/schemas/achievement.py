"""
Achievement response schemas.

GET /achievements → AchievementsResponse
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from defer.models.enums import AchievementTier


class ProgressResponse(BaseModel):
    resolved_count: int
    intentional_count: int
    resisted_count: int
    postpone_count: int
    reflection_count: int
    delay_adherence_rate: float
    estimated_spend_avoided: float
    max_intentional_run: int
    urge_log_count: int


class AchievementStatusResponse(BaseModel):
    key: str
    title: str
    details: str
    tier: AchievementTier
    unlocked: bool
    unlocked_at: Optional[datetime] = None
    current: float = Field(description="Progress so far, capped at target.")
    target: float


class AchievementsResponse(BaseModel):
    progress: ProgressResponse
    reward_points: int
    achievements: list[AchievementStatusResponse]
