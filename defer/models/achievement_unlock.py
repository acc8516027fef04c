"""
AchievementUnlock — at most one row per catalog key, ever.

The unique constraint on `key` is the final idempotency guard; the engine
checks existing keys first. source_intent_id is a lookup id, not an FK,
so unlocks survive intent deletion.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Enum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from defer.db.base import Base
from defer.db.types import UTCDateTime, utcnow
from defer.models.enums import AchievementTier


class AchievementUnlock(Base):
    __tablename__ = "achievement_unlocks"
    __table_args__ = (
        UniqueConstraint("key", name="uq_achievement_unlock_key"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    tier: Mapped[AchievementTier] = mapped_column(
        Enum(AchievementTier, name="achievement_tier_enum", native_enum=False, length=16),
        nullable=False,
    )
    unlocked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    source_intent_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
