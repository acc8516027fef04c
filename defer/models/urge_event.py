from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from defer.db.base import Base
from defer.db.types import UTCDateTime, utcnow

MIN_INTENSITY = 1
MAX_INTENSITY = 5


def clamp_intensity(value: int) -> int:
    return max(MIN_INTENSITY, min(int(value), MAX_INTENSITY))


class UrgeEvent(Base):
    """A logged urge while waiting. Owned by its intent."""

    __tablename__ = "urge_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    intent_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("intents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    logged_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    intensity: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    used_fallback_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    intent: Mapped["Intent"] = relationship(back_populates="urge_events")
