from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from defer.db.base import Base
from defer.db.types import UTCDateTime, utcnow


class RewardEntry(Base):
    """Points ledger line. Append-only; removed only with its intent."""

    __tablename__ = "reward_entries"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    intent_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("intents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    intent: Mapped["Intent"] = relationship(back_populates="reward_entries")
