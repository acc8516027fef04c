"""
CompletionRecord — immutable snapshot written once per decision or postpone.

Rules:
- Append-only: the ORM refuses UPDATEs on this table.
- intent_id is a plain id (no FK): records outlive intent deletion.
- Title/category/kind/cost are snapshotted so history reads need no join.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum, Integer, Numeric, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from defer.db.base import Base
from defer.db.types import UTCDateTime, utcnow
from defer.models.enums import (
    DecisionOutcome,
    DelayProtocolType,
    IntentCategory,
    IntentKind,
)


class CompletionRecord(Base):
    __tablename__ = "completion_records"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    intent_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    intent_title: Mapped[str] = mapped_column(String(256), nullable=False)
    category: Mapped[IntentCategory] = mapped_column(
        Enum(IntentCategory, name="intent_category_enum", native_enum=False, length=32),
        nullable=False,
    )
    kind: Mapped[IntentKind] = mapped_column(
        Enum(IntentKind, name="intent_kind_enum", native_enum=False, length=32),
        nullable=False,
    )
    outcome: Mapped[DecisionOutcome] = mapped_column(
        Enum(DecisionOutcome, name="decision_outcome_enum", native_enum=False, length=32),
        nullable=False,
        index=True,
    )
    protocol_type: Mapped[DelayProtocolType] = mapped_column(
        Enum(DelayProtocolType, name="delay_protocol_type_enum", native_enum=False, length=32),
        nullable=False,
    )
    protocol_duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    checkpoint_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    was_after_checkpoint: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reflection: Mapped[str | None] = mapped_column(Text, nullable=True)
    urge_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    regret_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


@event.listens_for(CompletionRecord, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise ValueError("CompletionRecord is immutable once written")
