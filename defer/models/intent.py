"""
Intent — a captured decision-to-be-deferred.

Invariant (checked by the repository on every mutation):
  checkpoint_time > start_time

Owns urge events and reward entries (deleted with the intent).
Completion records and achievement unlocks only carry the intent id and
outlive it.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Integer, String, Text, Numeric, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from defer.db.base import Base
from defer.db.types import UTCDateTime, utcnow
from defer.models.enums import (
    DecisionOutcome,
    DelayProtocolType,
    IntentCategory,
    IntentKind,
    IntentStatus,
)


def _new_id() -> str:
    return str(uuid.uuid4())


class Intent(Base):
    __tablename__ = "intents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[IntentCategory] = mapped_column(
        Enum(IntentCategory, name="intent_category_enum", native_enum=False, length=32),
        nullable=False,
        default=IntentCategory.custom,
    )
    kind: Mapped[IntentKind] = mapped_column(
        Enum(IntentKind, name="intent_kind_enum", native_enum=False, length=32),
        nullable=False,
        default=IntentKind.custom,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    checkpoint_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    status: Mapped[IntentStatus] = mapped_column(
        Enum(IntentStatus, name="intent_status_enum", native_enum=False, length=32),
        nullable=False,
        default=IntentStatus.active_wait,
        index=True,
    )
    outcome: Mapped[DecisionOutcome | None] = mapped_column(
        Enum(DecisionOutcome, name="decision_outcome_enum", native_enum=False, length=32),
        nullable=True,
    )
    delay_protocol_type: Mapped[DelayProtocolType] = mapped_column(
        Enum(DelayProtocolType, name="delay_protocol_type_enum", native_enum=False, length=32),
        nullable=False,
        default=DelayProtocolType.twenty_four_hours,
    )
    delay_duration_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    fallback_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    postpone_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    urge_events: Mapped[list["UrgeEvent"]] = relationship(
        back_populates="intent",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="UrgeEvent.logged_at",
    )
    reward_entries: Mapped[list["RewardEntry"]] = relationship(
        back_populates="intent",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RewardEntry.created_at",
    )
