"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Enum-valued columns are plain VARCHAR(32) (non-native enums), so stores
carrying legacy status strings load without a type error until 0002
rewrites them.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- intents ---
    op.create_table(
        "intents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checkpoint_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("outcome", sa.String(32), nullable=True),
        sa.Column("delay_protocol_type", sa.String(32), nullable=False),
        sa.Column("delay_duration_hours", sa.Integer(), nullable=False),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("fallback_action", sa.Text(), nullable=True),
        sa.Column("postpone_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_intents_checkpoint_time", "intents", ["checkpoint_time"])
    op.create_index("ix_intents_status", "intents", ["status"])

    # --- owned by intents ---
    op.create_table(
        "urge_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "intent_id",
            sa.String(36),
            sa.ForeignKey("intents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("intensity", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("used_fallback_action", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_urge_events_intent_id", "urge_events", ["intent_id"])
    op.create_index("ix_urge_events_logged_at", "urge_events", ["logged_at"])

    op.create_table(
        "reward_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "intent_id",
            sa.String(36),
            sa.ForeignKey("intents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_reward_entries_intent_id", "reward_entries", ["intent_id"])

    # --- history (no FK: outlives the intent) ---
    op.create_table(
        "completion_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("intent_id", sa.String(36), nullable=False),
        sa.Column("intent_title", sa.String(256), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("protocol_type", sa.String(32), nullable=False),
        sa.Column("protocol_duration_hours", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checkpoint_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("was_after_checkpoint", sa.Boolean(), nullable=False),
        sa.Column("reflection", sa.Text(), nullable=True),
        sa.Column("urge_score", sa.Integer(), nullable=True),
        sa.Column("regret_score", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_completion_records_intent_id", "completion_records", ["intent_id"])
    op.create_index("ix_completion_records_outcome", "completion_records", ["outcome"])
    op.create_index("ix_completion_records_completed_at", "completion_records", ["completed_at"])

    op.create_table(
        "achievement_unlocks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_intent_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("key", name="uq_achievement_unlock_key"),
    )
    op.create_index(
        "ix_achievement_unlocks_source_intent_id", "achievement_unlocks", ["source_intent_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_achievement_unlocks_source_intent_id", table_name="achievement_unlocks")
    op.drop_table("achievement_unlocks")
    op.drop_index("ix_completion_records_completed_at", table_name="completion_records")
    op.drop_index("ix_completion_records_outcome", table_name="completion_records")
    op.drop_index("ix_completion_records_intent_id", table_name="completion_records")
    op.drop_table("completion_records")
    op.drop_index("ix_reward_entries_intent_id", table_name="reward_entries")
    op.drop_table("reward_entries")
    op.drop_index("ix_urge_events_logged_at", table_name="urge_events")
    op.drop_index("ix_urge_events_intent_id", table_name="urge_events")
    op.drop_table("urge_events")
    op.drop_index("ix_intents_status", table_name="intents")
    op.drop_index("ix_intents_checkpoint_time", table_name="intents")
    op.drop_table("intents")
