"""normalize legacy intent statuses

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

Rewrites the five-state values older stores wrote (active, paused,
completed, failed) onto the four-state lifecycle in place. Data-only;
downgrade is a no-op because the original aliases cannot be recovered.
"""
from alembic import op

from defer.db.legacy import normalize_legacy_statuses

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    normalize_legacy_statuses(op.get_bind())


def downgrade() -> None:
    pass
