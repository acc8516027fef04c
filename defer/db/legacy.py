"""
One-time rewrite of legacy intent status values.

Older stores persisted five statuses (active, paused, completed, failed,
canceled). The lifecycle now has exactly four; this maps the aliases onto
them in place so reads never need to normalize. Run by Alembic revision
0002; safe to re-run (second pass matches no rows).
"""
from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Connection

from defer.models.enums import LEGACY_STATUS_ALIASES

logger = logging.getLogger(__name__)


def normalize_legacy_statuses(connection: Connection) -> int:
    """Rewrite legacy status values. Returns the number of rows changed."""
    changed = 0
    for legacy, canonical in LEGACY_STATUS_ALIASES.items():
        result = connection.execute(
            text("UPDATE intents SET status = :canonical WHERE status = :legacy"),
            {"canonical": canonical.value, "legacy": legacy},
        )
        changed += result.rowcount or 0
    if changed:
        logger.info("Normalized %d intents with legacy status values", changed)
    return changed
