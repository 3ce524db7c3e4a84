"""
Idempotent schema bootstrap for the slot tables.

Runs once from the application lifespan, before the config cache loads.
"""

from app.db.helpers import execute_transaction
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS slot_sessions (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        start_time TIMESTAMPTZ NOT NULL,
        last_activity_time TIMESTAMPTZ NOT NULL,
        label TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_slot_sessions_last_activity
        ON slot_sessions (last_activity_time DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS slots (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        session_id UUID NOT NULL REFERENCES slot_sessions (id),
        time TIMESTAMPTZ NOT NULL,
        local_date DATE NOT NULL,
        username TEXT NOT NULL,
        message TEXT NOT NULL,
        subscriber BOOLEAN NOT NULL DEFAULT FALSE,
        vip BOOLEAN NOT NULL DEFAULT FALSE,
        moderator BOOLEAN NOT NULL DEFAULT FALSE,
        status TEXT CHECK (status IN ('IN', 'OUT')),
        payout DOUBLE PRECISION,
        out_count INTEGER NOT NULL DEFAULT 0,
        status_changed_at TIMESTAMPTZ,
        cooldown_expires_at TIMESTAMPTZ
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_slots_session_user ON slots (session_id, username)",
    "CREATE INDEX IF NOT EXISTS idx_slots_session_message ON slots (session_id, message)",
    "CREATE INDEX IF NOT EXISTS idx_slots_status_time ON slots (status, time)",
    """
    CREATE TABLE IF NOT EXISTS slot_settings (
        id SMALLINT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
        enabled BOOLEAN NOT NULL,
        follower_limit INTEGER NOT NULL,
        subscriber_limit INTEGER NOT NULL,
        vip_limit INTEGER NOT NULL,
        moderator_limit INTEGER NOT NULL,
        out_cooldown_minutes DOUBLE PRECISION NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_timeouts (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        username TEXT NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_timeouts_user ON user_timeouts (username, expires_at DESC)",
]


async def ensure_schema() -> None:
    """Create tables and indexes if they don't exist yet."""
    await execute_transaction([(statement, ()) for statement in SCHEMA_STATEMENTS])
    logger.info("Slot schema ensured", statements=len(SCHEMA_STATEMENTS))
