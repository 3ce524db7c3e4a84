"""
Persistence for user timeouts.

Expired rows are left in place; callers compare expires_at against the clock.
"""

from datetime import datetime

from app.db.helpers import DatabaseError, fetch_all, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import UserTimeout

logger = get_logger(__name__)


class TimeoutRepositoryError(DatabaseError):
    """More specific exception for timeout persistence failures."""


class TimeoutRepository:
    SELECT_COLUMNS = "id, username, expires_at"

    @classmethod
    def _row_to_timeout(cls, row: dict | None) -> UserTimeout | None:
        if not row:
            return None

        return UserTimeout(id=str(row["id"]), user=row["username"], expires_at=row["expires_at"])

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def latest_for(cls, user: str) -> UserTimeout | None:
        """The timeout with the furthest expiry for this user, expired or not."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM user_timeouts
            WHERE username = %s
            ORDER BY expires_at DESC
            LIMIT 1
        """
        return cls._row_to_timeout(await fetch_one(query, (user,)))

    @classmethod
    async def insert(cls, user: str, expires_at: datetime) -> UserTimeout:
        query = f"""
            INSERT INTO user_timeouts (username, expires_at)
            VALUES (%s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (user, expires_at))
        if not row:
            raise TimeoutRepositoryError("Failed to create timeout", operation="insert")

        logger.info("User timeout created", user=user, expires_at=expires_at.isoformat())
        return cls._row_to_timeout(row)

    @classmethod
    async def delete(cls, timeout_id: str) -> UserTimeout | None:
        """Remove a timeout early; returns the removed row if it existed."""
        query = f"DELETE FROM user_timeouts WHERE id = %s RETURNING {cls.SELECT_COLUMNS}"
        removed = cls._row_to_timeout(await fetch_one(query, (timeout_id,)))
        if removed:
            logger.info("User timeout removed", timeout_id=timeout_id, user=removed.user)
        return removed

    @classmethod
    async def list_active(cls, now: datetime) -> list[UserTimeout]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM user_timeouts
            WHERE expires_at > %s
            ORDER BY expires_at ASC
        """
        rows = await fetch_all(query, (now,))
        return [cls._row_to_timeout(row) for row in rows]
