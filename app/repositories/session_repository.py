"""
Persistence for slot sessions.
"""

from datetime import datetime

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import SlotSession

logger = get_logger(__name__)


class SessionRepositoryError(DatabaseError):
    """More specific exception for session repository failures."""


class SessionRepository:
    SELECT_COLUMNS = "id, start_time, last_activity_time, label"

    @classmethod
    def _row_to_session(cls, row: dict | None) -> SlotSession | None:
        if not row:
            return None

        return SlotSession(
            id=str(row["id"]),
            start_time=row["start_time"],
            last_activity_time=row["last_activity_time"],
            label=row["label"],
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def latest_by_activity(cls) -> SlotSession | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM slot_sessions
            ORDER BY last_activity_time DESC
            LIMIT 1
        """
        return cls._row_to_session(await fetch_one(query))

    @classmethod
    async def insert(cls, start_time: datetime, label: str) -> SlotSession:
        query = f"""
            INSERT INTO slot_sessions (start_time, last_activity_time, label)
            VALUES (%s, %s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (start_time, start_time, label))
        if not row:
            raise SessionRepositoryError("Failed to create session", operation="insert")
        return cls._row_to_session(row)

    @classmethod
    async def touch(cls, session_id: str, at: datetime) -> None:
        """Move last_activity_time forward; never moves it back."""
        query = """
            UPDATE slot_sessions
            SET last_activity_time = GREATEST(last_activity_time, %s)
            WHERE id = %s
        """
        await execute_query(query, (at, session_id))

    @classmethod
    async def list_all(cls) -> list[SlotSession]:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM slot_sessions ORDER BY start_time DESC"
        rows = await fetch_all(query)
        return [cls._row_to_session(row) for row in rows]
