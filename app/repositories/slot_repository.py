"""
Persistence for slot rows.

All queries the admission service and the dashboard routes need live here so
neither has to know about SQL.
"""

from datetime import date, datetime
from typing import Any

from app.db.helpers import (
    DatabaseError,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_val,
    with_db_retry,
)
from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import Slot, SlotStatus

logger = get_logger(__name__)

# Filter value for slots that are neither IN nor OUT yet
UNSET_STATUS = "unset"


class SlotRepositoryError(DatabaseError):
    """More specific exception for slot repository failures."""


class SlotRepository:
    """Persistence helpers backing the slot queue."""

    SELECT_COLUMNS = """
        id, session_id, time, local_date, username, message,
        subscriber, vip, moderator, status, payout, out_count,
        status_changed_at, cooldown_expires_at
    """

    # Columns an operator patch may set directly
    UPDATABLE_COLUMNS = frozenset(
        {"status", "payout", "message", "status_changed_at", "cooldown_expires_at"}
    )
    INCREMENTABLE_COLUMNS = frozenset({"out_count"})

    @classmethod
    def _row_to_slot(cls, row: dict | None) -> Slot | None:
        if not row:
            return None

        return Slot(
            id=str(row["id"]),
            session_id=str(row["session_id"]),
            time=row["time"],
            local_date=row["local_date"],
            user=row["username"],
            message=row["message"],
            subscriber=row["subscriber"],
            vip=row["vip"],
            moderator=row["moderator"],
            status=row.get("status"),
            payout=row.get("payout"),
            out_count=row["out_count"],
            status_changed_at=row.get("status_changed_at"),
            cooldown_expires_at=row.get("cooldown_expires_at"),
        )

    @classmethod
    async def insert(
        cls,
        *,
        session_id: str,
        time: datetime,
        local_date: date,
        user: str,
        message: str,
        subscriber: bool,
        vip: bool,
        moderator: bool,
    ) -> Slot:
        """Insert a new slot with no status and a zero out count."""

        query = f"""
            INSERT INTO slots (
                session_id, time, local_date, username, message,
                subscriber, vip, moderator, out_count
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 0)
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query, (session_id, time, local_date, user, message, subscriber, vip, moderator)
        )
        if not row:
            raise SlotRepositoryError("Failed to insert slot", operation="insert")

        return cls._row_to_slot(row)

    @classmethod
    async def find_by(
        cls,
        *,
        session_id: str | None = None,
        user: str | None = None,
        status: SlotStatus | str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        search: str | None = None,
    ) -> list[Slot]:
        """
        List slots matching every given filter, oldest first.

        ``status="unset"`` selects slots that have not been marked IN or OUT.
        ``since``/``until`` bound the slot timestamp; ``from_date``/``to_date``
        bound the local calendar date, both inclusive.
        """

        clauses: list[str] = []
        params: list[Any] = []

        if session_id is not None:
            clauses.append("session_id = %s")
            params.append(session_id)
        if user is not None:
            clauses.append("username = %s")
            params.append(user)
        if status == UNSET_STATUS:
            clauses.append("status IS NULL")
        elif status is not None:
            clauses.append("status = %s")
            params.append(SlotStatus(status).value)
        if since is not None:
            clauses.append("time >= %s")
            params.append(since)
        if until is not None:
            clauses.append("time <= %s")
            params.append(until)
        if from_date is not None:
            clauses.append("local_date >= %s")
            params.append(from_date)
        if to_date is not None:
            clauses.append("local_date <= %s")
            params.append(to_date)
        if search:
            clauses.append("(username ILIKE %s OR message ILIKE %s)")
            params.extend([f"%{search}%", f"%{search}%"])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT {cls.SELECT_COLUMNS} FROM slots {where} ORDER BY time ASC, id ASC"

        rows = await fetch_all(query, tuple(params))
        return [cls._row_to_slot(row) for row in rows]

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def latest_by_message(cls, session_id: str, message: str) -> Slot | None:
        """Most recent slot in the session carrying exactly this message text."""

        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM slots
            WHERE session_id = %s AND message = %s
            ORDER BY time DESC
            LIMIT 1
        """
        return cls._row_to_slot(await fetch_one(query, (session_id, message)))

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def count_by(cls, session_id: str, user: str) -> int:
        query = "SELECT COUNT(*) FROM slots WHERE session_id = %s AND username = %s"
        return int(await fetch_val(query, (session_id, user)) or 0)

    @classmethod
    async def update_fields(
        cls,
        slot_id: str,
        patch: dict[str, Any],
        increments: dict[str, int] | None = None,
        on_status_change: frozenset[str] = frozenset(),
    ) -> Slot | None:
        """
        Apply a field patch plus optional counter increments in one statement.

        Columns named in ``on_status_change`` are only written when the patched
        ``status`` differs from the stored one, so re-sending the current status
        leaves them alone. Returns the updated slot, or None when no row has
        that id.
        """

        increments = increments or {}
        unknown = (set(patch) - cls.UPDATABLE_COLUMNS) | (
            set(increments) - cls.INCREMENTABLE_COLUMNS
        )
        if unknown:
            raise ValueError(f"Unsupported slot columns: {', '.join(sorted(unknown))}")
        if not patch and not increments:
            raise ValueError("Nothing to update")
        if on_status_change and "status" not in patch:
            raise ValueError("on_status_change needs a status in the patch")

        status = patch.get("status")
        new_status = status.value if isinstance(status, SlotStatus) else status
        changed = "status IS DISTINCT FROM %s"

        assignments: list[str] = []
        params: list[Any] = []
        for column, value in patch.items():
            value = value.value if isinstance(value, SlotStatus) else value
            if column in on_status_change:
                assignments.append(f"{column} = CASE WHEN {changed} THEN %s ELSE {column} END")
                params.extend((new_status, value))
            else:
                assignments.append(f"{column} = %s")
                params.append(value)
        for column, amount in increments.items():
            if column in on_status_change:
                assignments.append(f"{column} = {column} + CASE WHEN {changed} THEN %s ELSE 0 END")
                params.extend((new_status, amount))
            else:
                assignments.append(f"{column} = {column} + %s")
                params.append(amount)

        query = f"""
            UPDATE slots
            SET {', '.join(assignments)}
            WHERE id = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        params.append(slot_id)

        row = await fetch_one(query, tuple(params))
        slot = cls._row_to_slot(row)
        if slot:
            logger.info("Slot updated", slot_id=slot_id, fields=sorted(patch), increments=increments)
        return slot

    @classmethod
    async def delete(cls, slot_id: str) -> bool:
        deleted = await execute_query("DELETE FROM slots WHERE id = %s", (slot_id,))
        if deleted:
            logger.info("Slot deleted", slot_id=slot_id)
        return deleted > 0
