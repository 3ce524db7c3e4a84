"""
Persistence for the singleton slot settings row.
"""

from app.db.helpers import DatabaseError, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import SlotConfig, TierLimits

logger = get_logger(__name__)

SETTINGS_ROW_ID = 1


class ConfigRepositoryError(DatabaseError):
    """More specific exception for settings persistence failures."""


class ConfigRepository:
    SELECT_COLUMNS = """
        enabled, follower_limit, subscriber_limit, vip_limit,
        moderator_limit, out_cooldown_minutes
    """

    @classmethod
    def _row_to_config(cls, row: dict | None) -> SlotConfig | None:
        if not row:
            return None

        return SlotConfig(
            enabled=row["enabled"],
            limits=TierLimits(
                follower=row["follower_limit"],
                subscriber=row["subscriber_limit"],
                vip=row["vip_limit"],
                moderator=row["moderator_limit"],
            ),
            out_cooldown_minutes=row["out_cooldown_minutes"],
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(cls) -> SlotConfig | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM slot_settings WHERE id = %s"
        return cls._row_to_config(await fetch_one(query, (SETTINGS_ROW_ID,)))

    @classmethod
    async def upsert(cls, config: SlotConfig) -> SlotConfig:
        """Write the full settings row and return what the database stored."""

        query = f"""
            INSERT INTO slot_settings (
                id, enabled, follower_limit, subscriber_limit,
                vip_limit, moderator_limit, out_cooldown_minutes, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (id) DO UPDATE SET
                enabled = EXCLUDED.enabled,
                follower_limit = EXCLUDED.follower_limit,
                subscriber_limit = EXCLUDED.subscriber_limit,
                vip_limit = EXCLUDED.vip_limit,
                moderator_limit = EXCLUDED.moderator_limit,
                out_cooldown_minutes = EXCLUDED.out_cooldown_minutes,
                updated_at = NOW()
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                SETTINGS_ROW_ID,
                config.enabled,
                config.limits.follower,
                config.limits.subscriber,
                config.limits.vip,
                config.limits.moderator,
                config.out_cooldown_minutes,
            ),
        )
        if not row:
            raise ConfigRepositoryError("Failed to store slot settings", operation="upsert")

        logger.info("Slot settings stored", enabled=config.enabled)
        return cls._row_to_config(row)
