"""
In-memory cache of the slot settings row.

The admission path reads ``config_cache.current`` and never touches the
database. Writers store the new row first and only then swap the snapshot
reference, so readers see either the old or the new config, never a mix.
"""

import asyncio
from typing import Any

from app.config import settings
from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import SlotConfig, TierLimits
from app.repositories.config_repository import ConfigRepository
from app.services.slots.broadcast_hub import BroadcastHub, broadcast_hub

logger = get_logger(__name__)

PATCHABLE_FIELDS = frozenset(
    {
        "enabled",
        "follower_limit",
        "subscriber_limit",
        "vip_limit",
        "moderator_limit",
        "out_cooldown_minutes",
    }
)


class ConfigUnavailableError(RuntimeError):
    """Raised when the settings row can't be loaded; the service must not start."""


def default_config() -> SlotConfig:
    return SlotConfig(
        enabled=settings.DEFAULT_LIMITS_ENABLED,
        limits=TierLimits(
            follower=settings.DEFAULT_FOLLOWER_LIMIT,
            subscriber=settings.DEFAULT_SUBSCRIBER_LIMIT,
            vip=settings.DEFAULT_VIP_LIMIT,
            moderator=settings.DEFAULT_MODERATOR_LIMIT,
        ),
        out_cooldown_minutes=settings.DEFAULT_OUT_COOLDOWN_MINUTES,
    )


def merge_config(current: SlotConfig, patch: dict[str, Any]) -> SlotConfig:
    """Build a new validated snapshot from the current one plus a flat patch."""
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown settings fields: {', '.join(sorted(unknown))}")

    limits = current.limits.model_dump()
    for tier in ("follower", "subscriber", "vip", "moderator"):
        key = f"{tier}_limit"
        if patch.get(key) is not None:
            limits[tier] = patch[key]

    return SlotConfig.model_validate(
        {
            "enabled": current.enabled if patch.get("enabled") is None else patch["enabled"],
            "limits": limits,
            "out_cooldown_minutes": (
                current.out_cooldown_minutes
                if patch.get("out_cooldown_minutes") is None
                else patch["out_cooldown_minutes"]
            ),
        }
    )


class ConfigCache:
    def __init__(self, repository=ConfigRepository, hub: BroadcastHub | None = None):
        self._repository = repository
        self._hub = hub or broadcast_hub
        self._snapshot: SlotConfig | None = None
        self._write_lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def current(self) -> SlotConfig:
        snapshot = self._snapshot
        if snapshot is None:
            raise ConfigUnavailableError("Slot settings have not been loaded")
        return snapshot

    async def load(self) -> SlotConfig:
        """Load the settings row, seeding defaults on first start."""
        try:
            config = await self._repository.get()
            if config is None:
                logger.info("No slot settings stored yet, seeding defaults")
                config = await self._repository.upsert(default_config())
        except DatabaseError as e:
            logger.error("Unable to load slot settings", error=str(e))
            raise ConfigUnavailableError(f"Slot settings unavailable: {e}") from e

        self._snapshot = config
        logger.info(
            "Slot settings loaded",
            enabled=config.enabled,
            out_cooldown_minutes=config.out_cooldown_minutes,
        )
        return config

    async def update(self, patch: dict[str, Any]) -> SlotConfig:
        """Persist a patch, swap the snapshot, then tell observers."""
        async with self._write_lock:
            candidate = merge_config(self.current, patch)
            stored = await self._repository.upsert(candidate)
            self._snapshot = stored

        self._hub.publish("settings", stored)
        return stored


config_cache = ConfigCache()
