"""
Slot settings routes.

Writes go through the config cache so the next chat command sees them.
"""

from fastapi import APIRouter, HTTPException, status

from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.api.slot_request import SettingsPatchRequest
from app.models.api.slot_response import SettingsResponse
from app.services.slots.config_cache import config_cache

logger = get_logger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
async def get_settings():
    return SettingsResponse.from_config(config_cache.current)


@router.patch("", response_model=SettingsResponse)
async def patch_settings(payload: SettingsPatchRequest):
    patch = payload.model_dump(exclude_none=True)
    if not patch:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")

    try:
        config = await config_cache.update(patch)
    except DatabaseError as e:
        logger.error("Failed to store slot settings", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to store settings",
        )

    logger.info("Slot settings updated", fields=sorted(patch))
    return SettingsResponse.from_config(config)
