"""
User timeout routes.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status

from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.api.slot_request import TimeoutCreateRequest
from app.models.domain.slot_domain import UserTimeout
from app.services.slots.operator_service import slot_operator

logger = get_logger(__name__)

router = APIRouter(prefix="/api/timeouts", tags=["timeouts"])


@router.get("", response_model=list[UserTimeout])
async def list_timeouts():
    """Timeouts that haven't expired yet."""
    try:
        return await slot_operator.active_timeouts()
    except DatabaseError as e:
        logger.error("Failed to list timeouts", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to list timeouts"
        )


@router.post("", response_model=UserTimeout, status_code=status.HTTP_201_CREATED)
async def add_timeout(payload: TimeoutCreateRequest):
    try:
        return await slot_operator.add_timeout(payload.user.strip(), payload.duration)
    except DatabaseError as e:
        logger.error("Failed to add timeout", user=payload.user, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to add timeout"
        )


@router.delete("/{timeout_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_timeout(timeout_id: UUID):
    try:
        removed = await slot_operator.remove_timeout(str(timeout_id))
    except DatabaseError as e:
        logger.error("Failed to remove timeout", timeout_id=str(timeout_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to remove timeout"
        )

    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timeout not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
