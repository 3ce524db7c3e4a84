"""
Slot Dashboard Routes
Thin HTTP pass-throughs to the slot repositories and operator service.
"""

from datetime import date
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status

from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.api.slot_request import SlotPatchRequest
from app.models.api.slot_response import LeaderboardEntryResponse, LeaderboardResponse
from app.models.domain.slot_domain import Slot, SlotSession
from app.repositories.session_repository import SessionRepository
from app.repositories.slot_repository import SlotRepository
from app.services.slots.leaderboard_service import LeaderboardPeriod, leaderboard_service
from app.services.slots.operator_service import slot_operator

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["slots"])


def _storage_unavailable(action: str, error: DatabaseError) -> HTTPException:
    logger.error("Slot storage error", action=action, operation=error.operation, error=str(error))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Failed to {action}",
    )


@router.get("/sessions", response_model=list[SlotSession])
async def list_sessions():
    """All sessions, newest first."""
    try:
        return await SessionRepository.list_all()
    except DatabaseError as e:
        raise _storage_unavailable("list sessions", e)


@router.get("/slots", response_model=list[Slot])
async def list_slots(
    session_id: UUID | None = Query(default=None),
    slot_status: Literal["IN", "OUT", "unset"] | None = Query(default=None, alias="status"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
):
    try:
        return await SlotRepository.find_by(
            session_id=str(session_id) if session_id else None,
            status=slot_status,
            from_date=start_date,
            to_date=end_date,
            search=search,
        )
    except DatabaseError as e:
        raise _storage_unavailable("list slots", e)


@router.patch("/slots/{slot_id}", response_model=Slot)
async def patch_slot(slot_id: UUID, payload: SlotPatchRequest):
    """Mark a slot IN/OUT or edit its payout or text."""
    try:
        slot = await slot_operator.update_slot(
            str(slot_id),
            status=payload.status,
            payout=payload.payout,
            message=payload.message,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DatabaseError as e:
        raise _storage_unavailable("update slot", e)

    if slot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slot not found")
    return slot


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(slot_id: UUID):
    try:
        deleted = await slot_operator.delete_slot(str(slot_id))
    except DatabaseError as e:
        raise _storage_unavailable("delete slot", e)

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slot not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(period: LeaderboardPeriod = LeaderboardPeriod.DAILY):
    try:
        standings = await leaderboard_service.standings(period)
    except DatabaseError as e:
        raise _storage_unavailable("build leaderboard", e)

    return LeaderboardResponse(
        period=period.value,
        entries=[
            LeaderboardEntryResponse(
                rank=rank,
                user=entry.user,
                count=entry.count,
                subscriber=entry.subscriber,
                vip=entry.vip,
                moderator=entry.moderator,
            )
            for rank, entry in enumerate(standings, start=1)
        ],
    )
